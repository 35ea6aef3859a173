"""Shared fixtures: fake proving backends and an in-memory ledger."""

import sys
import threading
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import SystemConfig  # noqa: E402
from ledger import InMemoryLedgerStub  # noqa: E402
from voting_orchestrator import VotingOrchestrator  # noqa: E402
from zk import ProofGenerator, ProvingBackend, RawProof  # noqa: E402
from zk.encoder import BN254_PRIME  # noqa: E402

# BN254 G1 generator and its negation
G1 = ["1", "2", "1"]
G1_NEG = ["1", str(BN254_PRIME - 2), "1"]

G2 = [
    ["10857046999023057135944570762232829481370756359578518086990519993285655852781",
     "11559732032986387107991004021392285783925812861821192530917403151452391805634"],
    ["8495653923123431417604973247489272438418190587263600148770280649306958101930",
     "4082367875863433681332203403145435568316851327593401208105741076214120093531"],
    ["1", "0"],
]


def snarkjs_proof(public_signals, pi_a=None, pi_b=None, pi_c=None, **extra):
    """Proof dict in the layout `snarkjs groth16 fullprove` writes"""
    proof = {
        "pi_a": pi_a or list(G1),
        "pi_b": pi_b or [list(p) for p in G2],
        "pi_c": pi_c or list(G1_NEG),
        "protocol": "groth16",
        "curve": "bn128",
    }
    proof.update(extra)
    return RawProof(proof=proof, public_signals=[str(s) for s in public_signals])


class FakeBackend(ProvingBackend):
    """Echoes the witness public inputs back as public signals"""

    def __init__(self):
        self.witnesses = []

    def full_prove(self, witness):
        self.witnesses.append(dict(witness))
        return snarkjs_proof([witness['proposalId'], witness['commitment'],
                              witness['nullifierHash']])


class BlockingBackend(FakeBackend):
    """Holds the worker thread until `release` is set"""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def full_prove(self, witness):
        self.started.set()
        self.release.wait(timeout=10)
        return super().full_prove(witness)


class FailingBackend(ProvingBackend):
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def full_prove(self, witness):
        self.calls += 1
        raise self.error


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def prover(backend):
    generator = ProofGenerator(backend)
    yield generator
    generator.shutdown()


@pytest.fixture
def ledger():
    return InMemoryLedgerStub()


@pytest.fixture
def orchestrator(ledger, prover):
    return VotingOrchestrator(ledger, prover, config=SystemConfig())
