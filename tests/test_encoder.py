import pytest

from zk import ProofEncoder, ProofEncodingError, RawProof
from zk.encoder import BN254_PRIME

from conftest import G1, G1_NEG, G2, snarkjs_proof

SIGNALS = [7, 123456789, 987654321]


@pytest.fixture
def encoder():
    return ProofEncoder()


def test_pi_b_inner_pairs_reversed(encoder):
    proof = encoder.encode(snarkjs_proof(SIGNALS))

    assert proof.p_a == (1, 2)
    assert proof.p_c == (1, BN254_PRIME - 2)
    assert proof.p_b == (
        (int(G2[0][1]), int(G2[0][0])),
        (int(G2[1][1]), int(G2[1][0])),
    )


def test_public_signals_keep_order(encoder):
    proof = encoder.encode(snarkjs_proof(SIGNALS))
    assert proof.public_signals == tuple(SIGNALS)
    assert (proof.proposal_id, proof.commitment, proof.nullifier_hash) == tuple(SIGNALS)


def test_equivalent_representations_encode_identically(encoder):
    projective = snarkjs_proof(SIGNALS)
    affine_hex = RawProof(
        proof={
            "pi_a": [hex(int(G1[0])), hex(int(G1[1]))],
            "pi_b": [[int(c) for c in G2[0]], [int(c) for c in G2[1]]],
            "pi_c": [int(G1_NEG[0]), int(G1_NEG[1])],
        },
        public_signals=[hex(s) for s in SIGNALS],
    )

    first = encoder.encode(projective)
    second = encoder.encode(affine_hex)
    assert first == second
    assert list(second.public_signals) == SIGNALS


def test_calldata_and_json(encoder):
    proof = encoder.encode(snarkjs_proof(SIGNALS))
    p_a, p_b, p_c, signals = proof.to_calldata()
    assert p_a == [1, 2]
    assert p_b[0] == [int(G2[0][1]), int(G2[0][0])]
    assert signals == SIGNALS

    as_json = proof.to_json()
    assert as_json["publicSignals"] == [str(s) for s in SIGNALS]
    assert as_json["pA"] == ["1", "2"]


@pytest.mark.parametrize("overrides", [
    {"pi_a": ["1", "3", "1"]},
    {"pi_a": ["1", "2", "0"]},
    {"pi_a": ["1", "2", "2"]},
    {"pi_a": ["1"]},
    {"pi_c": [str(BN254_PRIME), "2", "1"]},
    {"pi_b": [G2[0], G2[1], ["0", "0"]]},
    {"pi_b": [G2[0], ["1"]]},
    {"protocol": "plonk"},
    {"curve": "bls12381"},
])
def test_rejects_invalid_proofs(encoder, overrides):
    raw = snarkjs_proof(SIGNALS, **{k: v for k, v in overrides.items() if k.startswith("pi_")})
    raw.proof.update({k: v for k, v in overrides.items() if not k.startswith("pi_")})
    with pytest.raises(ProofEncodingError):
        encoder.encode(raw)


def test_rejects_missing_point(encoder):
    raw = snarkjs_proof(SIGNALS)
    del raw.proof["pi_c"]
    with pytest.raises(ProofEncodingError, match="pi_c"):
        encoder.encode(raw)


def test_rejects_non_numeric_signal(encoder):
    raw = RawProof(proof=snarkjs_proof(SIGNALS).proof, public_signals=["7", "abc", "1"])
    with pytest.raises(ProofEncodingError):
        encoder.encode(raw)


def test_curve_check_can_be_disabled():
    raw = snarkjs_proof(SIGNALS, pi_a=["1", "3", "1"])
    assert ProofEncoder(check_curve=False).encode(raw).p_a == (1, 3)
