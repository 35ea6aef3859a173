"""
Vote proof generation.

The witness is built locally and handed to an external Groth16 backend
(snarkjs). The backend is untrusted for public-signal layout: its returned
signals must equal [proposalId, commitment, nullifierHash] or the proof is
discarded.
"""

import asyncio
import json
import logging
import os
import shutil
import stat
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import requests

from .credentials import Credential, derive_nullifier_hash
from .encoder import ProofEncoder, RawProof, VoteProof
from .errors import (
    ProofBackendUnavailable,
    ProofEncodingError,
    ProofGenerationFailed,
    ProofInputMismatch,
)
from .field import canonicalize, parse_field_element

logger = logging.getLogger(__name__)

Witness = Dict[str, str]

# ============================================================================
# CIRCUIT ARTIFACTS
# ============================================================================


@dataclass
class CircuitArtifacts:
    """
    Locations of the compiled vote circuit. When base_url is set, missing
    files are fetched once from <base_url>/<name> into cache_dir.
    """
    wasm_file: Path
    zkey_file: Path
    base_url: Optional[str] = None
    cache_dir: Path = Path(".zk_cache")
    download_timeout: int = 60

    def __post_init__(self):
        self.wasm_file = Path(self.wasm_file)
        self.zkey_file = Path(self.zkey_file)
        self.cache_dir = Path(self.cache_dir)

    def resolve(self) -> Dict[str, Path]:
        """Return local paths of both assets, downloading them if needed"""
        return {
            'wasm': self._resolve_one(self.wasm_file),
            'zkey': self._resolve_one(self.zkey_file),
        }

    def _resolve_one(self, path: Path) -> Path:
        if path.exists():
            return path

        if not self.base_url:
            raise ProofBackendUnavailable(f"Circuit asset not found: {path}")

        cached = self.cache_dir / path.name
        if cached.exists():
            return cached

        url = f"{self.base_url.rstrip('/')}/{path.name}"
        logger.info(f"Downloading circuit asset {url}")
        try:
            response = requests.get(url, timeout=self.download_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ProofBackendUnavailable(f"Cannot fetch circuit asset {url}: {e}") from e

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = cached.with_suffix(cached.suffix + '.part')
        partial.write_bytes(response.content)
        partial.replace(cached)
        return cached


# ============================================================================
# PROVING BACKENDS
# ============================================================================


class ProvingBackend(ABC):
    """Black-box Groth16 prover: witness in, native proof plus public signals out"""

    @abstractmethod
    def full_prove(self, witness: Witness) -> RawProof:
        """Blocking; the generator runs it in a worker thread"""


class SnarkjsBackend(ProvingBackend):
    """Runs `snarkjs groth16 fullprove` in a private temporary directory"""

    def __init__(self, artifacts: CircuitArtifacts, snarkjs_command: str = "snarkjs",
                 timeout: int = 60):
        self.artifacts = artifacts
        self.snarkjs_command = snarkjs_command
        self.timeout = timeout

    def _executable(self) -> str:
        executable = shutil.which(self.snarkjs_command)
        if executable is None:
            raise ProofBackendUnavailable(f"'{self.snarkjs_command}' not found on PATH")
        return executable

    def full_prove(self, witness: Witness) -> RawProof:
        executable = self._executable()
        assets = self.artifacts.resolve()
        start_time = time.time()

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)

            # Witness holds the secret; keep it owner-only
            input_file = temp_path / "input.json"
            fd = os.open(input_file, os.O_WRONLY | os.O_CREAT, stat.S_IRUSR | stat.S_IWUSR)
            with os.fdopen(fd, 'w') as f:
                json.dump(witness, f)

            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"

            cmd = [
                executable, 'groth16', 'fullprove',
                str(input_file),
                str(assets['wasm']),
                str(assets['zkey']),
                str(proof_file),
                str(public_file),
            ]

            try:
                result = subprocess.run(cmd, capture_output=True, text=True,
                                        timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise ProofGenerationFailed(
                    f"Proof generation timed out after {self.timeout}s") from e
            except OSError as e:
                raise ProofBackendUnavailable(f"Cannot start snarkjs: {e}") from e

            if result.returncode != 0:
                raise ProofGenerationFailed(
                    f"Proof generation failed: {result.stderr.strip() or result.stdout.strip()}")

            try:
                proof = json.loads(proof_file.read_text())
                public_signals = json.loads(public_file.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise ProofGenerationFailed(f"Unreadable snarkjs output: {e}") from e

        return RawProof(proof=proof, public_signals=public_signals,
                        generation_time=time.time() - start_time)


# ============================================================================
# PROOF GENERATOR
# ============================================================================


class ProofGenerator:
    """Builds the vote witness, runs the backend off the event loop and checks its output"""

    def __init__(self, backend: ProvingBackend, encoder: Optional[ProofEncoder] = None,
                 max_workers: int = 1):
        self.backend = backend
        self.encoder = encoder or ProofEncoder()
        self.max_workers = max_workers
        self.executor: Optional[ThreadPoolExecutor] = None

    def _get_executor(self) -> ThreadPoolExecutor:
        # Recreated after shutdown() so a new session gets fresh workers
        if self.executor is None:
            self.executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                               thread_name_prefix="vote-prover")
        return self.executor

    @staticmethod
    def build_witness(credential: Credential, vote: bool, proposal_id: int,
                      nullifier_hash: int) -> Witness:
        return {
            # private
            'secret': str(credential.secret),
            'nullifier': str(credential.nullifier),
            'vote': "1" if vote else "0",
            # public
            'proposalId': str(canonicalize(proposal_id)),
            'commitment': str(credential.commitment),
            'nullifierHash': str(nullifier_hash),
        }

    async def prove(self, credential: Credential, vote: bool, proposal_id: int) -> VoteProof:
        proposal_id = canonicalize(proposal_id)
        nullifier_hash = derive_nullifier_hash(credential.nullifier, proposal_id)
        witness = self.build_witness(credential, vote, proposal_id, nullifier_hash)
        expected = [proposal_id, credential.commitment, nullifier_hash]

        logger.info(f"Generating vote proof for proposal {proposal_id}")
        loop = asyncio.get_running_loop()
        try:
            pending = loop.run_in_executor(self._get_executor(), self.backend.full_prove, witness)
        except RuntimeError as e:
            # Executor was shut down underneath us
            raise ProofBackendUnavailable(f"Proving workers are shut down: {e}") from e

        try:
            raw = await pending
        except (ProofBackendUnavailable, ProofGenerationFailed):
            raise
        except Exception as e:
            raise ProofGenerationFailed(f"Proving backend error: {e}") from e

        self._check_public_signals(raw.public_signals, expected)

        try:
            proof = self.encoder.encode(raw)
        except ProofEncodingError as e:
            raise ProofGenerationFailed(f"Backend returned an unusable proof: {e}") from e

        logger.info(
            f"Generated proof for proposal {proposal_id} in {raw.generation_time:.2f}s")
        return proof

    @staticmethod
    def _check_public_signals(signals: List[str], expected: List[int]):
        try:
            actual = [parse_field_element(s, f"public signal {i}")
                      for i, s in enumerate(signals)]
        except (TypeError, ValueError) as e:
            raise ProofInputMismatch(f"Invalid public signal: {e}",
                                     expected=expected, actual=signals) from e

        if actual != expected:
            logger.error("Backend public signals do not match the vote inputs; proof discarded")
            raise ProofInputMismatch("Public signals do not match [proposalId, commitment, nullifierHash]",
                                     expected=expected, actual=actual)

    def shutdown(self):
        if self.executor is not None:
            self.executor.shutdown(wait=False)
            self.executor = None
