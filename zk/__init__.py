"""
Zero-Knowledge credential and proof pipeline for anonymous voting.
Poseidon commitments, nullifier hashes and Groth16 vote proofs.
"""

from .credentials import (
    Credential,
    CredentialExport,
    CredentialManager,
    compute_commitment,
    derive_nullifier_hash,
)
from .encoder import ProofEncoder, RawProof, VoteProof
from .errors import (
    EntropyUnavailable,
    MalformedCredential,
    ProofBackendUnavailable,
    ProofEncodingError,
    ProofGenerationFailed,
    ProofInputMismatch,
    ZKError,
)
from .field import FIELD_PRIME, canonicalize, parse_field_element, random_field_element
from .poseidon import CircomPoseidon, PoseidonParameters, configure_hasher, poseidon_hash
from .prover import CircuitArtifacts, ProofGenerator, ProvingBackend, SnarkjsBackend

__version__ = "1.0.0"

__all__ = [
    # Field and hash
    'FIELD_PRIME',
    'canonicalize',
    'parse_field_element',
    'random_field_element',
    'CircomPoseidon',
    'PoseidonParameters',
    'configure_hasher',
    'poseidon_hash',

    # Credentials
    'Credential',
    'CredentialExport',
    'CredentialManager',
    'compute_commitment',
    'derive_nullifier_hash',

    # Proofs
    'CircuitArtifacts',
    'ProofEncoder',
    'ProofGenerator',
    'ProvingBackend',
    'RawProof',
    'SnarkjsBackend',
    'VoteProof',

    # Exceptions
    'ZKError',
    'EntropyUnavailable',
    'MalformedCredential',
    'ProofBackendUnavailable',
    'ProofEncodingError',
    'ProofGenerationFailed',
    'ProofInputMismatch',
]
