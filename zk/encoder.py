"""
Groth16 proof encoding for the on-chain verifier.

snarkjs emits G2 coordinates as [c0, c1] while the Solidity verifier's
precompile expects [c1, c0], so each inner pair of pi_b is reversed. Public
signals pass through in circuit order: [proposalId, commitment, nullifierHash].
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from .errors import ProofEncodingError
from .field import FIELD_PRIME

logger = logging.getLogger(__name__)

# BN254 base field
BN254_PRIME = 21888242871839275222246405745257275088696311157297823662689037894645226208583

G1Point = Tuple[int, int]
G2Point = Tuple[Tuple[int, int], Tuple[int, int]]


@dataclass(frozen=True)
class RawProof:
    """Proof exactly as the proving backend returned it"""
    proof: Dict[str, Any]
    public_signals: List[str]
    generation_time: float = 0.0


@dataclass(frozen=True)
class VoteProof:
    """Proof in verifier layout"""
    p_a: G1Point
    p_b: G2Point
    p_c: G1Point
    public_signals: Tuple[int, ...]
    generation_time: float = field(default=0.0, compare=False)

    @property
    def proposal_id(self) -> int:
        return self.public_signals[0]

    @property
    def commitment(self) -> int:
        return self.public_signals[1]

    @property
    def nullifier_hash(self) -> int:
        return self.public_signals[2]

    def to_calldata(self) -> Tuple[list, list, list, list]:
        return (
            list(self.p_a),
            [list(self.p_b[0]), list(self.p_b[1])],
            list(self.p_c),
            list(self.public_signals),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            'pA': [str(v) for v in self.p_a],
            'pB': [[str(v) for v in pair] for pair in self.p_b],
            'pC': [str(v) for v in self.p_c],
            'publicSignals': [str(v) for v in self.public_signals],
        }


def _coordinate(value: Any, modulus: int, label: str) -> int:
    if isinstance(value, bool):
        raise ProofEncodingError(f"{label} must be numeric")
    try:
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and value.strip().lower().startswith('0x'):
            number = int(value.strip(), 16)
        elif isinstance(value, str):
            number = int(value.strip(), 10)
        else:
            raise ProofEncodingError(f"{label} has unsupported type {type(value).__name__}")
    except ValueError as e:
        raise ProofEncodingError(f"{label} is not a number: {value!r}") from e

    if not 0 <= number < modulus:
        raise ProofEncodingError(f"{label} outside field bounds")
    return number


class ProofEncoder:
    """Turns a backend proof into the point layout the verifier expects"""

    def __init__(self, check_curve: bool = True):
        self.check_curve = check_curve

    def encode(self, raw: RawProof) -> VoteProof:
        proof = raw.proof
        if not isinstance(proof, dict):
            raise ProofEncodingError("Proof must be an object")

        protocol = proof.get('protocol', 'groth16')
        if protocol != 'groth16':
            raise ProofEncodingError(f"Invalid protocol: {protocol}")
        curve = proof.get('curve', 'bn128')
        if curve not in ('bn128', 'bn254'):
            raise ProofEncodingError(f"Invalid curve: {curve}")

        try:
            p_a = self._g1(proof['pi_a'], 'pi_a')
            b0, b1 = self._g2(proof['pi_b'], 'pi_b')
            p_c = self._g1(proof['pi_c'], 'pi_c')
        except KeyError as e:
            raise ProofEncodingError(f"Proof missing {e.args[0]}") from e

        signals = tuple(
            _coordinate(s, FIELD_PRIME, f"publicSignals[{i}]")
            for i, s in enumerate(raw.public_signals)
        )

        return VoteProof(
            p_a=p_a,
            p_b=((b0[1], b0[0]), (b1[1], b1[0])),
            p_c=p_c,
            public_signals=signals,
            generation_time=raw.generation_time,
        )

    def _g1(self, point: Sequence[Any], label: str) -> G1Point:
        """Affine G1 point from [x, y] or [x, y, 1]"""
        if not isinstance(point, (list, tuple)) or len(point) not in (2, 3):
            raise ProofEncodingError(f"{label} must have 2 or 3 coordinates")

        x = _coordinate(point[0], BN254_PRIME, f"{label}.x")
        y = _coordinate(point[1], BN254_PRIME, f"{label}.y")
        if len(point) == 3:
            z = _coordinate(point[2], BN254_PRIME, f"{label}.z")
            if z == 0:
                raise ProofEncodingError(f"{label} is the point at infinity")
            if z != 1:
                raise ProofEncodingError(f"{label} is not in affine form")

        # y^2 = x^3 + 3
        if self.check_curve and (y * y - x * x * x - 3) % BN254_PRIME != 0:
            raise ProofEncodingError(f"{label} is not on the curve")

        return x, y

    def _g2(self, point: Sequence[Any], label: str) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Affine G2 point from [[x0, x1], [y0, y1]] with optional [1, 0]"""
        if not isinstance(point, (list, tuple)) or len(point) not in (2, 3):
            raise ProofEncodingError(f"{label} must have 2 or 3 coordinate pairs")

        pairs = []
        for i, pair in enumerate(point):
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise ProofEncodingError(f"{label}[{i}] must be a coordinate pair")
            pairs.append(tuple(_coordinate(c, BN254_PRIME, f"{label}[{i}][{j}]")
                               for j, c in enumerate(pair)))

        if len(pairs) == 3:
            if pairs[2] == (0, 0):
                raise ProofEncodingError(f"{label} is the point at infinity")
            if pairs[2] != (1, 0):
                raise ProofEncodingError(f"{label} is not in affine form")

        return pairs[0], pairs[1]
