"""
Circom-compatible Poseidon hash over the BN254 scalar field.

The client-side hash must be the exact function the vote circuit evaluates, so
the parameter set is frozen: t=3 (two inputs), 8 full rounds, 57 partial rounds,
x^5 S-box, capacity element 0, output taken from state[0]. Round constants and
the MDS matrix come from the Grain LFSR procedure of the Poseidon reference
parameter script, which is where circomlib's constants were generated.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from .field import FIELD_PRIME, canonicalize

logger = logging.getLogger(__name__)

# ============================================================================
# POSEIDON PARAMETERS
# ============================================================================

FIELD_SIZE_BITS = 254
SBOX_ALPHA = 5


@dataclass(frozen=True)
class PoseidonParameters:
    """Frozen permutation parameters for one state width"""
    width: int
    full_rounds: int
    partial_rounds: int
    round_constants: tuple
    mds_matrix: tuple

    def __post_init__(self):
        expected = (self.full_rounds + self.partial_rounds) * self.width
        if len(self.round_constants) != expected:
            raise ValueError(
                f"Expected {expected} round constants, got {len(self.round_constants)}")
        if len(self.mds_matrix) != self.width or any(len(row) != self.width for row in self.mds_matrix):
            raise ValueError(f"MDS matrix must be {self.width}x{self.width}")

    @classmethod
    def from_json(cls, path: Union[str, Path], full_rounds: int = 8,
                  partial_rounds: int = 57) -> 'PoseidonParameters':
        """
        Load constants in circomlibjs layout: {"C": [...], "M": [[...], ...]}.
        Values may be decimal or 0x-prefixed hex strings.
        """
        data = json.loads(Path(path).read_text())

        def to_int(v):
            return int(v, 16) if isinstance(v, str) and v.lower().startswith('0x') else int(v)

        constants = tuple(to_int(c) % FIELD_PRIME for c in data['C'])
        matrix = tuple(tuple(to_int(m) % FIELD_PRIME for m in row) for row in data['M'])
        return cls(len(matrix), full_rounds, partial_rounds, constants, matrix)


def _grain_bits(width: int, full_rounds: int, partial_rounds: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR seeded with the instance description"""
    seed = (format(1, '02b')                       # prime field
            + format(0, '04b')                     # x^alpha S-box
            + format(FIELD_SIZE_BITS, '012b')
            + format(width, '012b')
            + format(full_rounds, '010b')
            + format(partial_rounds, '010b')
            + '1' * 30)
    state = deque(int(b) for b in seed)

    def clock() -> int:
        bit = state[62] ^ state[51] ^ state[38] ^ state[23] ^ state[13] ^ state[0]
        state.popleft()
        state.append(bit)
        return bit

    for _ in range(160):
        clock()

    while True:
        # Bits come in pairs; the second is emitted only when the first is 1
        if clock():
            yield clock()
        else:
            clock()


def _take_bits(bits: Iterator[int], count: int) -> int:
    value = 0
    for _ in range(count):
        value = (value << 1) | next(bits)
    return value


@lru_cache(maxsize=None)
def generate_parameters(width: int = 3, full_rounds: int = 8,
                        partial_rounds: int = 57) -> PoseidonParameters:
    """Derive round constants and the Cauchy MDS matrix from the Grain stream"""
    bits = _grain_bits(width, full_rounds, partial_rounds)

    constants = []
    for _ in range((full_rounds + partial_rounds) * width):
        value = _take_bits(bits, FIELD_SIZE_BITS)
        while value >= FIELD_PRIME:
            value = _take_bits(bits, FIELD_SIZE_BITS)
        constants.append(value)

    while True:
        samples = [_take_bits(bits, FIELD_SIZE_BITS) % FIELD_PRIME for _ in range(2 * width)]
        while len(set(samples)) != len(samples):
            samples = [_take_bits(bits, FIELD_SIZE_BITS) % FIELD_PRIME for _ in range(2 * width)]
        xs, ys = samples[:width], samples[width:]
        if any((x + y) % FIELD_PRIME == 0 for x in xs for y in ys):
            continue
        matrix = tuple(
            tuple(pow((x + y) % FIELD_PRIME, FIELD_PRIME - 2, FIELD_PRIME) for y in ys)
            for x in xs
        )
        break

    logger.debug(
        f"Generated Poseidon parameters t={width} R_F={full_rounds} R_P={partial_rounds}")
    return PoseidonParameters(width, full_rounds, partial_rounds, tuple(constants), matrix)


# ============================================================================
# CIRCOM-COMPATIBLE POSEIDON
# ============================================================================


class CircomPoseidon:
    """Circom-compatible Poseidon hash for exactly two inputs"""

    ARITY = 2

    def __init__(self, parameters: Optional[PoseidonParameters] = None):
        self.parameters = parameters or generate_parameters(self.ARITY + 1, 8, 57)
        if self.parameters.width != self.ARITY + 1:
            raise ValueError(
                f"Poseidon parameters must have width {self.ARITY + 1}, got {self.parameters.width}")

    def ark(self, state: List[int], constant_idx: int) -> List[int]:
        """Add round constants"""
        constants = self.parameters.round_constants
        return [(x + constants[constant_idx + i]) % FIELD_PRIME for i, x in enumerate(state)]

    @staticmethod
    def sbox(state: List[int], full_round: bool) -> List[int]:
        """Apply S-box (x^5 mod p)"""
        if full_round:
            return [pow(x, SBOX_ALPHA, FIELD_PRIME) for x in state]
        return [pow(state[0], SBOX_ALPHA, FIELD_PRIME)] + state[1:]

    def mix(self, state: List[int]) -> List[int]:
        """Apply MDS matrix multiplication"""
        return [
            sum(m * s for m, s in zip(row, state)) % FIELD_PRIME
            for row in self.parameters.mds_matrix
        ]

    def hash(self, inputs: Sequence[int]) -> int:
        """Poseidon hash matching circomlib's Poseidon(2)"""
        if len(inputs) != self.ARITY:
            raise ValueError(f"Poseidon expects {self.ARITY} inputs for t={self.ARITY + 1}")

        params = self.parameters
        half_full = params.full_rounds // 2
        state = [0] + [canonicalize(x) for x in inputs]

        for r in range(params.full_rounds + params.partial_rounds):
            state = self.ark(state, r * params.width)
            full_round = r < half_full or r >= half_full + params.partial_rounds
            state = self.sbox(state, full_round)
            state = self.mix(state)

        return state[0]


_default_hasher: Optional[CircomPoseidon] = None


def configure_hasher(constants_file: Optional[Union[str, Path]] = None) -> CircomPoseidon:
    """Install the process-wide hasher, optionally pinned to a constants file"""
    global _default_hasher
    if constants_file is not None:
        parameters = PoseidonParameters.from_json(constants_file)
        logger.info(f"Loaded Poseidon constants from {constants_file}")
    else:
        parameters = None
    _default_hasher = CircomPoseidon(parameters)
    return _default_hasher


def get_hasher() -> CircomPoseidon:
    global _default_hasher
    if _default_hasher is None:
        _default_hasher = CircomPoseidon()
    return _default_hasher


def poseidon_hash(inputs: Sequence[int]) -> int:
    return get_hasher().hash(inputs)
