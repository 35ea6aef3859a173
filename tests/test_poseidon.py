import json

import pytest

from zk import CircomPoseidon, FIELD_PRIME, PoseidonParameters, configure_hasher, poseidon_hash
from zk.poseidon import generate_parameters

POSEIDON_1_2 = 7853200120776062878684798364095072458815029376092732009249414926327459813530


class TestParameters:
    def test_shape(self):
        params = generate_parameters(3, 8, 57)
        assert params.width == 3
        assert len(params.round_constants) == 65 * 3
        assert all(0 <= c < FIELD_PRIME for c in params.round_constants)

    def test_first_round_constant(self):
        params = generate_parameters(3, 8, 57)
        assert params.round_constants[0] == \
            0x0ee9a592ba9a9518d05986d656f40c2114c4993c11bb29938d21d47304cd8e6e

    def test_mds_first_entry(self):
        params = generate_parameters(3, 8, 57)
        assert params.mds_matrix[0][0] == \
            0x109b7f411ba0e4c9b2b70caf5c36a7b194be7c11ad24378bfedb68592ba8118b

    def test_wrong_constant_count_rejected(self):
        with pytest.raises(ValueError):
            PoseidonParameters(3, 8, 57, (1, 2, 3), ((1, 0, 0), (0, 1, 0), (0, 0, 1)))


class TestHash:
    def test_known_answer(self):
        assert CircomPoseidon().hash([1, 2]) == POSEIDON_1_2

    def test_deterministic(self):
        hasher = CircomPoseidon()
        assert hasher.hash([123, 456]) == hasher.hash([123, 456])
        assert hasher.hash([123, 456]) != hasher.hash([456, 123])

    def test_inputs_are_canonicalized(self):
        hasher = CircomPoseidon()
        assert hasher.hash([1 + FIELD_PRIME, 2]) == POSEIDON_1_2

    @pytest.mark.parametrize("inputs", [[], [1], [1, 2, 3]])
    def test_arity_is_frozen(self, inputs):
        with pytest.raises(ValueError):
            CircomPoseidon().hash(inputs)

    def test_output_in_field(self):
        assert 0 <= poseidon_hash([FIELD_PRIME - 1, FIELD_PRIME - 1]) < FIELD_PRIME


def test_constants_file_override(tmp_path):
    params = generate_parameters(3, 8, 57)
    constants_file = tmp_path / "poseidon_constants.json"
    constants_file.write_text(json.dumps({
        "C": [hex(c) for c in params.round_constants],
        "M": [[str(m) for m in row] for row in params.mds_matrix],
    }))

    try:
        hasher = configure_hasher(constants_file)
        assert hasher.parameters == params
        assert poseidon_hash([1, 2]) == POSEIDON_1_2
    finally:
        configure_hasher(None)
