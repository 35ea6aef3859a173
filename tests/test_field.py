import secrets

import pytest

from zk import EntropyUnavailable, FIELD_PRIME, canonicalize, parse_field_element, random_field_element
from zk.field import is_field_element


def test_random_field_element_is_248_bits():
    for _ in range(50):
        value = random_field_element()
        assert 0 <= value < 2 ** 248 < FIELD_PRIME


def test_random_field_element_reports_missing_entropy(monkeypatch):
    def broken(n):
        raise OSError("no entropy")

    monkeypatch.setattr(secrets, "token_bytes", broken)
    with pytest.raises(EntropyUnavailable):
        random_field_element()


@pytest.mark.parametrize("value, expected", [
    (0, 0),
    (FIELD_PRIME, 0),
    (FIELD_PRIME + 5, 5),
    (-1, FIELD_PRIME - 1),
])
def test_canonicalize(value, expected):
    assert canonicalize(value) == expected


def test_is_field_element():
    assert is_field_element(FIELD_PRIME - 1)
    assert not is_field_element(FIELD_PRIME)
    assert not is_field_element(True)
    assert not is_field_element("5")


@pytest.mark.parametrize("value, expected", [
    (7, 7),
    ("42", 42),
    (" 42 ", 42),
    ("0x1f", 31),
    ("0X1F", 31),
    (str(FIELD_PRIME - 1), FIELD_PRIME - 1),
])
def test_parse_field_element_accepts(value, expected):
    assert parse_field_element(value, "secret") == expected


@pytest.mark.parametrize("value", [
    True, 1.5, None, "", "abc", "-3", "0x", "0xzz", "１２", -1, FIELD_PRIME, str(FIELD_PRIME),
])
def test_parse_field_element_rejects(value):
    with pytest.raises(ValueError):
        parse_field_element(value, "secret")
