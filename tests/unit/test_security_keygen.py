"""Unit tests for key, random byte and password generation."""

import pytest

from sealbox.core.exceptions import InvalidParameterError
from sealbox.security.keygen import (
    DEFAULT_ALPHABET,
    export_key,
    generate_aes_key,
    generate_password,
    import_key,
    random_bytes,
    random_hex,
)


@pytest.mark.parametrize("size", [128, 192, 256])
def test_generate_aes_key(size):
    key = generate_aes_key(size)
    assert key.size_bits == size
    assert generate_aes_key(size) != key


def test_generate_aes_key_bad_size():
    with pytest.raises(InvalidParameterError):
        generate_aes_key(100)


def test_export_import_key():
    key = generate_aes_key(192)
    exported = export_key(key)
    assert isinstance(exported, str)
    assert import_key(exported) == key
    assert import_key(f"  {exported}\n") == key


@pytest.mark.parametrize("text", ["not base64!", "AAAA"])
def test_import_key_rejects_garbage(text):
    with pytest.raises(InvalidParameterError):
        import_key(text)


def test_random_bytes():
    assert len(random_bytes(32)) == 32
    assert random_bytes(16) != random_bytes(16)
    assert len(random_hex(8)) == 16


@pytest.mark.parametrize("length", [0, -3])
def test_random_bytes_rejects_non_positive(length):
    with pytest.raises(InvalidParameterError):
        random_bytes(length)


def test_generate_password_default():
    password = generate_password()
    assert len(password) == 16
    assert set(password) <= set(DEFAULT_ALPHABET)


def test_generate_password_custom_alphabet():
    password = generate_password(40, alphabet="ab")
    assert len(password) == 40
    assert set(password) <= {"a", "b"}


def test_generate_password_rejects_bad_input():
    with pytest.raises(InvalidParameterError):
        generate_password(0)
    with pytest.raises(InvalidParameterError):
        generate_password(8, alphabet="")
