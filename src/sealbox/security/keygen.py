"""Random keys, bytes and passwords. Everything here draws from the OS CSPRNG."""

import os
import secrets
import string

from sealbox.core.exceptions import InvalidParameterError, MalformedEnvelopeError
from sealbox.core.models import SymmetricKey, b64decode, b64encode
from .kdf import SUPPORTED_KEY_SIZES

DEFAULT_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()_+"
DEFAULT_PASSWORD_LENGTH = 16


def random_bytes(length: int) -> bytes:
    if length < 1:
        raise InvalidParameterError(f"Length must be positive, got {length}")
    return os.urandom(length)


def random_hex(length: int) -> str:
    return random_bytes(length).hex()


def generate_aes_key(size_bits: int = 256) -> SymmetricKey:
    if size_bits not in SUPPORTED_KEY_SIZES:
        raise InvalidParameterError(f"Unsupported key size: {size_bits} (expected one of {SUPPORTED_KEY_SIZES})")
    return SymmetricKey(os.urandom(size_bits // 8))


def export_key(key: SymmetricKey) -> str:
    """Raw key bytes as base64. This is the only way key material leaves a :class:`SymmetricKey`."""
    return b64encode(key.material)


def import_key(text: str) -> SymmetricKey:
    try:
        return SymmetricKey(b64decode(text.strip()))
    except MalformedEnvelopeError:
        raise InvalidParameterError("Key is not valid base64") from None


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH, alphabet: str = DEFAULT_ALPHABET) -> str:
    if length < 1:
        raise InvalidParameterError(f"Length must be positive, got {length}")
    if not alphabet:
        raise InvalidParameterError("Alphabet must not be empty")
    return "".join(secrets.choice(alphabet) for _ in range(length))
