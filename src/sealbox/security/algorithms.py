"""Algorithm tags: ``<cipher>[/<kdf>/<cost>]``.

Examples::

    AES-256-GCM
    AES-256-GCM/PBKDF2-SHA256/600000
    AES-128-GCM/ARGON2ID/3:65536:1
    AES-256-GCM-STREAM65536/ARGON2ID/3:65536:1

The tag is bound to the ciphertext as associated data, so an envelope with an
edited tag does not authenticate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from sealbox.core.exceptions import InvalidParameterError, MalformedEnvelopeError
from sealbox.core.models import EncryptedEnvelope
from sealbox.security.kdf import SALT_LENGTH, SUPPORTED_KEY_SIZES, KdfParams

IV_LENGTH = 12
TAG_LENGTH = 16
MAX_CHUNK_SIZE = 64 * 1024 * 1024

_CIPHER_RE = re.compile(r"AES-(128|192|256)-GCM(?:-STREAM([1-9][0-9]{0,9}))?")


@dataclass(frozen=True)
class AlgorithmSuite:
    key_size_bits: int
    kdf: Optional[KdfParams] = None
    chunk_size: Optional[int] = None

    def __post_init__(self):
        if self.key_size_bits not in SUPPORTED_KEY_SIZES:
            raise InvalidParameterError(f"Unsupported key size: {self.key_size_bits}")
        if self.chunk_size is not None and not 1 <= self.chunk_size <= MAX_CHUNK_SIZE:
            raise InvalidParameterError(f"Chunk size must be between 1 and {MAX_CHUNK_SIZE} bytes")

    @property
    def tag(self) -> str:
        cipher = f"AES-{self.key_size_bits}-GCM"
        if self.chunk_size is not None:
            cipher += f"-STREAM{self.chunk_size}"
        if self.kdf is None:
            return cipher
        return f"{cipher}/{self.kdf.to_tag()}"


def parse_algorithm(tag: str) -> AlgorithmSuite:
    parts = tag.split("/")
    if len(parts) not in (1, 3):
        raise MalformedEnvelopeError("malformed envelope: unknown algorithm")
    match = _CIPHER_RE.fullmatch(parts[0])
    if match is None:
        raise MalformedEnvelopeError("malformed envelope: unknown algorithm")
    kdf = KdfParams.from_tag(parts[1], parts[2]) if len(parts) == 3 else None
    chunk_size = int(match.group(2)) if match.group(2) else None
    try:
        return AlgorithmSuite(key_size_bits=int(match.group(1)), kdf=kdf, chunk_size=chunk_size)
    except InvalidParameterError:
        raise MalformedEnvelopeError("malformed envelope: unknown algorithm") from None


def validate_envelope(
    envelope: EncryptedEnvelope,
    require_password: bool = False,
    chunked: bool = False,
) -> AlgorithmSuite:
    """
    Check an envelope's structure against its algorithm tag.

    Returns the parsed suite. Raises :class:`MalformedEnvelopeError` for a
    wrong iv or salt length, a tag that does not fit the requested operation,
    or a ciphertext too short to hold the authentication tag.
    """
    suite = parse_algorithm(envelope.algorithm)
    if len(envelope.iv) != IV_LENGTH:
        raise MalformedEnvelopeError("malformed envelope: invalid iv")
    if suite.kdf is not None:
        if envelope.salt is None or len(envelope.salt) != SALT_LENGTH:
            raise MalformedEnvelopeError("malformed envelope: invalid salt")
    elif envelope.salt is not None:
        raise MalformedEnvelopeError("malformed envelope: unexpected salt")
    if require_password and suite.kdf is None:
        raise MalformedEnvelopeError("malformed envelope: not a password envelope")
    if chunked:
        if suite.chunk_size is None or envelope.ciphertext:
            raise MalformedEnvelopeError("malformed envelope: not a file envelope")
    else:
        if suite.chunk_size is not None:
            raise MalformedEnvelopeError("malformed envelope: file envelope needs its blob")
        if len(envelope.ciphertext) < TAG_LENGTH:
            raise MalformedEnvelopeError("malformed envelope: ciphertext too short")
    return suite
