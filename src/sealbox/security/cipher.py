"""
Authenticated symmetric encryption (AES-GCM) for byte buffers and text.

Every call draws a fresh 96-bit IV, and every password call a fresh salt, so
encrypting the same plaintext twice never yields the same envelope. The
algorithm tag is passed to GCM as associated data.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sealbox.core.exceptions import (
    AuthenticationFailedError,
    InvalidParameterError,
    MalformedEnvelopeError,
)
from sealbox.core.models import EncryptedEnvelope, SymmetricKey
from .algorithms import IV_LENGTH, AlgorithmSuite, validate_envelope
from .kdf import SUPPORTED_KEY_SIZES, KdfParams, derive_key, generate_salt

logger = logging.getLogger(__name__)

Data = Union[str, bytes]


def _to_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def as_envelope(value: Any) -> EncryptedEnvelope:
    """Accept an envelope, its dict form or its JSON text."""
    if isinstance(value, EncryptedEnvelope):
        return value
    if isinstance(value, dict):
        return EncryptedEnvelope.from_dict(value)
    if isinstance(value, (str, bytes)):
        return EncryptedEnvelope.from_json(value)
    raise MalformedEnvelopeError("malformed envelope: unsupported type")


def seal(key: SymmetricKey, plaintext: bytes, associated_data: bytes, iv: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """AES-GCM encrypt; returns ``(iv, ciphertext || tag)``. A random IV is drawn when none is given."""
    if iv is None:
        iv = os.urandom(IV_LENGTH)
    return iv, AESGCM(key.material).encrypt(iv, plaintext, associated_data)


def open_sealed(key: SymmetricKey, iv: bytes, ciphertext: bytes, associated_data: bytes) -> bytes:
    """AES-GCM decrypt; any tag mismatch becomes :class:`AuthenticationFailedError`."""
    try:
        return AESGCM(key.material).decrypt(iv, ciphertext, associated_data)
    except InvalidTag:
        raise AuthenticationFailedError() from None


class SymmetricCipher:
    """
    Encrypt and decrypt buffers under a key or a password.

    ``kdf_params`` and ``key_size_bits`` only affect *new* password envelopes;
    decryption always follows the parameters recorded in the envelope.
    """

    def __init__(self, kdf_params: Optional[KdfParams] = None, key_size_bits: int = 256):
        if key_size_bits not in SUPPORTED_KEY_SIZES:
            raise InvalidParameterError(f"Unsupported key size: {key_size_bits}")
        self.kdf_params = kdf_params or KdfParams.argon2id()
        self.key_size_bits = key_size_bits

    # ------------------------------------------------------------------
    # Key-based
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: Data, key: SymmetricKey) -> Tuple[bytes, bytes]:
        """
        Encrypt under ``key`` with a freshly generated IV.

        Returns ``(iv, ciphertext_with_tag)``. The associated data is the
        plain cipher tag for the key size (e.g. ``AES-256-GCM``), which is
        what :meth:`decrypt` expects in the envelope.
        """
        suite = AlgorithmSuite(key_size_bits=key.size_bits)
        return seal(key, _to_bytes(plaintext), suite.tag.encode("ascii"))

    def encrypt_to_envelope(self, plaintext: Data, key: SymmetricKey) -> EncryptedEnvelope:
        suite = AlgorithmSuite(key_size_bits=key.size_bits)
        iv, ciphertext = seal(key, _to_bytes(plaintext), suite.tag.encode("ascii"))
        return EncryptedEnvelope(ciphertext=ciphertext, iv=iv, algorithm=suite.tag)

    def decrypt(self, envelope: Any, key: SymmetricKey) -> bytes:
        envelope = as_envelope(envelope)
        suite = validate_envelope(envelope)
        if suite.key_size_bits != key.size_bits:
            # a key of the wrong size is just a wrong key
            logger.warning("decryption failed: authentication failed")
            raise AuthenticationFailedError()
        return self._open(envelope, key)

    # ------------------------------------------------------------------
    # Password-based
    # ------------------------------------------------------------------

    def encrypt_with_password(self, plaintext: Data, password: Data) -> EncryptedEnvelope:
        """
        Encrypt with a key stretched from ``password``.

        A new random salt and IV are generated for every call and recorded in
        the returned envelope together with the KDF and its cost.
        """
        if not password:
            raise InvalidParameterError("Password must not be empty")
        suite = AlgorithmSuite(key_size_bits=self.key_size_bits, kdf=self.kdf_params)
        salt = generate_salt()
        key = derive_key(password, salt, suite.key_size_bits, suite.kdf)
        iv, ciphertext = seal(key, _to_bytes(plaintext), suite.tag.encode("ascii"))
        logger.debug("encrypted %d bytes with %s", len(ciphertext), suite.tag)
        return EncryptedEnvelope(ciphertext=ciphertext, iv=iv, algorithm=suite.tag, salt=salt)

    def decrypt_with_password(self, envelope: Any, password: Data) -> bytes:
        envelope = as_envelope(envelope)
        suite = validate_envelope(envelope, require_password=True)
        key = derive_key(password, envelope.salt, suite.key_size_bits, suite.kdf)
        return self._open(envelope, key)

    def encrypt_text(self, text: str, password: Data) -> EncryptedEnvelope:
        return self.encrypt_with_password(text.encode("utf-8"), password)

    def decrypt_text(self, envelope: Any, password: Data) -> str:
        plaintext = self.decrypt_with_password(envelope, password)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidParameterError("Decrypted payload is not UTF-8 text") from None

    def _open(self, envelope: EncryptedEnvelope, key: SymmetricKey) -> bytes:
        try:
            return open_sealed(key, envelope.iv, envelope.ciphertext, envelope.algorithm.encode("ascii"))
        except AuthenticationFailedError:
            logger.warning("decryption failed: authentication failed")
            raise
