"""
RSA key pairs and RSA-OAEP encryption of small payloads.

Public keys travel as base64 SubjectPublicKeyInfo DER. Private keys only leave
as a password envelope around their PKCS#8 DER encoding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from sealbox.core.exceptions import (
    DecryptionFailedError,
    InvalidParameterError,
    MalformedEnvelopeError,
    PayloadTooLargeError,
)
from sealbox.core.models import EncryptedEnvelope, KeyPairRecord, b64decode, b64encode
from .cipher import SymmetricCipher

logger = logging.getLogger(__name__)

SUPPORTED_RSA_KEY_SIZES = (2048, 3072, 4096)
PUBLIC_EXPONENT = 65537
_HASH_LEN = 32  # SHA-256


def _oaep() -> padding.OAEP:
    return padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None)


@dataclass(frozen=True)
class KeyPair:
    private_key: rsa.RSAPrivateKey

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @property
    def key_size(self) -> int:
        return self.private_key.key_size

    def __repr__(self):
        return f"KeyPair(key_size={self.key_size})"


class AsymmetricKeyManager:
    """Generate, export, import and use RSA key pairs."""

    def __init__(self, cipher: Optional[SymmetricCipher] = None):
        # wraps exported private keys
        self.cipher = cipher or SymmetricCipher()

    def generate_key_pair(self, key_size_bits: int = 2048) -> KeyPair:
        if key_size_bits not in SUPPORTED_RSA_KEY_SIZES:
            raise InvalidParameterError(
                f"Unsupported RSA key size: {key_size_bits} (expected one of {SUPPORTED_RSA_KEY_SIZES})"
            )
        logger.info("generating %d-bit RSA key pair", key_size_bits)
        private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size_bits)
        return KeyPair(private_key=private_key)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_public_key(self, key: Union[rsa.RSAPublicKey, KeyPair]) -> str:
        if isinstance(key, KeyPair):
            key = key.public_key
        der = key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return b64encode(der)

    def import_public_key(self, text: str) -> rsa.RSAPublicKey:
        """Load a public key from :meth:`export_public_key` output or a PEM block."""
        text = text.strip()
        try:
            if text.startswith("-----BEGIN"):
                key = serialization.load_pem_public_key(text.encode("ascii"))
            else:
                key = serialization.load_der_public_key(b64decode("".join(text.split())))
        except (ValueError, UnsupportedAlgorithm, MalformedEnvelopeError):
            raise InvalidParameterError("Not a valid public key") from None
        if not isinstance(key, rsa.RSAPublicKey):
            raise InvalidParameterError("Not an RSA public key")
        return key

    def export_private_key(self, key: Union[rsa.RSAPrivateKey, KeyPair], password: Union[str, bytes]) -> EncryptedEnvelope:
        """Return the private key sealed in a password envelope; there is no plaintext export."""
        if isinstance(key, KeyPair):
            key = key.private_key
        der = key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return self.cipher.encrypt_with_password(der, password)

    def import_private_key(self, envelope: Any, password: Union[str, bytes]) -> rsa.RSAPrivateKey:
        """Unwrap a private key envelope. A wrong password raises :class:`AuthenticationFailedError`."""
        der = self.cipher.decrypt_with_password(envelope, password)
        try:
            key = serialization.load_der_private_key(der, password=None)
        except (ValueError, UnsupportedAlgorithm):
            raise MalformedEnvelopeError("malformed envelope: payload is not a private key") from None
        if not isinstance(key, rsa.RSAPrivateKey):
            raise MalformedEnvelopeError("malformed envelope: payload is not an RSA private key")
        return key

    def key_pair_record(self, name: str, pair: KeyPair, password: Union[str, bytes]) -> KeyPairRecord:
        return KeyPairRecord(
            name=name,
            public_key=self.export_public_key(pair),
            encrypted_private_key=self.export_private_key(pair, password),
            key_size=pair.key_size,
        )

    # ------------------------------------------------------------------
    # Encrypt / decrypt
    # ------------------------------------------------------------------

    @staticmethod
    def max_payload_size(public_key: rsa.RSAPublicKey) -> int:
        # OAEP overhead: two hash lengths plus two bytes
        return public_key.key_size // 8 - 2 * _HASH_LEN - 2

    def encrypt(self, payload: bytes, public_key: Union[rsa.RSAPublicKey, KeyPair]) -> bytes:
        if isinstance(public_key, KeyPair):
            public_key = public_key.public_key
        limit = self.max_payload_size(public_key)
        if len(payload) > limit:
            raise PayloadTooLargeError(
                f"Payload of {len(payload)} bytes exceeds the {limit}-byte limit for a {public_key.key_size}-bit key"
            )
        return public_key.encrypt(payload, _oaep())

    def decrypt(self, ciphertext: bytes, private_key: Union[rsa.RSAPrivateKey, KeyPair]) -> bytes:
        if isinstance(private_key, KeyPair):
            private_key = private_key.private_key
        try:
            return private_key.decrypt(ciphertext, _oaep())
        except ValueError:
            logger.warning("RSA decryption failed")
            raise DecryptionFailedError() from None
