"""Security helpers: key derivation, envelopes, file streaming and RSA for SealBox.

This package provides:
- Argon2id / PBKDF2 password-to-key derivation
- AES-GCM encryption of buffers into self-describing envelopes
- Chunked AES-GCM file encryption with progress and cancellation
- RSA-OAEP key pairs with password-wrapped private key export
"""

from .kdf import KdfParams, generate_salt, derive_key
from .algorithms import AlgorithmSuite, parse_algorithm, validate_envelope
from .cipher import SymmetricCipher, as_envelope
from .jobs import FileJob, JobState
from .stream import ChunkedFileProcessor, encrypted_name, decrypted_name
from .asymmetric import AsymmetricKeyManager, KeyPair
from .keygen import (
    random_bytes,
    random_hex,
    generate_aes_key,
    export_key,
    import_key,
    generate_password,
)

__all__ = [
    "KdfParams",
    "generate_salt",
    "derive_key",
    "AlgorithmSuite",
    "parse_algorithm",
    "validate_envelope",
    "SymmetricCipher",
    "as_envelope",
    "FileJob",
    "JobState",
    "ChunkedFileProcessor",
    "encrypted_name",
    "decrypted_name",
    "AsymmetricKeyManager",
    "KeyPair",
    "random_bytes",
    "random_hex",
    "generate_aes_key",
    "export_key",
    "import_key",
    "generate_password",
]
