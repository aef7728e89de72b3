"""
Data models shared by the cipher, file processor and key manager
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from sealbox.core.exceptions import InvalidParameterError, MalformedEnvelopeError
from sealbox.core.hashing import calculate_sha256


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    # strict decoding: stray characters are an error, not silently dropped
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        raise MalformedEnvelopeError("malformed envelope: invalid encoding") from None


class SymmetricKey:
    """
    Opaque AES key.

    The raw bytes are available to the cipher primitives through
    :attr:`material`; they leave the process only through
    :func:`sealbox.security.keygen.export_key`.
    """

    __slots__ = ("_material",)

    def __init__(self, material: bytes):
        if len(material) not in (16, 24, 32):
            raise InvalidParameterError(f"AES keys are 16, 24 or 32 bytes, got {len(material)}")
        self._material = bytes(material)

    @property
    def material(self) -> bytes:
        return self._material

    @property
    def size_bits(self) -> int:
        return len(self._material) * 8

    def __eq__(self, other):
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    def __hash__(self):
        return hash((SymmetricKey, self._material))

    def __repr__(self):
        return f"SymmetricKey(size_bits={self.size_bits})"


@dataclass(frozen=True)
class EncryptedEnvelope:
    """
    Ciphertext plus everything needed to reverse it.

    ``salt`` is only set for password-based envelopes. For chunked file
    envelopes ``ciphertext`` is empty because the data lives in a separate blob.
    """

    ciphertext: bytes
    iv: bytes
    algorithm: str
    salt: Optional[bytes] = None

    @property
    def is_password_based(self) -> bool:
        return self.salt is not None

    def to_dict(self) -> Dict[str, str]:
        data = {
            "ciphertext": b64encode(self.ciphertext),
            "iv": b64encode(self.iv),
        }
        if self.salt is not None:
            data["salt"] = b64encode(self.salt)
        data["algorithm"] = self.algorithm
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptedEnvelope":
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("malformed envelope: expected an object")
        for key in ("ciphertext", "iv", "algorithm"):
            if not isinstance(data.get(key), str):
                raise MalformedEnvelopeError(f"malformed envelope: missing or invalid '{key}'")
        salt = data.get("salt")
        if salt is not None and not isinstance(salt, str):
            raise MalformedEnvelopeError("malformed envelope: missing or invalid 'salt'")
        return cls(
            ciphertext=b64decode(data["ciphertext"]),
            iv=b64decode(data["iv"]),
            algorithm=data["algorithm"],
            salt=b64decode(salt) if salt is not None else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "EncryptedEnvelope":
        try:
            data = json.loads(text)
        except (ValueError, TypeError):
            raise MalformedEnvelopeError("malformed envelope: not valid JSON") from None
        return cls.from_dict(data)


class RecordType(Enum):
    # what kind of payload a stored envelope holds
    TEXT = "text"
    FILE = "file"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredRecord:
    """Record handed to the storage collaborator for an encrypted text or file."""

    name: str
    type: RecordType
    data: EncryptedEnvelope
    metadata: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        record = {
            "name": self.name,
            "type": self.type.value,
            "data": self.data.to_dict(),
            "createdAt": self.created_at,
        }
        if self.metadata is not None:
            record["metadata"] = dict(self.metadata)
        return record


@dataclass
class KeyPairRecord:
    """Record for a key pair: public key in the clear, private key only as a password envelope."""

    name: str
    public_key: str
    encrypted_private_key: EncryptedEnvelope
    key_size: int
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "publicKey": self.public_key,
            "encryptedPrivateKey": self.encrypted_private_key.to_dict(),
            "keySize": self.key_size,
            "createdAt": self.created_at,
        }


class RecordStore(Protocol):
    """Storage collaborator contract. SealBox never looks inside the store."""

    def save(self, record: Union[StoredRecord, KeyPairRecord]) -> str:
        ...

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    def list_by_type(self, record_type: RecordType) -> List[Dict[str, Any]]:
        ...

    def delete(self, record_id: str) -> bool:
        ...


def text_record(name: str, envelope: EncryptedEnvelope) -> StoredRecord:
    return StoredRecord(name=name, type=RecordType.TEXT, data=envelope)


def file_record(blob_path: Union[str, Path], envelope: EncryptedEnvelope) -> StoredRecord:
    """Describe an encrypted blob on disk; the digest covers the ciphertext, not the plaintext."""
    blob_path = Path(blob_path)
    metadata = {
        "filename": blob_path.name,
        "size": blob_path.stat().st_size,
        "sha256": calculate_sha256(blob_path),
    }
    return StoredRecord(name=blob_path.name, type=RecordType.FILE, data=envelope, metadata=metadata)
