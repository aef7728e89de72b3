import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sealbox.core.exceptions import InvalidParameterError, MalformedEnvelopeError
from sealbox.core.models import SymmetricKey

logger = logging.getLogger(__name__)

ARGON2ID = "argon2id"
PBKDF2_SHA256 = "pbkdf2-sha256"

SUPPORTED_KEY_SIZES = (128, 192, 256)
SALT_LENGTH = 16

# Ceilings applied to costs read back from envelopes.
MAX_PBKDF2_ITERATIONS = 10_000_000
MAX_ARGON2_TIME_COST = 64
MAX_ARGON2_MEMORY_KIB = 4 * 1024 * 1024
MAX_ARGON2_PARALLELISM = 64

_TAG_NAMES = {ARGON2ID: "ARGON2ID", PBKDF2_SHA256: "PBKDF2-SHA256"}


@dataclass(frozen=True)
class KdfParams:
    """Which password-stretching function to run and how expensive to make it."""

    name: str = ARGON2ID
    iterations: int = 0
    time_cost: int = 0
    memory_cost: int = 0
    parallelism: int = 0

    def __post_init__(self):
        if self.name == PBKDF2_SHA256:
            if not 1 <= self.iterations <= MAX_PBKDF2_ITERATIONS:
                raise InvalidParameterError(f"PBKDF2 iterations out of range: {self.iterations}")
        elif self.name == ARGON2ID:
            if not 1 <= self.time_cost <= MAX_ARGON2_TIME_COST:
                raise InvalidParameterError(f"Argon2 time cost out of range: {self.time_cost}")
            if not 1 <= self.parallelism <= MAX_ARGON2_PARALLELISM:
                raise InvalidParameterError(f"Argon2 parallelism out of range: {self.parallelism}")
            # argon2 needs at least 8 KiB per lane
            if not 8 * self.parallelism <= self.memory_cost <= MAX_ARGON2_MEMORY_KIB:
                raise InvalidParameterError(f"Argon2 memory cost out of range: {self.memory_cost}")
        else:
            raise InvalidParameterError(f"Unsupported key derivation function: {self.name!r}")

    @classmethod
    def argon2id(cls, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 1) -> "KdfParams":
        return cls(name=ARGON2ID, time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)

    @classmethod
    def pbkdf2(cls, iterations: int = 600_000) -> "KdfParams":
        return cls(name=PBKDF2_SHA256, iterations=iterations)

    def to_tag(self) -> str:
        """Return the ``<kdf>/<cost>`` part of an algorithm tag."""
        if self.name == PBKDF2_SHA256:
            return f"{_TAG_NAMES[self.name]}/{self.iterations}"
        return f"{_TAG_NAMES[self.name]}/{self.time_cost}:{self.memory_cost}:{self.parallelism}"

    @classmethod
    def from_tag(cls, kdf_name: str, cost: str) -> "KdfParams":
        """
        Parse the KDF name and cost fields of an algorithm tag.

        Anything unrecognised or out of range is reported as
        :class:`MalformedEnvelopeError`, since the tag came from an envelope.
        """
        try:
            if kdf_name == _TAG_NAMES[PBKDF2_SHA256]:
                if not (cost.isascii() and cost.isdecimal()):
                    raise MalformedEnvelopeError("malformed envelope: bad KDF cost")
                return cls.pbkdf2(iterations=int(cost))
            if kdf_name == _TAG_NAMES[ARGON2ID]:
                parts = cost.split(":")
                if len(parts) != 3 or not all(p.isascii() and p.isdecimal() for p in parts):
                    raise MalformedEnvelopeError("malformed envelope: bad KDF cost")
                t, m, p = (int(x) for x in parts)
                return cls.argon2id(time_cost=t, memory_cost=m, parallelism=p)
        except InvalidParameterError:
            raise MalformedEnvelopeError("malformed envelope: KDF cost out of range") from None
        raise MalformedEnvelopeError("malformed envelope: unknown key derivation function")

    def to_dict(self) -> Dict:
        if self.name == PBKDF2_SHA256:
            return {"algo": self.name, "iterations": self.iterations}
        return {
            "algo": self.name,
            "time": self.time_cost,
            "memory": self.memory_cost,
            "parallelism": self.parallelism,
        }


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    password: Union[str, bytes],
    salt: bytes,
    key_size_bits: int = 256,
    params: Optional[KdfParams] = None,
) -> SymmetricKey:
    """
    Stretch ``password`` into an AES key of ``key_size_bits``.

    The result depends only on the inputs, so storing ``salt`` and ``params``
    next to the ciphertext is enough to re-derive the key later.
    """
    if key_size_bits not in SUPPORTED_KEY_SIZES:
        raise InvalidParameterError(f"Unsupported key size: {key_size_bits} (expected one of {SUPPORTED_KEY_SIZES})")
    if len(salt) < SALT_LENGTH:
        raise InvalidParameterError(f"Salt must be at least {SALT_LENGTH} bytes")
    if isinstance(password, str):
        password = password.encode("utf-8")
    params = params or KdfParams.argon2id()
    key_len = key_size_bits // 8

    logger.debug("deriving %d-bit key with %s", key_size_bits, params.to_tag())
    if params.name == PBKDF2_SHA256:
        kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=key_len, salt=salt, iterations=params.iterations)
        raw = kdf.derive(password)
    else:
        raw = hash_secret_raw(
            secret=password,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=key_len,
            type=Type.ID,
        )
    return SymmetricKey(raw)
