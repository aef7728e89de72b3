"""Runtime settings for SealBox, read from ``SEALBOX_*`` environment variables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import logging
import os

from sealbox.core.exceptions import InvalidParameterError
from sealbox.security.algorithms import MAX_CHUNK_SIZE
from sealbox.security.kdf import (
    ARGON2ID,
    PBKDF2_SHA256,
    SUPPORTED_KEY_SIZES,
    KdfParams,
)


DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Settings:
    """Tunable parameters shared by the cipher, file processor and CLI."""

    kdf: str = ARGON2ID
    argon2_time_cost: int = 3
    argon2_memory_kib: int = 65536
    argon2_parallelism: int = 1
    pbkdf2_iterations: int = 600_000
    key_size_bits: int = 256
    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_level: str = "WARNING"

    def kdf_params(self) -> KdfParams:
        if self.kdf == PBKDF2_SHA256:
            return KdfParams.pbkdf2(iterations=self.pbkdf2_iterations)
        return KdfParams.argon2id(
            time_cost=self.argon2_time_cost,
            memory_cost=self.argon2_memory_kib,
            parallelism=self.argon2_parallelism,
        )

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidParameterError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise InvalidParameterError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build :class:`Settings` from the environment.

    Unset variables fall back to the defaults on :class:`Settings`. Values are
    validated here so a bad deployment fails at startup instead of on the
    first decrypt.
    """
    env = os.environ if environ is None else environ

    # blank values count as unset, as for the integer settings
    kdf = env.get("SEALBOX_KDF", "").strip().lower() or ARGON2ID
    if kdf not in (ARGON2ID, PBKDF2_SHA256):
        raise InvalidParameterError(f"SEALBOX_KDF must be '{ARGON2ID}' or '{PBKDF2_SHA256}', got {kdf!r}")

    key_size = _int_setting(env, "SEALBOX_KEY_SIZE", 256)
    if key_size not in SUPPORTED_KEY_SIZES:
        raise InvalidParameterError(f"SEALBOX_KEY_SIZE must be one of {SUPPORTED_KEY_SIZES}, got {key_size}")

    log_level = env.get("SEALBOX_LOG_LEVEL", "").strip().upper() or "WARNING"
    if not isinstance(logging.getLevelName(log_level), int):
        raise InvalidParameterError(f"SEALBOX_LOG_LEVEL is not a logging level: {log_level!r}")

    settings = Settings(
        kdf=kdf,
        argon2_time_cost=_int_setting(env, "SEALBOX_ARGON2_TIME_COST", 3),
        argon2_memory_kib=_int_setting(env, "SEALBOX_ARGON2_MEMORY_KIB", 65536),
        argon2_parallelism=_int_setting(env, "SEALBOX_ARGON2_PARALLELISM", 1),
        pbkdf2_iterations=_int_setting(env, "SEALBOX_PBKDF2_ITERATIONS", 600_000),
        key_size_bits=key_size,
        chunk_size=_int_setting(env, "SEALBOX_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        log_level=log_level,
    )
    if settings.chunk_size > MAX_CHUNK_SIZE:
        raise InvalidParameterError(f"SEALBOX_CHUNK_SIZE must be at most {MAX_CHUNK_SIZE}, got {settings.chunk_size}")
    # KdfParams validates its own bounds
    settings.kdf_params()
    return settings
