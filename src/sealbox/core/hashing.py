""" Utility for hashing files and text. """

import hashlib
from pathlib import Path
from typing import Union

from sealbox.core.exceptions import InvalidParameterError


CHUNK_SIZE = 65536  # 64KB

HASH_ALGORITHMS = {
    "SHA-256": hashlib.sha256,
    "SHA-384": hashlib.sha384,
    "SHA-512": hashlib.sha512,
}


def calculate_sha256(file_path: Union[str, Path]) -> str:

    # Calculates the SHA-256 hash of a file.

    sha256 = hashlib.sha256()
    with open(file_path, 'rb') as f:
        while True:
            data = f.read(CHUNK_SIZE)
            if not data:
                break
            sha256.update(data)
    return sha256.hexdigest()


def hash_data(data: Union[str, bytes], algorithm: str = "SHA-256") -> str:
    """Return the hex digest of ``data``; text is hashed as UTF-8."""
    factory = HASH_ALGORITHMS.get(algorithm.upper())
    if factory is None:
        raise InvalidParameterError(f"Unsupported hash algorithm: {algorithm!r}")
    if isinstance(data, str):
        data = data.encode("utf-8")
    return factory(data).hexdigest()
