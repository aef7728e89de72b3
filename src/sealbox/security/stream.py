"""Chunked AES-GCM file encryption with progress reporting and cancellation.

One key is derived per file from the password and a fresh salt, and one random
base IV is drawn. Chunk ``i`` is sealed with:

- nonce: ``base_iv XOR i`` (12 bytes, big-endian)
- associated data: ``algorithm tag || i (4 bytes, big-endian) || final flag (1 byte)``

Blob layout is the sealed chunks back to back with no headers; every chunk
but the last holds exactly ``chunk_size`` plaintext bytes. Binding the index
and the final flag means reordered, dropped, truncated or appended chunks
fail authentication. An empty file is one empty final chunk.

The envelope returned next to the blob carries iv, salt and the algorithm tag
(which records the chunk size); its ``ciphertext`` field is empty.
"""

from __future__ import annotations

import contextlib
import logging
import os
import struct
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Tuple, Union

from sealbox.core.exceptions import (
    AuthenticationFailedError,
    InvalidParameterError,
    OperationCancelledError,
)
from sealbox.core.models import EncryptedEnvelope
from .algorithms import IV_LENGTH, TAG_LENGTH, AlgorithmSuite, validate_envelope
from .cipher import as_envelope, open_sealed, seal
from .jobs import FileJob
from .kdf import KdfParams, derive_key, generate_salt

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".encrypted"
DECRYPTED_SUFFIX = ".decrypted"
DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CHUNKS = 2 ** 32

# largest fraction reported before the final chunk
_ALMOST_DONE = 0.999999

ProgressCallback = Callable[[float], None]
PathLike = Union[str, Path]


def encrypted_name(name: str) -> str:
    return name + ENCRYPTED_SUFFIX


def decrypted_name(name: str) -> str:
    """Strip the ``.encrypted`` suffix if present; otherwise keep the name."""
    if name.endswith(ENCRYPTED_SUFFIX) and len(name) > len(ENCRYPTED_SUFFIX):
        return name[: -len(ENCRYPTED_SUFFIX)]
    return name


def chunk_nonce(base_iv: bytes, index: int) -> bytes:
    return (int.from_bytes(base_iv, "big") ^ index).to_bytes(IV_LENGTH, "big")


def chunk_aad(algorithm: str, index: int, final: bool) -> bytes:
    return algorithm.encode("ascii") + struct.pack(">IB", index, 1 if final else 0)


def _read_full(src: BinaryIO, size: int) -> bytes:
    # Raw streams (pipes, sockets, RawIOBase) may return short reads before EOF.
    parts = []
    remaining = size
    while remaining:
        data = src.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b"".join(parts)


def _read_chunks(src: BinaryIO, size: int) -> Iterator[Tuple[bytes, bool]]:
    # Yields (chunk, is_last). Reads one chunk ahead so the last one is known.
    current = _read_full(src, size)
    while True:
        following = _read_full(src, size) if len(current) == size else b""
        yield current, not following
        if not following:
            return
        current = following


def _stream_size(src: BinaryIO) -> Optional[int]:
    try:
        pos = src.tell()
        end = src.seek(0, os.SEEK_END)
        src.seek(pos)
        return end - pos
    except (OSError, ValueError):
        # unseekable input: progress stays at 0.0 until the final chunk
        return None


class _Progress:
    """
    Turns byte counts into fractions that never decrease.

    The last chunk is not reported by :meth:`advance`; :meth:`finish` reports
    1.0 once the result is committed, so 1.0 always means success.
    """

    def __init__(self, total: Optional[int], callback: Optional[ProgressCallback]):
        self.total = total
        self.callback = callback
        self.done = 0
        self.last = 0.0

    def advance(self, nbytes: int, final: bool) -> None:
        self.done += nbytes
        if self.callback is None or final:
            return
        if self.total:
            fraction = min(self.done / self.total, _ALMOST_DONE)
        else:
            fraction = 0.0
        self.last = max(self.last, fraction)
        self.callback(self.last)

    def finish(self) -> None:
        self.last = 1.0
        if self.callback is not None:
            self.callback(1.0)


@contextlib.contextmanager
def _atomic_output(final_path: Path) -> Iterator[BinaryIO]:
    # Write to a temp file beside the target; only a complete result is moved into place.
    tmp = tempfile.NamedTemporaryFile(
        delete=False, dir=str(final_path.parent), prefix=".sealbox-", suffix=".part"
    )
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            yield tmp
        os.replace(tmp_path, final_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class ChunkedFileProcessor:
    """
    Encrypt and decrypt files in fixed-size chunks under a password.

    Peak memory is bounded by a couple of chunks regardless of file size.
    ``on_progress`` receives fractions in ``[0.0, 1.0]`` after each chunk, with
    1.0 reported once the output is complete, and
    ``cancel_event`` is checked before each chunk.
    """

    def __init__(
        self,
        kdf_params: Optional[KdfParams] = None,
        key_size_bits: int = 256,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.kdf_params = kdf_params or KdfParams.argon2id()
        # validates key size and chunk size
        self.suite = AlgorithmSuite(key_size_bits=key_size_bits, kdf=self.kdf_params, chunk_size=chunk_size)

    @property
    def chunk_size(self) -> int:
        return self.suite.chunk_size

    # ------------------------------------------------------------------
    # Stream level
    # ------------------------------------------------------------------

    def encrypt_stream(
        self,
        src: BinaryIO,
        dst: BinaryIO,
        password: Union[str, bytes],
        total_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> EncryptedEnvelope:
        """
        Encrypt ``src`` into ``dst`` and return the envelope for the blob.

        On error ``dst`` may hold a partial blob; :meth:`encrypt_file` takes
        care of discarding it.
        """
        progress = _Progress(total_size if total_size is not None else _stream_size(src), on_progress)
        envelope = self._encrypt_chunks(src, dst, password, progress, cancel_event)
        progress.finish()
        return envelope

    def decrypt_stream(
        self,
        src: BinaryIO,
        dst: BinaryIO,
        envelope,
        password: Union[str, bytes],
        total_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Decrypt a blob produced by :meth:`encrypt_stream`.

        The chunk size, KDF and key size come from ``envelope``, not from this
        processor's settings. Chunks are verified before they are written, but
        a later chunk can still fail, so ``dst`` must be discarded on error.
        """
        progress = _Progress(total_size if total_size is not None else _stream_size(src), on_progress)
        self._decrypt_chunks(src, dst, envelope, password, progress, cancel_event)
        progress.finish()

    def _encrypt_chunks(self, src, dst, password, progress: _Progress, cancel_event) -> EncryptedEnvelope:
        if not password:
            raise InvalidParameterError("Password must not be empty")
        salt = generate_salt()
        base_iv = os.urandom(IV_LENGTH)
        tag = self.suite.tag
        key = derive_key(password, salt, self.suite.key_size_bits, self.suite.kdf)

        count = 0
        for index, (chunk, final) in enumerate(_read_chunks(src, self.chunk_size)):
            _check_cancelled(cancel_event)
            if index >= MAX_CHUNKS:
                raise InvalidParameterError("File has too many chunks for this chunk size")
            _, sealed = seal(key, chunk, chunk_aad(tag, index, final), iv=chunk_nonce(base_iv, index))
            dst.write(sealed)
            progress.advance(len(chunk), final)
            count += 1

        logger.info("encrypted %d bytes in %d chunk(s)", progress.done, count)
        return EncryptedEnvelope(ciphertext=b"", iv=base_iv, algorithm=tag, salt=salt)

    def _decrypt_chunks(self, src, dst, envelope, password, progress: _Progress, cancel_event) -> None:
        envelope = as_envelope(envelope)
        suite = validate_envelope(envelope, require_password=True, chunked=True)
        key = derive_key(password, envelope.salt, suite.key_size_bits, suite.kdf)

        count = 0
        for index, (sealed, final) in enumerate(_read_chunks(src, suite.chunk_size + TAG_LENGTH)):
            _check_cancelled(cancel_event)
            if index >= MAX_CHUNKS:
                raise AuthenticationFailedError()
            try:
                chunk = open_sealed(key, chunk_nonce(envelope.iv, index), sealed, chunk_aad(envelope.algorithm, index, final))
            except AuthenticationFailedError:
                logger.warning("file decryption failed at chunk %d: authentication failed", index)
                raise
            dst.write(chunk)
            progress.advance(len(sealed), final)
            count += 1

        logger.info("decrypted %d chunk(s)", count)

    # ------------------------------------------------------------------
    # File level
    # ------------------------------------------------------------------

    def encrypt_file(
        self,
        path: PathLike,
        password: Union[str, bytes],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        output_path: Optional[PathLike] = None,
    ) -> Tuple[Path, EncryptedEnvelope]:
        """
        Encrypt ``path`` to ``<name>.encrypted`` (or ``output_path``).

        Returns the blob path and its envelope. The caller must keep the
        envelope; the blob alone cannot be decrypted. Progress reaches 1.0
        only after the blob has been moved into place.
        """
        src_path = Path(path)
        out_path = Path(output_path) if output_path is not None else src_path.with_name(encrypted_name(src_path.name))
        logger.info("encrypting %s -> %s", src_path.name, out_path.name)

        with open(src_path, "rb") as src:
            progress = _Progress(os.fstat(src.fileno()).st_size, on_progress)
            with _atomic_output(out_path) as dst:
                envelope = self._encrypt_chunks(src, dst, password, progress, cancel_event)
        progress.finish()
        return out_path, envelope

    def decrypt_file(
        self,
        blob_path: PathLike,
        envelope,
        password: Union[str, bytes],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        output_path: Optional[PathLike] = None,
    ) -> Path:
        """
        Decrypt ``blob_path`` with its ``envelope``; nothing is written unless every chunk verifies.

        Without ``output_path`` the ``.encrypted`` suffix is stripped; a blob
        without that suffix decrypts to ``<name>.decrypted`` so it is not
        replaced by its own plaintext.
        """
        src_path = Path(blob_path)
        if output_path is not None:
            out_path = Path(output_path)
        else:
            name = decrypted_name(src_path.name)
            if name == src_path.name:
                name += DECRYPTED_SUFFIX
            out_path = src_path.with_name(name)
        logger.info("decrypting %s -> %s", src_path.name, out_path.name)

        with open(src_path, "rb") as src:
            progress = _Progress(os.fstat(src.fileno()).st_size, on_progress)
            with _atomic_output(out_path) as dst:
                self._decrypt_chunks(src, dst, envelope, password, progress, cancel_event)
        progress.finish()
        return out_path

    def submit_encrypt_file(self, path: PathLike, password: Union[str, bytes], **kwargs) -> FileJob:
        """Run :meth:`encrypt_file` on a background thread."""
        return FileJob(self.encrypt_file, path, password, name="sealbox-encrypt", **kwargs).start()

    def submit_decrypt_file(self, blob_path: PathLike, envelope, password: Union[str, bytes], **kwargs) -> FileJob:
        """Run :meth:`decrypt_file` on a background thread."""
        return FileJob(self.decrypt_file, blob_path, envelope, password, name="sealbox-decrypt", **kwargs).start()


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("file operation cancelled; partial output discarded")
        raise OperationCancelledError("operation cancelled")
