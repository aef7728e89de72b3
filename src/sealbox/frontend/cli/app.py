"""
SealBox command line.

Usage:
    sealbox encrypt-text "hello world"
    sealbox decrypt-text envelope.json
    sealbox encrypt-file report.pdf --progress
    sealbox decrypt-file report.pdf.encrypted --envelope report.pdf.encrypted.envelope.json
    sealbox keypair --size 3072 --out-dir ./keys
    sealbox aes-key --size 128
    sealbox random --length 32 --hex
    sealbox password --length 24
    sealbox hash "some text" --algorithm SHA-512

The password comes from --password, then SEALBOX_PASSWORD, then a prompt.
File envelopes are never looked up by name; decrypt-file needs --envelope.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from sealbox.core.config import Settings, load_settings
from sealbox.core.exceptions import InvalidParameterError, OperationCancelledError, SealBoxError
from sealbox.core.hashing import HASH_ALGORITHMS, hash_data
from sealbox.core.models import EncryptedEnvelope, b64encode
from sealbox.security import (
    AsymmetricKeyManager,
    ChunkedFileProcessor,
    FileJob,
    SymmetricCipher,
    export_key,
    generate_aes_key,
    generate_password,
    random_bytes,
)
from sealbox.security.keygen import DEFAULT_PASSWORD_LENGTH

from .logging_config import configure_logging

logger = logging.getLogger(__name__)

ENVELOPE_SUFFIX = ".envelope.json"
EXIT_ERROR = 1
EXIT_CANCELLED = 130


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _read_password(args, confirm: bool = False) -> str:
    if args.password:
        return args.password
    env_password = os.getenv("SEALBOX_PASSWORD")
    if env_password:
        return env_password
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise InvalidParameterError("Passwords do not match")
    if not password:
        raise InvalidParameterError("Password must not be empty")
    return password


def _load_envelope(value: str) -> EncryptedEnvelope:
    # accepts a path to an envelope file or the JSON itself
    path = Path(value)
    if not value.lstrip().startswith("{") and path.is_file():
        return EncryptedEnvelope.from_json(path.read_text(encoding="utf-8"))
    return EncryptedEnvelope.from_json(value)


def _write_text_atomic(path: Path, text: str) -> None:
    tmp = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", delete=False, dir=str(path.parent), prefix=".sealbox-", suffix=".part"
    )
    try:
        with tmp:
            tmp.write(text)
        os.replace(tmp.name, path)
    except BaseException:
        Path(tmp.name).unlink(missing_ok=True)
        raise


def _progress_printer(enabled: bool):
    if not enabled:
        return None

    def report(fraction: float) -> None:
        sys.stderr.write(f"\r{fraction * 100:5.1f}%")
        if fraction >= 1.0:
            sys.stderr.write("\n")
        sys.stderr.flush()

    return report


def _wait_for(job: FileJob):
    """Wait for a background job; Ctrl-C cancels it between chunks."""
    try:
        while not job.wait(0.2):
            pass
    except KeyboardInterrupt:
        job.cancel()
    return job.result()


def _processor(settings: Settings) -> ChunkedFileProcessor:
    return ChunkedFileProcessor(
        kdf_params=settings.kdf_params(),
        key_size_bits=settings.key_size_bits,
        chunk_size=settings.chunk_size,
    )


def _cipher(settings: Settings) -> SymmetricCipher:
    return SymmetricCipher(kdf_params=settings.kdf_params(), key_size_bits=settings.key_size_bits)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_encrypt_text(args, settings: Settings) -> int:
    text = sys.stdin.read() if args.text == "-" else args.text
    envelope = _cipher(settings).encrypt_text(text, _read_password(args, confirm=True))
    print(envelope.to_json())
    return 0


def cmd_decrypt_text(args, settings: Settings) -> int:
    envelope = _load_envelope(args.envelope)
    print(_cipher(settings).decrypt_text(envelope, _read_password(args)))
    return 0


def cmd_encrypt_file(args, settings: Settings) -> int:
    password = _read_password(args, confirm=True)
    job = _processor(settings).submit_encrypt_file(
        args.path,
        password,
        output_path=args.output,
        on_progress=_progress_printer(args.progress),
    )
    blob_path, envelope = _wait_for(job)
    envelope_path = Path(args.envelope) if args.envelope else blob_path.with_name(blob_path.name + ENVELOPE_SUFFIX)
    if envelope_path.exists():
        logger.warning("replacing existing envelope %s", envelope_path)
    try:
        _write_text_atomic(envelope_path, envelope.to_json())
    except OSError:
        # a blob without its envelope can never be decrypted
        blob_path.unlink(missing_ok=True)
        raise
    print(f"encrypted: {blob_path}")
    print(f"envelope:  {envelope_path}")
    return 0


def cmd_decrypt_file(args, settings: Settings) -> int:
    envelope = _load_envelope(args.envelope)
    password = _read_password(args)
    job = _processor(settings).submit_decrypt_file(
        args.path,
        envelope,
        password,
        output_path=args.output,
        on_progress=_progress_printer(args.progress),
    )
    out_path = _wait_for(job)
    print(f"decrypted: {out_path}")
    return 0


def cmd_keypair(args, settings: Settings) -> int:
    manager = AsymmetricKeyManager(cipher=_cipher(settings))
    pair = manager.generate_key_pair(args.size)
    record = manager.key_pair_record(args.name, pair, _read_password(args, confirm=True))

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    public_path = out_dir / f"{args.name}.pub"
    private_path = out_dir / f"{args.name}{ENVELOPE_SUFFIX}"
    public_path.write_text(record.public_key + "\n", encoding="utf-8")
    private_path.write_text(record.encrypted_private_key.to_json(), encoding="utf-8")
    print(f"public key:  {public_path}")
    print(f"private key: {private_path} (password protected)")
    return 0


def cmd_aes_key(args, settings: Settings) -> int:
    print(export_key(generate_aes_key(args.size)))
    return 0


def cmd_random(args, settings: Settings) -> int:
    data = random_bytes(args.length)
    print(data.hex() if args.hex else b64encode(data))
    return 0


def cmd_password(args, settings: Settings) -> int:
    print(generate_password(args.length))
    return 0


def cmd_hash(args, settings: Settings) -> int:
    text = sys.stdin.read() if args.text == "-" else args.text
    print(hash_data(text, args.algorithm))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sealbox", description="Local password-based encryption toolkit")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="more logging (repeat for debug)")
    sub = parser.add_subparsers(dest="command", required=True)

    def with_password(p):
        p.add_argument("--password", default=None, help="password (default: $SEALBOX_PASSWORD or prompt)")
        return p

    p = with_password(sub.add_parser("encrypt-text", help="encrypt text into an envelope"))
    p.add_argument("text", help="text to encrypt, or - for stdin")
    p.set_defaults(func=cmd_encrypt_text)

    p = with_password(sub.add_parser("decrypt-text", help="decrypt an envelope back to text"))
    p.add_argument("envelope", help="envelope JSON or a path to it")
    p.set_defaults(func=cmd_decrypt_text)

    p = with_password(sub.add_parser("encrypt-file", help="encrypt a file in chunks"))
    p.add_argument("path")
    p.add_argument("-o", "--output", default=None)
    p.add_argument("--envelope", default=None, help="where to write the envelope JSON")
    p.add_argument("--progress", action="store_true")
    p.set_defaults(func=cmd_encrypt_file)

    p = with_password(sub.add_parser("decrypt-file", help="decrypt a file blob"))
    p.add_argument("path")
    p.add_argument("--envelope", required=True, help="envelope JSON or a path to it")
    p.add_argument("-o", "--output", default=None)
    p.add_argument("--progress", action="store_true")
    p.set_defaults(func=cmd_decrypt_file)

    p = with_password(sub.add_parser("keypair", help="generate an RSA key pair"))
    p.add_argument("--size", type=int, default=2048)
    p.add_argument("--name", default="sealbox")
    p.add_argument("--out-dir", default=".")
    p.set_defaults(func=cmd_keypair)

    p = sub.add_parser("aes-key", help="generate a random AES key")
    p.add_argument("--size", type=int, default=256, choices=(128, 192, 256))
    p.set_defaults(func=cmd_aes_key)

    p = sub.add_parser("random", help="print random bytes")
    p.add_argument("--length", type=int, default=32)
    p.add_argument("--hex", action="store_true")
    p.set_defaults(func=cmd_random)

    p = sub.add_parser("password", help="generate a random password")
    p.add_argument("--length", type=int, default=DEFAULT_PASSWORD_LENGTH)
    p.set_defaults(func=cmd_password)

    p = sub.add_parser("hash", help="hash text")
    p.add_argument("text", help="text to hash, or - for stdin")
    p.add_argument("--algorithm", default="SHA-256", choices=sorted(HASH_ALGORITHMS))
    p.set_defaults(func=cmd_hash)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except InvalidParameterError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    level = settings.log_level_value
    if args.verbose:
        level = logging.DEBUG if args.verbose > 1 else logging.INFO
    configure_logging(level)

    try:
        return args.func(args, settings)
    except OperationCancelledError:
        print("cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except SealBoxError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"error: {e.strerror or e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
