"""Unit tests for the SealBox command line (Frontend)."""

import hashlib
import json

import pytest

from sealbox.core.models import EncryptedEnvelope, b64decode
from sealbox.frontend.cli import app
from sealbox.frontend.cli.app import main
from sealbox.security.jobs import FileJob


# --- Fixtures ---

@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Cheap KDF and small chunks so every command runs quickly."""
    monkeypatch.setenv("SEALBOX_KDF", "pbkdf2-sha256")
    monkeypatch.setenv("SEALBOX_PBKDF2_ITERATIONS", "1000")
    monkeypatch.setenv("SEALBOX_CHUNK_SIZE", "1024")
    monkeypatch.delenv("SEALBOX_PASSWORD", raising=False)
    monkeypatch.delenv("SEALBOX_KEY_SIZE", raising=False)
    monkeypatch.delenv("SEALBOX_LOG_LEVEL", raising=False)


def run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


# --- Text ---

def test_encrypt_decrypt_text(capsys):
    code, out, _ = run(capsys, "encrypt-text", "hello world", "--password", "correct-horse")
    assert code == 0
    envelope = EncryptedEnvelope.from_json(out)
    assert envelope.algorithm == "AES-256-GCM/PBKDF2-SHA256/1000"

    code, out, _ = run(capsys, "decrypt-text", out.strip(), "--password", "correct-horse")
    assert code == 0
    assert out == "hello world\n"


def test_decrypt_text_from_file(capsys, tmp_path):
    _, out, _ = run(capsys, "encrypt-text", "from a file", "--password", "pw")
    envelope_path = tmp_path / "note.json"
    envelope_path.write_text(out, encoding="utf-8")

    code, out, _ = run(capsys, "decrypt-text", str(envelope_path), "--password", "pw")
    assert code == 0
    assert out.strip() == "from a file"


def test_decrypt_text_wrong_password(capsys):
    _, out, _ = run(capsys, "encrypt-text", "hello world", "--password", "correct-horse")
    code, out, err = run(capsys, "decrypt-text", out.strip(), "--password", "wrong")
    assert code == 1
    assert out == ""
    assert "authentication failed" in err


def test_password_from_environment(capsys, monkeypatch):
    monkeypatch.setenv("SEALBOX_PASSWORD", "from-env")
    _, out, _ = run(capsys, "encrypt-text", "secret")
    code, out, _ = run(capsys, "decrypt-text", out.strip(), "--password", "from-env")
    assert code == 0
    assert out.strip() == "secret"


def test_malformed_envelope(capsys):
    code, _, err = run(capsys, "decrypt-text", "{not json", "--password", "pw")
    assert code == 1
    assert err.startswith("error:")


def test_invalid_settings_exit_code(capsys, monkeypatch):
    monkeypatch.setenv("SEALBOX_KDF", "scrypt")
    code, _, err = run(capsys, "random")
    assert code == 1
    assert "SEALBOX_KDF" in err


# --- Files ---

def test_encrypt_decrypt_file(capsys, tmp_path):
    source = tmp_path / "report.bin"
    data = bytes(range(256)) * 20
    source.write_bytes(data)

    code, out, err = run(capsys, "encrypt-file", str(source), "--password", "pw", "--progress")
    assert code == 0
    blob = tmp_path / "report.bin.encrypted"
    envelope_path = tmp_path / "report.bin.encrypted.envelope.json"
    assert blob.exists()
    assert envelope_path.exists()
    assert "100.0%" in err
    assert json.loads(envelope_path.read_text())["algorithm"].startswith("AES-256-GCM-STREAM1024/")

    restored = tmp_path / "restored.bin"
    code, out, _ = run(
        capsys, "decrypt-file", str(blob), "--envelope", str(envelope_path), "--password", "pw", "-o", str(restored)
    )
    assert code == 0
    assert restored.read_bytes() == data
    assert str(restored) in out


def test_decrypt_file_wrong_password_leaves_no_output(capsys, tmp_path):
    source = tmp_path / "a.txt"
    source.write_bytes(b"x" * 3000)
    run(capsys, "encrypt-file", str(source), "--password", "pw")
    source.unlink()

    code, _, err = run(
        capsys,
        "decrypt-file",
        str(tmp_path / "a.txt.encrypted"),
        "--envelope",
        str(tmp_path / "a.txt.encrypted.envelope.json"),
        "--password",
        "nope",
    )
    assert code == 1
    assert "error:" in err
    assert not source.exists()
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".part")] == []


def test_encrypt_missing_file(capsys, tmp_path):
    code, _, err = run(capsys, "encrypt-file", str(tmp_path / "missing"), "--password", "pw")
    assert code == 1
    assert err.startswith("error:")


# --- Keys and utilities ---

def test_keypair(capsys, tmp_path):
    code, out, _ = run(capsys, "keypair", "--name", "laptop", "--out-dir", str(tmp_path), "--password", "pw")
    assert code == 0
    assert (tmp_path / "laptop.pub").read_text().strip()
    envelope = EncryptedEnvelope.from_json((tmp_path / "laptop.envelope.json").read_text())
    assert envelope.salt is not None


def test_keypair_rejects_bad_size(capsys, tmp_path):
    code, _, err = run(capsys, "keypair", "--size", "1024", "--out-dir", str(tmp_path), "--password", "pw")
    assert code == 1
    assert "RSA key size" in err


@pytest.mark.parametrize("size", [128, 192, 256])
def test_aes_key(capsys, size):
    code, out, _ = run(capsys, "aes-key", "--size", str(size))
    assert code == 0
    assert len(b64decode(out.strip())) == size // 8


def test_random_hex(capsys):
    code, out, _ = run(capsys, "random", "--length", "16", "--hex")
    assert code == 0
    assert len(bytes.fromhex(out.strip())) == 16


def test_random_base64(capsys):
    _, out, _ = run(capsys, "random")
    assert len(b64decode(out.strip())) == 32


def test_password(capsys):
    code, out, _ = run(capsys, "password", "--length", "24")
    assert code == 0
    assert len(out.strip()) == 24


def test_hash(capsys):
    code, out, _ = run(capsys, "hash", "abc", "--algorithm", "SHA-512")
    assert code == 0
    assert out.strip() == hashlib.sha512(b"abc").hexdigest()


def test_missing_command_exits():
    with pytest.raises(SystemExit):
        main([])


def test_cancelled_job_exit_code(capsys, monkeypatch):
    def cancelled(args, settings):
        from sealbox.core.exceptions import OperationCancelledError

        raise OperationCancelledError("operation cancelled")

    monkeypatch.setattr(app, "cmd_random", cancelled)
    # subcommand defaults are bound when the parser is built
    code, _, err = run(capsys, "random")
    assert code == 130
    assert "cancelled" in err


def test_envelope_write_failure_removes_blob(capsys, tmp_path):
    source = tmp_path / "a.txt"
    source.write_bytes(b"payload")
    envelope_path = tmp_path / "missing-dir" / "a.json"

    code, _, err = run(capsys, "encrypt-file", str(source), "--password", "pw", "--envelope", str(envelope_path))

    assert code == 1
    assert err.startswith("error:")
    assert not (tmp_path / "a.txt.encrypted").exists()
    assert not envelope_path.exists()


def test_existing_envelope_is_replaced_with_warning(capsys, caplog, tmp_path):
    source = tmp_path / "a.txt"
    source.write_bytes(b"payload")
    envelope_path = tmp_path / "a.txt.encrypted.envelope.json"
    envelope_path.write_text("stale", encoding="utf-8")

    code, _, err = run(capsys, "encrypt-file", str(source), "--password", "pw")

    assert code == 0
    assert "replacing existing envelope" in caplog.text
    EncryptedEnvelope.from_json(envelope_path.read_text())


def test_ctrl_c_cancels_file_job(capsys, tmp_path, monkeypatch):
    """Ctrl-C while waiting cancels the job before its next chunk and leaves nothing behind."""
    real_start = FileJob.start
    real_cancel = FileJob.cancel

    def deferred_start(self):
        # the worker only starts once cancel() has run, so the outcome is deterministic
        return self

    def cancel_then_start(self):
        real_cancel(self)
        real_start(self)

    def interrupted_wait(self, timeout=None):
        raise KeyboardInterrupt

    monkeypatch.setattr(FileJob, "start", deferred_start)
    monkeypatch.setattr(FileJob, "cancel", cancel_then_start)
    monkeypatch.setattr(FileJob, "wait", interrupted_wait)

    source = tmp_path / "big.bin"
    source.write_bytes(b"x" * 5000)
    code, _, err = run(capsys, "encrypt-file", str(source), "--password", "pw")

    assert code == 130
    assert "cancelled" in err
    assert sorted(p.name for p in tmp_path.iterdir()) == ["big.bin"]
