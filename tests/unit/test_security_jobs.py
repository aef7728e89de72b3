"""Unit tests for background file jobs."""

import os
import threading

import pytest

from sealbox.core.exceptions import AuthenticationFailedError, OperationCancelledError
from sealbox.security.jobs import FileJob, JobState
from sealbox.security.kdf import KdfParams
from sealbox.security.stream import ChunkedFileProcessor


@pytest.fixture
def processor():
    return ChunkedFileProcessor(kdf_params=KdfParams.pbkdf2(iterations=1000), chunk_size=512)


@pytest.fixture
def plain_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(os.urandom(4096))
    return path


def test_submit_encrypt_and_decrypt(processor, plain_file, tmp_path):
    seen = []
    job = processor.submit_encrypt_file(plain_file, "pw", on_progress=seen.append)
    blob, envelope = job.result(timeout=30)

    assert job.done()
    assert job.state is JobState.DONE
    assert job.progress == 1.0
    assert seen[-1] == 1.0

    job = processor.submit_decrypt_file(blob, envelope, "pw", output_path=tmp_path / "back.txt")
    out = job.result(timeout=30)
    assert out.read_bytes() == plain_file.read_bytes()


def test_failed_job_reraises(processor, plain_file):
    blob, envelope = processor.encrypt_file(plain_file, "pw")
    job = processor.submit_decrypt_file(blob, envelope, "wrong")

    with pytest.raises(AuthenticationFailedError):
        job.result(timeout=30)
    assert job.state is JobState.FAILED


def test_cancelled_job(processor, plain_file, tmp_path):
    """A job whose cancel event is already set stops before the first chunk."""
    cancel = threading.Event()
    cancel.set()
    out = tmp_path / "cancelled.enc"

    job = processor.submit_encrypt_file(plain_file, "pw", cancel_event=cancel, output_path=out)

    with pytest.raises(OperationCancelledError):
        job.result(timeout=30)
    assert job.state is JobState.CANCELLED
    assert job.progress == 0.0
    assert not out.exists()


def test_cancel_from_caller():
    """cancel() sets the event the worker is watching."""
    started = threading.Event()

    def work(on_progress, cancel_event):
        started.set()
        if not cancel_event.wait(10):
            return "finished"
        raise OperationCancelledError("operation cancelled")

    job = FileJob(work).start()
    assert started.wait(10)
    job.cancel()

    with pytest.raises(OperationCancelledError):
        job.result(timeout=10)
    assert job.state is JobState.CANCELLED


def test_result_timeout():
    release = threading.Event()

    def work(on_progress, cancel_event):
        release.wait(10)
        return 42

    job = FileJob(work).start()
    with pytest.raises(TimeoutError):
        job.result(timeout=0.01)
    release.set()
    assert job.result(timeout=10) == 42


def test_progress_is_polled():
    step = threading.Event()
    reported = threading.Event()

    def work(on_progress, cancel_event):
        on_progress(0.5)
        reported.set()
        step.wait(10)
        on_progress(1.0)
        return "ok"

    job = FileJob(work)
    assert job.state is JobState.PENDING
    job.start()
    assert reported.wait(10)
    assert job.progress == 0.5
    step.set()
    assert job.result(timeout=10) == "ok"
    assert job.progress == 1.0
