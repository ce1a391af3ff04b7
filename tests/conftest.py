import os
import tempfile
import time
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# main.py builds a module level app on import; keep its upload dir out of the checkout
os.environ.setdefault("DRILL_UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "drill-converter-tests"))

from drill_converter.config import Settings  # noqa: E402
from drill_converter.main import create_app  # noqa: E402

TERMINAL = ("completed", "failed")


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        upload_dir=str(tmp_path / "uploads"),
        step_delay=0.01,
        total_steps=10,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def client(settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def slow_client(tmp_path) -> Generator[TestClient, None, None]:
    """Client whose runs stay in flight for the duration of a test."""
    app = create_app(make_settings(tmp_path, step_delay=5.0))
    with TestClient(app) as test_client:
        yield test_client


def upload(client: TestClient, content: bytes = b"RIFF....WAVEfmt ", filename: str = "track.wav",
           mime: str = "audio/wav", intensity=None):
    data = {} if intensity is None else {"intensity": intensity}
    return client.post("/api/upload", files={"audio": (filename, content, mime)}, data=data)


def wait_for_terminal(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/conversions/{job_id}").json()
        if body["status"] in TERMINAL:
            return body
        if time.monotonic() > deadline:
            raise AssertionError(f"job {job_id} still {body['status']} after {timeout}s")
        time.sleep(0.02)
