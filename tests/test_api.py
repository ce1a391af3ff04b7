import os

from fastapi.testclient import TestClient

from conftest import make_settings, upload, wait_for_terminal
from drill_converter.main import create_app


def test_upload_returns_pending_job(client: TestClient):
    response = upload(client, intensity="heavy")

    assert response.status_code == 200
    job = response.json()
    assert job["status"] == "pending"
    assert job["progress"] == 0
    assert job["intensity"] == "heavy"
    assert job["originalFilename"] == "track.wav"
    assert job["convertedFilePath"] is None
    assert job["completedAt"] is None
    assert job["metadata"] == {"fileSize": 16, "mimeType": "audio/wav"}
    assert job["id"]


def test_upload_ids_are_unique(client: TestClient):
    ids = {upload(client).json()["id"] for _ in range(5)}
    assert len(ids) == 5


def test_intensity_defaults_to_medium(client: TestClient):
    assert upload(client).json()["intensity"] == "medium"
    assert upload(client, intensity="").json()["intensity"] == "medium"


def test_full_conversion_and_download(client: TestClient):
    content = os.urandom(2 * 1024 * 1024)
    job = upload(client, content=content, filename="my_song.wav", intensity="heavy").json()

    final = wait_for_terminal(client, job["id"])
    assert final["status"] == "completed"
    assert final["progress"] == 100
    assert final["convertedFilePath"].endswith(f"converted_{job['id']}.mp3")
    assert final["completedAt"] is not None

    response = client.get(f"/api/download/{job['id']}")
    assert response.status_code == 200
    assert response.content == content
    assert response.headers["content-type"] == "audio/mpeg"
    assert 'filename="my_song_drill_heavy.mp3"' in response.headers["content-disposition"]


def test_disallowed_mime_type_creates_no_job(client: TestClient):
    response = upload(client, content=b"just some text", filename="notes.mp3", mime="text/plain")

    assert response.status_code == 400
    assert "Invalid file type" in response.json()["detail"]
    assert client.get("/api/conversions").json() == []


def test_missing_file_is_rejected(client: TestClient):
    response = client.post("/api/upload", data={"intensity": "soft"})

    assert response.status_code == 400
    assert response.json()["detail"] == "No file uploaded"


def test_invalid_intensity_is_rejected(client: TestClient):
    response = upload(client, intensity="extreme")

    assert response.status_code == 400
    assert "intensity" in response.json()["detail"]
    assert client.get("/api/conversions").json() == []


def test_oversized_upload_is_rejected(tmp_path):
    settings = make_settings(tmp_path, max_upload_bytes=1024)
    with TestClient(create_app(settings)) as client:
        response = upload(client, content=b"\0" * 4096)

        assert response.status_code == 400
        assert "too large" in response.json()["detail"]
        assert client.get("/api/conversions").json() == []
    assert os.listdir(settings.upload_dir) == []


def test_get_unknown_conversion_is_404(client: TestClient):
    response = client.get("/api/conversions/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"] == "Conversion not found"


def test_list_conversions_newest_first(client: TestClient):
    first = upload(client, filename="a.wav").json()
    second = upload(client, filename="b.wav").json()
    third = upload(client, filename="c.wav").json()

    listed = client.get("/api/conversions").json()
    assert [job["id"] for job in listed] == [third["id"], second["id"], first["id"]]
    repeated = client.get("/api/conversions").json()
    assert [job["id"] for job in repeated] == [job["id"] for job in listed]


def test_download_unknown_job_is_404(client: TestClient):
    assert client.get("/api/download/nope").status_code == 404


def test_download_while_processing_is_404(slow_client: TestClient):
    job = upload(slow_client).json()

    response = slow_client.get(f"/api/download/{job['id']}")
    assert response.status_code == 404
    assert response.json()["detail"] == "File not found"


def test_download_when_converted_file_deleted(client: TestClient):
    job = upload(client).json()
    final = wait_for_terminal(client, job["id"])
    os.remove(final["convertedFilePath"])

    response = client.get(f"/api/download/{job['id']}")
    assert response.status_code == 404
    assert response.json()["detail"] == "File not found on disk"


def test_cancel_in_flight_conversion(slow_client: TestClient):
    job = upload(slow_client).json()

    response = slow_client.post(f"/api/conversions/{job['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["progress"] == 0

    again = slow_client.post(f"/api/conversions/{job['id']}/cancel")
    assert again.status_code == 409


def test_cancel_unknown_conversion_is_404(client: TestClient):
    assert client.post("/api/conversions/missing/cancel").status_code == 404


def test_healthz_counts_jobs(client: TestClient):
    upload(client)
    assert client.get("/healthz").json() == {"status": "ok", "jobs": 1}
