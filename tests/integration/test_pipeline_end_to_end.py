"""
Integration test walking the browser flow end to end: upload, separate,
convert, combine, retrieve, then reclaim.

Replicate is faked at the requests seam and its output URLs are served
by an in-memory httpx transport, so the real adapters, resolver, cache
backends and soundfile mixer all run.
"""
import io
import os
import time
from unittest.mock import Mock, patch

import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from tests.helpers import mock_http_client, wav_bytes
from villager_voice.api import main
from villager_voice.api.main import app
from villager_voice.config.settings import Settings
from villager_voice.runtime import build_runtime
from villager_voice.services.replicate import DEMUCS_VERSION, RVC_VERSION, build_replicate_services

pytestmark = pytest.mark.integration

CDN = "https://replicate.delivery/pbxt/job"

REMOTE_FILES = {
    f"{CDN}/vocals.wav": wav_bytes(2.0, freq=440.0),
    f"{CDN}/drums.wav": wav_bytes(4.0, freq=110.0),
    f"{CDN}/bass.wav": wav_bytes(4.0, freq=55.0),
    f"{CDN}/other.wav": wav_bytes(3.0, freq=330.0),
    f"{CDN}/villager.wav": wav_bytes(2.0, freq=660.0),
}


def _prediction(output):
    resp = Mock()
    resp.status_code = 201
    resp.json.return_value = {"id": "p", "status": "succeeded", "output": output}
    return resp


def fake_replicate_post(url, json=None, headers=None, timeout=None):
    if json["version"] == DEMUCS_VERSION:
        assert json["input"]["audio"].startswith("data:audio/")
        return _prediction({name: f"{CDN}/{name}.wav" for name in ("vocals", "drums", "bass", "other")})
    assert json["version"] == RVC_VERSION
    return _prediction([f"{CDN}/villager.wav"])


@pytest.fixture(params=["json", "sqlite"])
def client(request, tmp_path):
    settings = Settings.from_env({
        "VV_ARTIFACTS_DIR": str(tmp_path / "temp"),
        "VV_CACHE_FILE": str(tmp_path / "cache.json"),
        "VV_CACHE_DB": str(tmp_path / "cache.db"),
        "VV_CACHE_BACKEND": request.param,
        "VV_MIX_TOOL": "soundfile",
    })
    separator, converter = build_replicate_services("r8_test", poll_interval_s=0)
    runtime = build_runtime(
        settings,
        separator=separator,
        converter=converter,
        http_client=mock_http_client(REMOTE_FILES),
    )
    
    main.set_runtime(runtime)
    with patch("villager_voice.services.replicate.requests.post", side_effect=fake_replicate_post) as mock_post:
        with TestClient(app) as c:
            c.mock_post = mock_post
            c.runtime = runtime
            yield c
    main.set_runtime(None)


def test_browser_flow(client):
    song = wav_bytes(4.0)
    
    # Upload twice: one artifact, same token
    up = client.post("/api/upload-audio", files={"audio": ("My Song.wav", song, "audio/wav")}).json()
    again = client.post("/api/upload-audio", files={"audio": ("copy.wav", song, "audio/wav")}).json()
    assert up["filename"] == again["filename"]
    
    # Separate: remote stems downloaded, instrumental returned as three stems
    sep = client.post("/api/separate-vocals", json={"filename": up["filename"]}).json()
    assert sep["instrumentalSource"] == "stems"
    assert len(sep["instrumentalUrl"]["stems"]) == 3
    for url in [sep["vocalsUrl"], *sep["instrumentalUrl"]["stems"]]:
        assert url.startswith("/api/audio?file=")
    
    # Convert: remote output kept as a locator
    conv = client.post("/api/convert-to-villager", json={"audioUrl": sep["vocalsUrl"]}).json()
    assert conv["villagerUrl"] == f"{CDN}/villager.wav"
    
    # Combine: remote vocals fetched, output spans the longest stem
    combined = client.post("/api/combine-audio", json={
        "vocalsUrl": conv["villagerUrl"],
        "instrumentalUrl": sep["instrumentalUrl"],
    }).json()
    assert combined["mixed"] is True
    
    served = client.get(combined["combinedUrl"])
    assert served.status_code == 200
    assert served.headers["content-type"] == "audio/wav"
    
    data, sr = sf.read(io.BytesIO(served.content))
    assert data.shape[0] / sr == pytest.approx(4.0, abs=0.01)
    assert data.shape[1] == 2
    
    # Repeat separate + convert: both answered from cache
    calls = client.mock_post.call_count
    assert client.post("/api/separate-vocals", json={"filename": up["filename"]}).json()["cached"] is True
    assert client.post("/api/convert-to-villager", json={"audioUrl": sep["vocalsUrl"]}).json()["cached"] is True
    assert client.mock_post.call_count == calls


def test_reclaim_invalidates_cache(client):
    store = client.runtime.store
    up = client.post("/api/upload-audio", files={"audio": ("a.wav", wav_bytes(1.0), "audio/wav")}).json()
    client.post("/api/separate-vocals", json={"filename": up["filename"]})
    assert client.mock_post.call_count == 1
    
    # Age every artifact past the retention window and sweep
    past = time.time() - 2 * 3600
    for name in store.list():
        os.utime(store.path(name), (past, past))
    report = client.post("/admin/sweep").json()
    assert len(report["removed"]) >= 5
    assert store.list() == []
    
    # The cached separation is now stale; the source is gone too
    response = client.post("/api/separate-vocals", json={"filename": up["filename"]})
    assert response.status_code == 404
    
    # Re-upload restores the source and separation runs again
    client.post("/api/upload-audio", files={"audio": ("a.wav", wav_bytes(1.0), "audio/wav")})
    response = client.post("/api/separate-vocals", json={"filename": up["filename"]})
    assert response.status_code == 200
    assert response.json()["cached"] is False
    assert client.mock_post.call_count == 2


def test_process_endpoint(client):
    response = client.post(
        "/api/process",
        files={"audio": ("song.wav", wav_bytes(4.0), "audio/wav")},
    )
    
    assert response.status_code == 200
    data = response.json()
    assert data["path"] == ["ingest", "separate", "convert", "combine"]
    assert data["separation"]["instrumentalSource"] == "stems"
    assert data["conversion"]["villagerUrl"] == f"{CDN}/villager.wav"
    assert data["outputUrl"] == data["combined"]["combinedUrl"]
