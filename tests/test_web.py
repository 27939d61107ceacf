"""Tests for the HTTP surface."""

import asyncio
import json
import socket
import threading
import time

import pytest
import uvicorn
from fastapi.testclient import TestClient

from subtrans.config import AppConfig
from subtrans.parser import parse_srt
from subtrans.web import create_app

from conftest import FakeTranslator


SAMPLE = (
    "1\n00:00:01,000 --> 00:00:02,000\nHello\n\n"
    "2\n00:00:03,000 --> 00:00:04,000\nGood\nmorning\n\n"
    "3\n00:00:05,000 --> 00:00:06,000\nBye\n"
)


def make_config(**overrides):
    config = AppConfig(api_key=None, target_language="es", batch_size=10, max_upload_mb=1)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def app(store, translator):
    return create_app(make_config(), translator=translator, store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def upload(client, content=SAMPLE, filename="movie.srt"):
    data = content.encode("utf-8") if isinstance(content, str) else content
    return client.post("/upload", files={"srt": (filename, data, "text/plain")})


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


class LoopCheckingStore:
    """Delegates to a real store and notes calls made on an event-loop thread."""

    def __init__(self, inner):
        self.inner = inner
        self.calls_on_loop = []

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                pass
            else:
                self.calls_on_loop.append(name)
            return attr(*args, **kwargs)

        return call


class TestHealth:

    def test_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}


class TestUpload:

    def test_upload(self, client):
        response = upload(client)
        assert response.status_code == 200
        body = response.json()
        assert body["totalSubtitles"] == 3
        assert body["preview"][1] == {
            "index": 2,
            "timestamp": "00:00:03,000 --> 00:00:04,000",
            "text": "Good\nmorning",
            "translatedText": None,
        }

    def test_preview_limited(self, client):
        content = "\n".join(f"{i}\nts\nLine {i}\n" for i in range(1, 9))
        body = upload(client, content).json()
        assert body["totalSubtitles"] == 8
        assert len(body["preview"]) == 5

    def test_wrong_extension(self, client):
        response = upload(client, filename="movie.txt")
        assert response.status_code == 400

    def test_empty_file(self, client):
        assert upload(client, b"").status_code == 400

    def test_no_entries(self, client):
        assert upload(client, "just\ntwo lines\n").status_code == 400

    def test_too_large(self, client):
        response = upload(client, b"a" * (1024 * 1024 + 1))
        assert response.status_code == 413

    def test_listed(self, client):
        set_id = upload(client).json()["setId"]
        sets = client.get("/sets").json()
        assert sets[0]["setId"] == set_id
        assert sets[0]["originalFilename"] == "movie.srt"


class TestTranslateAndDownload:

    def test_translate_then_download(self, client):
        set_id = upload(client).json()["setId"]

        response = client.post(f"/translate/{set_id}")
        assert response.status_code == 200
        assert response.json() == {"success": True, "translated": 3}

        response = client.get(f"/download/{set_id}")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'filename="translated.srt"' in response.headers["content-disposition"]
        entries = parse_srt(response.text)
        assert [e.text for e in entries] == ["[es] Hello", "[es] Good\nmorning", "[es] Bye"]

    def test_target_language(self, client):
        set_id = upload(client).json()["setId"]
        client.post(f"/translate/{set_id}", params={"target": "fr"})
        assert "[fr] Hello" in client.get(f"/download/{set_id}").text

    def test_download_untranslated(self, client):
        set_id = upload(client).json()["setId"]
        assert client.get(f"/download/{set_id}").text == SAMPLE

    def test_unknown_set(self, client):
        assert client.post("/translate/999").status_code == 404
        assert client.get("/download/999").status_code == 404

    def test_failure(self, store):
        app = create_app(make_config(batch_size=2), translator=FakeTranslator(fail_on={"Bye"}), store=store)
        with TestClient(app) as client:
            set_id = upload(client).json()["setId"]
            response = client.post(f"/translate/{set_id}")
            assert response.status_code == 502
            assert "Bye" in response.json()["detail"]

            # 第一批已保存，失败批次保留原文
            entries = parse_srt(client.get(f"/download/{set_id}").text)
            assert [e.text for e in entries] == ["[es] Hello", "[es] Good\nmorning", "Bye"]

    def test_provider_not_configured(self, store):
        app = create_app(make_config(), store=store)
        with TestClient(app) as client:
            set_id = upload(client).json()["setId"]
            assert client.post(f"/translate/{set_id}").status_code == 503


class TestStoreAccess:

    def test_store_calls_leave_event_loop(self, store, translator):
        checking = LoopCheckingStore(store)
        app = create_app(make_config(), translator=translator, store=checking)
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            set_id = upload(client).json()["setId"]
            assert client.get("/sets").status_code == 200
            assert client.post(f"/translate/{set_id}").status_code == 200
            assert client.get(f"/download/{set_id}").status_code == 200
            assert client.get("/download/999").status_code == 404

        assert checking.calls_on_loop == []


class TestProgressStream:

    def test_stream_until_completed(self, app, client):
        set_id = upload(client).json()["setId"]
        channel = app.state.channel

        def trigger():
            deadline = time.monotonic() + 5
            while channel.subscriber_count == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            client.post(f"/translate/{set_id}")

        worker = threading.Thread(target=trigger)
        worker.start()
        response = client.get(f"/translation-progress/{set_id}")
        worker.join()

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        messages = [
            json.loads(chunk[len("data: "):])
            for chunk in response.text.split("\n\n")
            if chunk.startswith("data: ")
        ]
        assert messages == [
            {"jobId": set_id, "current": 0, "total": 3},
            {"jobId": set_id, "current": 3, "total": 3},
            {"jobId": set_id, "current": 3, "total": 3, "completed": True},
        ]
        assert channel.subscriber_count == 0

    def test_client_disconnect_removes_subscription(self, app, store):
        set_id = store.create_set("movie.srt", parse_srt(SAMPLE)).id
        channel = app.state.channel

        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        server = uvicorn.Server(
            uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning")
        )
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        try:
            assert wait_for(lambda: server.started)

            conn = socket.create_connection(("127.0.0.1", port), timeout=5)
            conn.sendall(
                f"GET /translation-progress/{set_id} HTTP/1.1\r\n"
                f"Host: 127.0.0.1:{port}\r\n\r\n".encode("ascii")
            )
            assert conn.recv(1024).startswith(b"HTTP/1.1 200")
            assert wait_for(lambda: channel.subscriber_count == 1)

            # 没有任何终止事件时断开连接
            conn.close()
            assert wait_for(lambda: channel.subscriber_count == 0)
        finally:
            server.should_exit = True
            thread.join(timeout=5)
