import asyncio
import socket
import threading
import httpx
import pytest
from linenote.config import Settings
from linenote.review.loader import FileSource
from linenote.session import ReviewServer, ReviewSession


def _free_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


async def _wait_until_up(client: httpx.AsyncClient, url: str) -> None:
    for _ in range(200):
        try:
            response = await client.get(f"{url}/healthz")
            if response.status_code == 200:
                return
        except httpx.TransportError:
            pass
        await asyncio.sleep(0.05)
    raise AssertionError(f"viewer at {url} never came up")


@pytest.fixture
def run_settings():
    return Settings(host="127.0.0.1", base_port=_free_port(), max_port_attempts=20, open_browser=False)


@pytest.mark.asyncio
async def test_run_returns_submitted_comments(csv_source, run_settings):
    session = ReviewSession([csv_source], run_settings)
    task = asyncio.create_task(session.run())

    async with httpx.AsyncClient() as client:
        while not session.viewers:
            await asyncio.sleep(0.01)
        port = session.viewers[0].url.rsplit(":", 1)[1]
        url = f"http://127.0.0.1:{port}"
        await _wait_until_up(client, url)

        page = await client.get(url)
        assert "apple" in page.text

        response = await client.post(f"{url}/exit", json={
            "file": "data.csv",
            "mode": "csv",
            "comments": [{"row": 1, "col": 0, "text": "typo?", "value": "apple"}],
        })
        assert response.text == "bye"

    results = await asyncio.wait_for(task, timeout=10)

    assert results == [{
        "file": "data.csv",
        "mode": "csv",
        "reason": "button",
        "comments": [{"row": 1, "col": 0, "text": "typo?", "value": "apple"}],
    }]
    assert session.report().startswith("=== All comments received ===\nfile: data.csv")


@pytest.mark.asyncio
async def test_run_uses_consecutive_ports(tmp_path, run_settings):
    sources = []
    for name in ("a.txt", "b.txt"):
        path = tmp_path / name
        path.write_text(name, encoding="utf-8")
        sources.append(FileSource(path=path))
    session = ReviewSession(sources, run_settings)
    task = asyncio.create_task(session.run())

    async with httpx.AsyncClient() as client:
        while len(session.viewers) < 2:
            await asyncio.sleep(0.01)
        ports = [int(viewer.url.rsplit(":", 1)[1]) for viewer in session.viewers]
        for port in ports:
            await _wait_until_up(client, f"http://127.0.0.1:{port}")
        await client.post(f"http://127.0.0.1:{ports[1]}/exit", json={"file": "b.txt", "mode": "text"})
        await client.post(f"http://127.0.0.1:{ports[0]}/exit", json={"file": "a.txt", "mode": "text"})

    results = await asyncio.wait_for(task, timeout=10)

    assert ports[1] > ports[0] >= run_settings.base_port
    assert [result["file"] for result in results] == ["b.txt", "a.txt"]


@pytest.mark.asyncio
async def test_run_survives_failing_viewer(csv_source, run_settings, monkeypatch, caplog):
    async def broken_serve(self, sockets=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(ReviewServer, "serve", broken_serve)
    session = ReviewSession([csv_source], run_settings)

    results = await asyncio.wait_for(session.run(), timeout=5)

    assert results == []
    assert session.viewers[0].app.state.closed.is_set()
    assert "stopped with an error" in caplog.text


@pytest.mark.asyncio
async def test_run_opens_browser_off_the_event_loop(csv_source, run_settings, monkeypatch):
    opened = []

    def fake_open(url):
        opened.append((url, threading.current_thread()))
        return True

    async def quick_serve(self, sockets=None):
        return None

    monkeypatch.setattr("linenote.session.webbrowser.open", fake_open)
    monkeypatch.setattr(ReviewServer, "serve", quick_serve)
    session = ReviewSession([csv_source], run_settings, open_browser=True)

    await asyncio.wait_for(session.run(), timeout=5)

    assert len(opened) == 1
    url, thread = opened[0]
    assert url == session.viewers[0].url
    assert thread is not threading.current_thread()
