import socket
import pytest
import yaml
from linenote.config import Settings
from linenote.review.loader import FileSource
from linenote.session import RESULTS_BANNER, ReviewSession, bind_available_port, format_results


def test_format_single_result():
    result = {"file": "a.csv", "mode": "csv", "comments": [{"row": 0, "col": 1, "text": "日本語"}]}

    output = format_results([result])

    assert output.startswith("file: a.csv")
    assert "日本語" in output
    assert yaml.safe_load(output) == result


def test_format_multiple_results():
    results = [{"file": "a.csv", "mode": "csv"}, {"file": "b.md", "mode": "markdown"}]

    assert yaml.safe_load(format_results(results)) == {"files": results}


def test_format_no_results():
    assert yaml.safe_load(format_results([])) == {"files": []}


def test_bind_available_port_skips_used_port():
    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    busy.bind(("127.0.0.1", 0))
    busy.listen()
    port = busy.getsockname()[1]
    try:
        sock = bind_available_port("127.0.0.1", port, 5)
        assert sock is not None
        assert sock.getsockname()[1] != port
        sock.close()
    finally:
        busy.close()


def test_bind_available_port_gives_up():
    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    busy.bind(("127.0.0.1", 0))
    busy.listen()
    try:
        assert bind_available_port("127.0.0.1", busy.getsockname()[1], 1) is None
    finally:
        busy.close()


@pytest.fixture
def session(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")
    return ReviewSession([FileSource(path=path)], Settings(open_browser=False))


def test_session_collects_results_and_stops_server(session):
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    try:
        viewer = session._start_viewer(session.sources[0], sock)
        viewer.app.state.finish({"file": "notes.txt", "mode": "text", "comments": []})
    finally:
        sock.close()

    assert session.results == [{"file": "notes.txt", "mode": "text", "comments": []}]
    assert viewer.server.should_exit is True
    assert viewer.url.startswith("http://localhost:")


def test_session_ignores_empty_result(session):
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    try:
        viewer = session._start_viewer(session.sources[0], sock)
        viewer.app.state.finish(None)
    finally:
        sock.close()

    assert session.results == []
    assert viewer.server.should_exit is True


def test_session_shutdown_stops_all_viewers(session):
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    try:
        viewer = session._start_viewer(session.sources[0], sock)
        session.shutdown()
    finally:
        sock.close()

    assert viewer.server.should_exit is True
    assert viewer.app.state.closed.is_set()


def test_session_report(session):
    session.results.append({"file": "notes.txt", "mode": "text"})

    assert session.report() == f"{RESULTS_BANNER}\nfile: notes.txt\nmode: text"
