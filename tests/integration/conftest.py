import pytest
from linenote.config import Settings
from linenote.review.loader import FileSource


def pytest_collection_modifyitems(items):
    """Add 'integration' marker to all tests in this directory."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def settings():
    return Settings(open_browser=False, watch_interval=0.01, heartbeat_interval=0.05, max_payload_bytes=1024)


@pytest.fixture
def csv_source(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("name,price\napple,100\n", encoding="utf-8")
    return FileSource(path=path)
