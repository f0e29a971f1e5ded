import socket

import httpx
import pytest

from core.exceptions import StartupFailure
import main as wiki_main
from main import WikiApp
from storage.store import PageStore


@pytest.fixture
def wiki(db_url):
    wiki = WikiApp(PageStore(url=db_url), host="127.0.0.1", port=0, instances=2, startup_timeout=10)
    yield wiki
    wiki.stop()


def test_start_brings_up_storage_then_replicas(wiki):
    wiki.start()

    assert wiki.storage.is_ready
    assert len(wiki.replicas) == 2
    assert all(server.started for server, _ in wiki.replicas)

    host, port = wiki.address
    base_url = f"http://{host}:{port}"
    response = httpx.post(
        f"{base_url}/save",
        data={"title": "Sandbox", "id": "-1", "markdown": "# hi", "newPage": "yes"},
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/wiki/Sandbox"

    # Every connection, whichever replica takes it, sees the same store
    for _ in range(6):
        with httpx.Client(base_url=base_url) as client:
            page = client.get("/wiki/Sandbox")
            assert page.status_code == 200
            assert "<h1>hi</h1>" in page.text


def test_stop_shuts_everything_down(wiki):
    wiki.start()
    wiki.stop()

    assert wiki.replicas == []
    assert not wiki.storage.is_running


def test_storage_failure_aborts_before_http(tmp_path):
    wiki = WikiApp(
        PageStore(url=f"sqlite:///{tmp_path / 'absent' / 'wiki.db'}"),
        host="127.0.0.1",
        port=0,
        startup_timeout=5,
    )

    with pytest.raises(StartupFailure) as excinfo:
        wiki.start()

    assert excinfo.value.stage == "storage"
    assert wiki.replicas == []
    assert not wiki.storage.is_running


def test_bind_failure_aborts_start(db_url):
    with socket.create_server(("127.0.0.1", 0)) as taken:
        port = taken.getsockname()[1]
        wiki = WikiApp(PageStore(url=db_url), host="127.0.0.1", port=port, startup_timeout=5)

        with pytest.raises(StartupFailure) as excinfo:
            wiki.start()

    assert excinfo.value.stage == "bind"
    assert wiki.replicas == []
    assert not wiki.storage.is_running


class StoragelessWikiApp(WikiApp):
    def _start_storage(self):
        pass


def test_replica_failure_aborts_start(db_url):
    wiki = StoragelessWikiApp(
        PageStore(url=db_url), host="127.0.0.1", port=0, instances=2, startup_timeout=10
    )

    with pytest.raises(StartupFailure) as excinfo:
        wiki.start()

    assert excinfo.value.stage == "http"
    assert "exited during startup" in str(excinfo.value)
    assert wiki.replicas == []
    assert not wiki.storage.is_running


def test_unusable_database_url_aborts_start():
    wiki = WikiApp(url="nosuchdialect://nowhere", host="127.0.0.1", port=0, startup_timeout=5)

    with pytest.raises(StartupFailure) as excinfo:
        wiki.start()

    assert excinfo.value.stage == "storage"
    assert wiki.replicas == []
    assert not wiki.storage.is_running


def test_main_exits_with_status_one_on_startup_failure(monkeypatch):
    monkeypatch.setattr(wiki_main, "DATABASE_URL", "nosuchdialect://nowhere")

    with pytest.raises(SystemExit) as excinfo:
        wiki_main.main()

    assert excinfo.value.code == 1
