import asyncio

import pytest
from fastapi.testclient import TestClient

from storage import StorageWorker
from storage.store import PageStore
from web import create_app


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'wiki.db'}"


@pytest.fixture
def store(db_url):
    """An initialized PageStore on a throwaway SQLite file."""
    store = PageStore(url=db_url)
    asyncio.run(store.initialize()).unwrap()
    yield store
    store.close()


@pytest.fixture
def worker(db_url):
    """A running StorageWorker; its facade is what the HTTP layer talks to."""
    worker = StorageWorker(PageStore(url=db_url), timeout=5)
    worker.thread_start()
    assert worker.wait_ready(5)
    yield worker
    worker.thread_stop()


@pytest.fixture
def facade(worker):
    return worker.facade


@pytest.fixture
def client(worker):
    with TestClient(create_app(worker.facade)) as client:
        yield client
