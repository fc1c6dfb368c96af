import importlib

import httpx
import pytest
from fastapi.testclient import TestClient

from helpers import FakeRemoteStore, FlakyKeyValueStore
from notesync.services.notes import NotesService
from notesync.services.search import SearchService
from notesync.services.session import NotesSession
from notesync.services.sync import SyncEngine
from notesync.storage.local_store import LocalStore
from notesync.storage.remote_store import HttpRemoteStore
from notesync.utils.identity import StaticIdentityProvider


@pytest.fixture()
def kv():
    return FlakyKeyValueStore()


@pytest.fixture()
def store(kv):
    return LocalStore(kv)


@pytest.fixture()
def remote():
    return FakeRemoteStore()


@pytest.fixture()
def identity():
    # signed out until a test sets .identity
    return StaticIdentityProvider()


@pytest.fixture()
def service(store, remote, identity):
    return NotesService(store, remote, identity)


@pytest.fixture()
def engine(store, remote):
    return SyncEngine(store, remote)


@pytest.fixture()
def searcher(store, remote, identity):
    return SearchService(store, remote, identity)


@pytest.fixture()
def session(service, engine, searcher):
    return NotesSession(service, engine, searcher)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    # isolate data dir per test
    monkeypatch.setenv("APP_DATA_DIR", str(tmp_path / "server"))
    monkeypatch.setenv("JWT_SECRET", "dev-secret-for-tests")
    monkeypatch.setenv("JWT_EXP_MINUTES", "15")

    # reload modules so that api/notes.py picks up new env vars
    import notesync.api.notes
    import notesync.main
    importlib.reload(notesync.api.notes)
    importlib.reload(notesync.main)
    return notesync.main.app


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
async def http(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture()
def http_remote(http):
    return HttpRemoteStore(http)
