from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from notesync.config import ClientSettings
from notesync.services.notes import NotesService
from notesync.services.search import SearchService
from notesync.services.session import NotesSession
from notesync.services.sync import SyncEngine
from notesync.storage.kv_store import FileKeyValueStore, KeyValueStore
from notesync.storage.local_store import LocalStore
from notesync.storage.remote_store import HttpRemoteStore, RemoteStore
from notesync.utils.identity import IdentityProvider, SessionIdentityProvider

logger = logging.getLogger(__name__)


@dataclass
class NoteSyncClient:
    store: LocalStore
    remote: Optional[RemoteStore]
    identity: IdentityProvider
    notes: NotesService
    sync: SyncEngine
    search: SearchService
    session: NotesSession
    http: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self.http is not None and not self.http.is_closed:
            await self.http.aclose()


def build_client(
    settings: Optional[ClientSettings] = None,
    identity: Optional[IdentityProvider] = None,
    kv: Optional[KeyValueStore] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> NoteSyncClient:
    """Wire the device store, remote store and services together.

    Without a remote URL (and no ``http`` client) the client runs local-only:
    identity is ignored and nothing leaves the device.
    """
    settings = settings or ClientSettings.from_env()
    store = LocalStore(kv if kv is not None else FileKeyValueStore(settings.data_dir))
    identity = identity if identity is not None else SessionIdentityProvider()

    if http is None and settings.remote_url:
        http = httpx.AsyncClient(base_url=settings.remote_url, timeout=settings.http_timeout)
    remote = HttpRemoteStore(http) if http is not None else None
    if remote is None:
        logger.info("No remote store configured, running local-only")

    notes = NotesService(store, remote, identity)
    sync = SyncEngine(store, remote)
    search = SearchService(store, remote, identity)
    return NoteSyncClient(
        store=store,
        remote=remote,
        identity=identity,
        notes=notes,
        sync=sync,
        search=search,
        session=NotesSession(notes, sync, search),
        http=http,
    )
