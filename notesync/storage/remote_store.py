"""Remote store contract and its HTTP binding.

The remote store is authoritative for notes owned by a signed-in identity.
Every operation is scoped to the owner passed in; the HTTP binding sends the
owner's bearer token and lets the server enforce ownership.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from notesync.exceptions import RemoteDeleteFailure, RemoteSyncFailure
from notesync.storage.local_store import Note, parse_ts
from notesync.utils.identity import Identity

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    async def upsert(self, note: Note, owner: Identity) -> None: ...

    async def delete(self, note_id: str, owner: Identity) -> None: ...

    async def query_by_owner(self, owner: Identity) -> list[Note]: ...

    async def search_full_text(self, query: str, owner: Identity) -> list[Note]: ...


def note_from_remote(raw: dict[str, Any]) -> Note:
    """Build a clean local record from a remote row."""
    parse_ts(raw["updated_at"])
    return Note(
        id=str(raw["id"]),
        user_id=str(raw["user_id"]),
        guest_id=None,
        title=raw.get("title") or "",
        content=raw.get("content") or "",
        color=raw.get("color"),
        sort_order=raw.get("sort_order"),
        created_at=raw.get("created_at") or raw["updated_at"],
        updated_at=raw["updated_at"],
        synced_at=raw.get("synced_at"),
        is_dirty=False,
    )


def _payload(note: Note) -> dict[str, Any]:
    return {
        "title": note.title,
        "content": note.content,
        "color": note.color,
        "sort_order": note.sort_order,
        "created_at": note.created_at,
        "updated_at": note.updated_at,
    }


class HttpRemoteStore:
    """Talks to the notes API served by ``notesync.main``.

    Args:
        client: An ``httpx.AsyncClient`` whose ``base_url`` points at the API.
            The caller owns its lifecycle.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @staticmethod
    def _headers(owner: Identity) -> dict[str, str]:
        if not owner.access_token:
            return {}
        return {"Authorization": f"Bearer {owner.access_token}"}

    async def _request(
        self, method: str, url: str, owner: Identity, *, params: Optional[dict] = None, json: Any = None
    ) -> httpx.Response:
        try:
            return await self.client.request(method, url, headers=self._headers(owner), params=params, json=json)
        except httpx.HTTPError as e:
            raise RemoteSyncFailure(f"{method} {url} failed: {e}", details={"url": url}) from e

    @staticmethod
    def _check(response: httpx.Response, note_id: Optional[str] = None) -> None:
        if response.is_success:
            return
        details: dict[str, Any] = {"status": response.status_code}
        if note_id is not None:
            details["note_id"] = note_id
        raise RemoteSyncFailure(
            f"{response.request.method} {response.request.url.path} returned {response.status_code}", details=details
        )

    async def upsert(self, note: Note, owner: Identity) -> None:
        body = _payload(note)
        response = await self._request("POST", f"/notes/{note.id}/sync", owner, json=body)
        if response.status_code == 404:
            logger.info("Sync procedure unavailable, falling back to plain upsert for %s", note.id)
            response = await self._request("PUT", f"/notes/{note.id}", owner, json=body)
        self._check(response, note.id)
        logger.debug("Pushed note %s for %s", note.id, owner.user_id)

    async def delete(self, note_id: str, owner: Identity) -> None:
        try:
            response = await self._request("DELETE", f"/notes/{note_id}", owner)
            self._check(response, note_id)
        except RemoteSyncFailure as e:
            raise RemoteDeleteFailure(e.message, details=e.details) from e

    @staticmethod
    def _parse_notes(response: httpx.Response) -> list[Note]:
        try:
            return [note_from_remote(raw) for raw in response.json()]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise RemoteSyncFailure(
                f"{response.request.method} {response.request.url.path} returned an unreadable body: {e}",
                details={"status": response.status_code},
            ) from e

    async def query_by_owner(self, owner: Identity) -> list[Note]:
        response = await self._request("GET", "/notes", owner)
        self._check(response)
        notes = self._parse_notes(response)
        notes.sort(key=lambda n: n.updated(), reverse=True)
        return notes

    async def search_full_text(self, query: str, owner: Identity) -> list[Note]:
        response = await self._request("GET", "/notes/search", owner, params={"q": query})
        self._check(response)
        return self._parse_notes(response)
