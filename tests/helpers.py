import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from notesync.exceptions import RemoteDeleteFailure, RemoteSyncFailure, StorageWriteFailure
from notesync.storage.kv_store import MemoryKeyValueStore
from notesync.storage.local_store import Note
from notesync.utils.identity import Identity

USER = Identity(user_id="userA")

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def ts(minutes: int) -> str:
    return (BASE + timedelta(minutes=minutes)).isoformat()


def make_note(
    note_id: str,
    title: str = "",
    content: str = "",
    updated: int = 0,
    user_id: Optional[str] = None,
    guest_id: Optional[str] = None,
    dirty: bool = False,
    sort_order: Optional[int] = None,
    color: Optional[str] = None,
    synced_at: Optional[str] = None,
) -> Note:
    if user_id is None and guest_id is None:
        user_id = "userA"
    return Note(
        id=note_id,
        user_id=user_id,
        guest_id=guest_id,
        title=title,
        content=content,
        color=color,
        sort_order=sort_order,
        created_at=ts(0),
        updated_at=ts(updated),
        synced_at=synced_at,
        is_dirty=dirty,
    )


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Memory store whose writes can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageWriteFailure(f"disk full writing '{key}'", details={"key": key})
        super().set(key, value)


class FakeRemoteStore:
    """In-memory remote store with per-operation failure switches."""

    def __init__(self):
        self.rows: dict[str, Note] = {}
        self.upserts: list[str] = []
        self.deleted: list[str] = []
        self.fail_upsert: set[str] = set()
        self.fail_all_upserts = False
        self.fail_query = False
        self.fail_delete = False
        self.fail_search = False
        self.search_results: Optional[list[Note]] = None

    def put(self, note: Note) -> None:
        self.rows[note.id] = note

    async def upsert(self, note: Note, owner: Identity) -> None:
        await asyncio.sleep(0)
        if self.fail_all_upserts or note.id in self.fail_upsert:
            raise RemoteSyncFailure("push refused", details={"note_id": note.id})
        self.upserts.append(note.id)
        existing = self.rows.get(note.id)
        if existing is None or note.updated() > existing.updated():
            self.rows[note.id] = note.evolve(
                user_id=owner.user_id, guest_id=None, is_dirty=False, synced_at=note.updated_at
            )

    async def delete(self, note_id: str, owner: Identity) -> None:
        await asyncio.sleep(0)
        if self.fail_delete:
            raise RemoteDeleteFailure("delete refused", details={"note_id": note_id})
        row = self.rows.get(note_id)
        if row is not None and row.user_id == owner.user_id:
            del self.rows[note_id]
            self.deleted.append(note_id)

    async def query_by_owner(self, owner: Identity) -> list[Note]:
        await asyncio.sleep(0)
        if self.fail_query:
            raise RemoteSyncFailure("query refused")
        rows = [n for n in self.rows.values() if n.user_id == owner.user_id]
        return sorted(rows, key=lambda n: n.updated(), reverse=True)

    async def search_full_text(self, query: str, owner: Identity) -> list[Note]:
        await asyncio.sleep(0)
        if self.fail_search:
            raise RemoteSyncFailure("search refused")
        if self.search_results is not None:
            return list(self.search_results)
        q = query.lower()
        return [
            n
            for n in self.rows.values()
            if n.user_id == owner.user_id and (q in n.title.lower() or q in n.content.lower())
        ]
