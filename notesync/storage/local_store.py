import asyncio
import json
import logging
import random
import string
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from notesync.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

NOTES_KEY = "notes"
GUEST_ID_KEY = "guest_id"
SYNC_QUEUE_KEY = "sync_queue"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(s: str) -> datetime:
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def generate_id(prefix: str) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class Note:
    id: str
    user_id: Optional[str]
    guest_id: Optional[str]
    title: str
    content: str
    color: Optional[str]
    sort_order: Optional[int]
    created_at: str
    updated_at: str
    synced_at: Optional[str] = None
    is_dirty: bool = False

    def __post_init__(self) -> None:
        # owned by exactly one of: signed-in user, device guest
        if (self.user_id is None) == (self.guest_id is None):
            raise ValueError(f"Note {self.id} must have exactly one of user_id/guest_id")

    def updated(self) -> datetime:
        return parse_ts(self.updated_at)

    def evolve(self, **changes: Any) -> "Note":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guest_id": self.guest_id,
            "title": self.title,
            "content": self.content,
            "color": self.color,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
            "is_dirty": self.is_dirty,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Note":
        sort_order = raw.get("sort_order")
        return cls(
            id=str(raw["id"]),
            user_id=raw.get("user_id"),
            guest_id=raw.get("guest_id"),
            title=raw.get("title") or "",
            content=raw.get("content") or "",
            color=raw.get("color"),
            sort_order=int(sort_order) if sort_order is not None else None,
            created_at=raw["created_at"],
            updated_at=raw["updated_at"],
            synced_at=raw.get("synced_at"),
            is_dirty=bool(raw.get("is_dirty", False)),
        )


class LocalStore:
    """Device-resident note collection, persisted as one blob.

    Reads and writes always cover the whole collection. Callers that load,
    modify and save must hold ``lock`` for the whole sequence.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self.lock = asyncio.Lock()

    def load(self) -> list[Note]:
        blob = self.kv.get(NOTES_KEY)
        if not blob:
            return []
        try:
            records = json.loads(blob)
        except ValueError:
            records = None
        if not isinstance(records, list):
            logger.error("Stored notes blob is unreadable, starting from an empty collection")
            return []
        notes: list[Note] = []
        for raw in records:
            try:
                notes.append(Note.from_dict(raw))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping unreadable stored note: %s", e)
                continue
        return notes

    def save(self, notes: Iterable[Note]) -> None:
        notes = list(notes)
        self.kv.set(NOTES_KEY, json.dumps([n.to_dict() for n in notes], ensure_ascii=False, indent=2))
        logger.debug("Saved %d notes", len(notes))

    def get_or_create_guest_id(self) -> str:
        guest_id = self.kv.get(GUEST_ID_KEY)
        if not guest_id:
            guest_id = generate_id("guest")
            self.kv.set(GUEST_ID_KEY, guest_id)
            logger.info("Created guest id %s", guest_id)
        return guest_id

    def pending(self) -> list[str]:
        blob = self.kv.get(SYNC_QUEUE_KEY)
        if not blob:
            return []
        try:
            return [str(x) for x in json.loads(blob)]
        except (ValueError, TypeError):
            return []

    def enqueue(self, note_id: str) -> None:
        queue = self.pending()
        if note_id not in queue:
            queue.append(note_id)
            self.kv.set(SYNC_QUEUE_KEY, json.dumps(queue))

    def dequeue(self, note_id: str) -> None:
        queue = self.pending()
        if note_id in queue:
            self.kv.set(SYNC_QUEUE_KEY, json.dumps([x for x in queue if x != note_id]))
