import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_NOTE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_dt(s: str) -> datetime:
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _safe_user_dir(base_dir: Path, user_id: str) -> Path:
    # user_id comes from the token subject; still keep it out of path syntax
    if not user_id or any(ch in user_id for ch in "/\\") or ".." in user_id:
        raise ValueError("Invalid user_id")
    return base_dir / "users" / user_id / "notes"


def valid_note_id(note_id: str) -> bool:
    return bool(_NOTE_ID_RE.match(note_id))


def _note_path(base_dir: Path, user_id: str, note_id: str) -> Path:
    if not valid_note_id(note_id):
        raise ValueError("Invalid note_id")
    return _safe_user_dir(base_dir, user_id) / f"{note_id}.json"


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


@dataclass(frozen=True)
class StoredNote:
    id: str
    user_id: str
    title: str
    content: str
    color: Optional[str]
    sort_order: Optional[int]
    created_at: str
    updated_at: str
    synced_at: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "content": self.content,
            "color": self.color,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "synced_at": self.synced_at,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StoredNote":
        return cls(
            id=raw["id"],
            user_id=raw["user_id"],
            title=raw["title"],
            content=raw["content"],
            color=raw.get("color"),
            sort_order=raw.get("sort_order"),
            created_at=raw["created_at"],
            updated_at=raw["updated_at"],
            synced_at=raw.get("synced_at"),
        )


def _score(note: StoredNote, terms: list[str]) -> int:
    title = note.title.lower()
    content = note.content.lower()
    return sum(2 * title.count(t) + content.count(t) for t in terms)


class NotesStore:
    """Authoritative per-user note storage behind the notes API.

    One JSON file per note under ``users/<user_id>/notes/``.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def list_notes(self, user_id: str) -> list[StoredNote]:
        notes_dir = _safe_user_dir(self.base_dir, user_id)
        if not notes_dir.exists():
            return []
        out: list[StoredNote] = []
        for p in notes_dir.glob("*.json"):
            try:
                out.append(StoredNote.from_dict(json.loads(p.read_text(encoding="utf-8"))))
            except (ValueError, KeyError) as e:
                logger.warning("Skipping unreadable note file %s: %s", p.name, e)
        out.sort(key=lambda n: _parse_dt(n.updated_at), reverse=True)
        return out

    def get_note(self, user_id: str, note_id: str) -> StoredNote | None:
        path = _note_path(self.base_dir, user_id, note_id)
        if not path.exists():
            return None
        return StoredNote.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def upsert_note(
        self,
        user_id: str,
        note_id: str,
        title: str,
        content: str,
        color: Optional[str],
        sort_order: Optional[int],
        updated_at: str,
        created_at: Optional[str] = None,
    ) -> StoredNote:
        existing = self.get_note(user_id, note_id)
        note = StoredNote(
            id=note_id,
            user_id=user_id,
            title=title,
            content=content,
            color=color,
            sort_order=sort_order,
            created_at=existing.created_at if existing else (created_at or updated_at),
            updated_at=updated_at,
            synced_at=_utc_now_iso(),
        )
        _atomic_write_json(_note_path(self.base_dir, user_id, note_id), note.to_dict())
        return note

    def sync_note(
        self,
        user_id: str,
        note_id: str,
        title: str,
        content: str,
        color: Optional[str],
        sort_order: Optional[int],
        updated_at: str,
        created_at: Optional[str] = None,
    ) -> tuple[StoredNote, bool]:
        """Upsert only when the incoming copy is strictly newer.

        Returns the stored note and whether the incoming copy was applied.
        """
        existing = self.get_note(user_id, note_id)
        if existing is not None and _parse_dt(updated_at) <= _parse_dt(existing.updated_at):
            logger.debug("Kept stored copy of %s (incoming is not newer)", note_id)
            return existing, False
        note = self.upsert_note(user_id, note_id, title, content, color, sort_order, updated_at, created_at)
        return note, True

    def delete_note(self, user_id: str, note_id: str) -> bool:
        path = _note_path(self.base_dir, user_id, note_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def search_notes(self, user_id: str, query: str) -> list[StoredNote]:
        terms = [t for t in query.lower().split() if t]
        if not terms:
            return []
        scored = [(n, _score(n, terms)) for n in self.list_notes(user_id)]
        # list_notes is newest first and sort is stable, so ties stay newest first
        scored = [pair for pair in scored if pair[1] > 0]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [n for n, _ in scored]
