"""In-memory note list with optimistic updates.

Each mutation changes the visible list before the local write lands. The
change is tracked as an ``OptimisticMutation`` that ends COMMITTED when the
service call returns, or ROLLED_BACK (view restored) when it raises.
"""
import logging
import time
from enum import Enum
from typing import Any, Iterable, Optional

from notesync.services.notes import UNSET, MutationResult, NotesService
from notesync.services.search import SearchService
from notesync.services.sync import SyncEngine, SyncReport
from notesync.storage.local_store import Note, utc_now_iso

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Note"


class MutationState(Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def sort_for_display(notes: Iterable[Note]) -> list[Note]:
    # manual order first; unordered notes count as 0; newest first within a slot
    return sorted(notes, key=lambda n: (n.sort_order or 0, -n.updated().timestamp()))


class OptimisticMutation:
    def __init__(self, session: "NotesSession", action: str):
        self.session = session
        self.action = action
        self.snapshot = list(session.notes)
        self.state = MutationState.PENDING

    def commit(self, notes: list[Note]) -> None:
        self.session.notes = sort_for_display(notes)
        self.state = MutationState.COMMITTED

    def rollback(self) -> None:
        self.session.notes = self.snapshot
        self.state = MutationState.ROLLED_BACK
        logger.info("Rolled back optimistic %s", self.action)


class NotesSession:
    def __init__(self, notes: NotesService, sync: SyncEngine, search: SearchService):
        self.service = notes
        self.sync = sync
        self.searcher = search
        self.notes: list[Note] = []
        self.last_mutation: Optional[OptimisticMutation] = None

    def _begin(self, action: str) -> OptimisticMutation:
        self.last_mutation = OptimisticMutation(self, action)
        return self.last_mutation

    async def refresh(self) -> SyncReport:
        report = await self.sync.reconcile(self.service.active_identity())
        self.notes = sort_for_display(self.service.store.load())
        return report

    async def add_note(self, title: str, content: str, color: Optional[str] = None) -> MutationResult:
        if not title.strip() and not content.strip():
            title = UNTITLED
        identity = self.service.active_identity()
        now = utc_now_iso()
        temp = Note(
            id=f"temp_{int(time.time() * 1000)}",
            user_id=identity.user_id if identity else None,
            guest_id=None if identity else self.service.store.get_or_create_guest_id(),
            title=title,
            content=content,
            color=color or None,
            sort_order=max((n.sort_order or 0 for n in self.notes), default=0) + 1,
            created_at=now,
            updated_at=now,
            is_dirty=True,
        )
        mutation = self._begin("create")
        self.notes = self.notes + [temp]
        try:
            result = await self.service.create(title, content, color)
        except Exception:
            mutation.rollback()
            raise
        mutation.commit([n for n in self.notes if n.id != temp.id] + [result.note])
        return result

    async def edit_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        color: Optional[str] = UNSET,
    ) -> MutationResult:
        mutation = self._begin("edit")
        changes: dict[str, Any] = {"updated_at": utc_now_iso()}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        if color is not UNSET:
            changes["color"] = color
        self.notes = [n.evolve(**changes) if n.id == note_id else n for n in self.notes]
        try:
            result = await self.service.update(note_id, title=title, content=content, color=color)
        except Exception:
            mutation.rollback()
            raise
        mutation.commit([result.note if n.id == note_id else n for n in self.notes])
        return result

    async def remove_note(self, note_id: str) -> MutationResult:
        mutation = self._begin("delete")
        self.notes = [n for n in self.notes if n.id != note_id]
        try:
            result = await self.service.delete(note_id)
        except Exception:
            mutation.rollback()
            raise
        mutation.commit(self.notes)
        return result

    async def reorder(self, ordered: list[Note]) -> MutationResult:
        mutation = self._begin("reorder")
        listed = {n.id for n in ordered}
        self.notes = [n.evolve(sort_order=i) for i, n in enumerate(ordered)] + [
            n for n in self.notes if n.id not in listed
        ]
        try:
            result = await self.service.reorder(ordered)
        except Exception:
            mutation.rollback()
            raise
        mutation.commit(self.service.store.load())
        return result

    async def search(self, query: str) -> list[Note]:
        return await self.searcher.search(query)
