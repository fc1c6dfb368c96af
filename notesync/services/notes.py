"""Local-first note mutations.

Every operation writes the local collection first and only then talks to the
remote store. Local write failures raise; remote failures are logged, leave
the note dirty and come back in the ``MutationResult``.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from notesync.exceptions import NoteNotFound, NoteSyncError, RemoteDeleteFailure, RemoteSyncFailure
from notesync.storage.local_store import LocalStore, Note, generate_id, utc_now_iso
from notesync.storage.remote_store import RemoteStore
from notesync.utils.identity import Identity, IdentityProvider

logger = logging.getLogger(__name__)

UNSET: Any = object()


@dataclass
class MutationResult:
    note: Optional[Note] = None
    notes: list[Note] = field(default_factory=list)
    errors: list[NoteSyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class NotesService:
    def __init__(self, store: LocalStore, remote: Optional[RemoteStore], identity: IdentityProvider):
        self.store = store
        self.remote = remote
        self.identity = identity

    def active_identity(self) -> Optional[Identity]:
        if self.remote is None:
            return None
        return self.identity.current_identity()

    async def _push(self, note: Note, identity: Identity) -> Optional[RemoteSyncFailure]:
        try:
            await self.remote.upsert(note, identity)
        except RemoteSyncFailure as e:
            logger.warning("Push of note %s failed, leaving it dirty: %s", note.id, e)
            return e
        return None

    async def _mark_dirty(self, note_ids: set[str]) -> None:
        async with self.store.lock:
            notes = self.store.load()
            for i, n in enumerate(notes):
                if n.id in note_ids and not n.is_dirty:
                    notes[i] = n.evolve(is_dirty=True)
            self.store.save(notes)

    async def create(self, title: str, content: str, color: Optional[str] = None) -> MutationResult:
        identity = self.active_identity()
        async with self.store.lock:
            notes = self.store.load()
            max_order = max((n.sort_order or 0 for n in notes), default=0)
            now = utc_now_iso()
            note = Note(
                id=generate_id("local"),
                user_id=identity.user_id if identity else None,
                guest_id=None if identity else self.store.get_or_create_guest_id(),
                title=title,
                content=content,
                color=color or None,
                sort_order=max_order + 1,
                created_at=now,
                updated_at=now,
                is_dirty=identity is None,
            )
            notes.append(note)
            self.store.save(notes)
        logger.info("Created note %s (%s)", note.id, "signed in" if identity else "guest")

        result = MutationResult(note=note)
        if identity is not None:
            error = await self._push(note, identity)
            if error is not None:
                await self._mark_dirty({note.id})
                result.note = note.evolve(is_dirty=True)
                result.errors.append(error)
        return result

    async def update(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        color: Optional[str] = UNSET,
    ) -> MutationResult:
        """Replace the given fields of a note.

        ``title`` and ``content`` are left alone when None; ``color`` is left
        alone unless passed, so ``color=None`` clears it.
        """
        identity = self.active_identity()
        async with self.store.lock:
            notes = self.store.load()
            index = next((i for i, n in enumerate(notes) if n.id == note_id), None)
            if index is None:
                raise NoteNotFound(note_id)
            existing = notes[index]
            note = existing.evolve(
                title=existing.title if title is None else title,
                content=existing.content if content is None else content,
                color=existing.color if color is UNSET else color,
                updated_at=utc_now_iso(),
                is_dirty=identity is None or existing.is_dirty,
            )
            notes[index] = note
            self.store.save(notes)
            if identity is None:
                self.store.enqueue(note_id)

        result = MutationResult(note=note)
        if identity is not None:
            error = await self._push(note, identity)
            if error is not None:
                await self._mark_dirty({note.id})
                result.note = note.evolve(is_dirty=True)
                result.errors.append(error)
        return result

    async def delete(self, note_id: str) -> MutationResult:
        identity = self.active_identity()
        async with self.store.lock:
            notes = self.store.load()
            self.store.save([n for n in notes if n.id != note_id])
            self.store.dequeue(note_id)

        result = MutationResult()
        if identity is not None:
            try:
                await self.remote.delete(note_id, identity)
            except RemoteDeleteFailure as e:
                # the remote copy may come back on the next pull
                logger.warning("Remote delete of note %s failed: %s", note_id, e)
                result.errors.append(e)
        return result

    async def reorder(self, ordered: Iterable[Note]) -> MutationResult:
        """Give each note its position in ``ordered`` as sort_order.

        Notes of the collection not listed keep their records and follow the
        listed ones.
        """
        ids = [n.id for n in ordered]
        if len(set(ids)) != len(ids):
            raise ValueError("reorder sequence contains duplicate note ids")
        identity = self.active_identity()
        async with self.store.lock:
            stored = self.store.load()
            by_id = {n.id: n for n in stored}
            for note_id in ids:
                if note_id not in by_id:
                    raise NoteNotFound(note_id)
            now = utc_now_iso()
            reordered = [
                by_id[note_id].evolve(
                    sort_order=index,
                    updated_at=now,
                    is_dirty=identity is None or by_id[note_id].is_dirty,
                )
                for index, note_id in enumerate(ids)
            ]
            listed = set(ids)
            self.store.save(reordered + [n for n in stored if n.id not in listed])

        result = MutationResult(notes=reordered)
        if identity is None:
            return result

        failed: set[str] = set()
        for note in reordered:
            error = await self._push(note, identity)
            if error is not None:
                failed.add(note.id)
                result.errors.append(error)
        if failed:
            await self._mark_dirty(failed)
            result.notes = [n.evolve(is_dirty=True) if n.id in failed else n for n in reordered]
        return result
