"""Reconciliation between the device store and the remote store.

One pass migrates guest notes to the signed-in identity, pulls every remote
note of that identity and merges by ``updated_at`` (last write wins over the
whole record). Wall-clock timestamps are the only ordering signal, so clock
skew between devices can pick the wrong winner.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from notesync.exceptions import NoteSyncError, RemoteSyncFailure
from notesync.storage.local_store import LocalStore, Note
from notesync.storage.remote_store import RemoteStore
from notesync.utils.identity import Identity

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    migrated: list[str] = field(default_factory=list)
    inserted: list[str] = field(default_factory=list)
    overwritten: list[str] = field(default_factory=list)
    pushed: list[str] = field(default_factory=list)
    errors: list[NoteSyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class SyncEngine:
    def __init__(self, store: LocalStore, remote: Optional[RemoteStore]):
        self.store = store
        self.remote = remote

    async def _push(self, note: Note, identity: Identity, report: SyncReport) -> None:
        try:
            await self.remote.upsert(note, identity)
        except RemoteSyncFailure as e:
            logger.warning("Push of note %s failed, it stays dirty: %s", note.id, e)
            report.errors.append(e)
        else:
            report.pushed.append(note.id)

    async def _migrate_guest_notes(self, identity: Identity, report: SyncReport) -> list[Note]:
        async with self.store.lock:
            notes = self.store.load()
            migrated: list[Note] = []
            for i, n in enumerate(notes):
                if n.user_id is None and n.guest_id is not None:
                    notes[i] = n.evolve(user_id=identity.user_id, guest_id=None, is_dirty=True)
                    migrated.append(notes[i])
            if migrated:
                self.store.save(notes)

        for note in migrated:
            logger.debug("Migrated guest note %s to %s", note.id, identity.user_id)
            report.migrated.append(note.id)
            await self._push(note, identity, report)
        return migrated

    def _merge(self, local: list[Note], remote_notes: list[Note], report: SyncReport) -> list[Note]:
        index = {n.id: i for i, n in enumerate(local)}
        to_push: list[Note] = []
        for theirs in remote_notes:
            i = index.get(theirs.id)
            if i is None:
                sort_order = theirs.sort_order if theirs.sort_order is not None else len(local)
                local.append(theirs.evolve(sort_order=sort_order, is_dirty=False))
                index[theirs.id] = len(local) - 1
                report.inserted.append(theirs.id)
                continue

            mine = local[i]
            sort_order = theirs.sort_order if theirs.sort_order is not None else mine.sort_order
            if theirs.updated() > mine.updated():
                local[i] = mine.evolve(
                    user_id=theirs.user_id,
                    guest_id=None,
                    title=theirs.title,
                    content=theirs.content,
                    color=theirs.color,
                    sort_order=sort_order,
                    updated_at=theirs.updated_at,
                    synced_at=theirs.synced_at,
                    is_dirty=False,
                )
                report.overwritten.append(theirs.id)
            elif mine.updated() > theirs.updated() and mine.is_dirty:
                to_push.append(mine)
            else:
                local[i] = mine.evolve(sort_order=sort_order, synced_at=theirs.synced_at, is_dirty=False)
        return to_push

    @staticmethod
    def _unseen_dirty(local: list[Note], remote_notes: list[Note], identity: Identity, skip: set[str]) -> list[Note]:
        remote_ids = {n.id for n in remote_notes}
        return [
            n
            for n in local
            if n.is_dirty and n.user_id == identity.user_id and n.id not in remote_ids and n.id not in skip
        ]

    def _prune_pending(self, local: list[Note]) -> None:
        dirty = {n.id for n in local if n.is_dirty}
        for note_id in self.store.pending():
            if note_id not in dirty:
                self.store.dequeue(note_id)

    async def reconcile(self, identity: Optional[Identity]) -> SyncReport:
        report = SyncReport()
        if identity is None or self.remote is None:
            return report

        logger.info("Starting sync for %s", identity.user_id)
        migrated = await self._migrate_guest_notes(identity, report)

        try:
            remote_notes = await self.remote.query_by_owner(identity)
        except RemoteSyncFailure as e:
            logger.warning("Fetching remote notes failed, sync stopped after migration: %s", e)
            report.errors.append(e)
            return report

        async with self.store.lock:
            local = self.store.load()
            to_push = self._merge(local, remote_notes, report)
            # dirty notes the remote has never seen, e.g. a create or migration whose push failed
            to_push += self._unseen_dirty(local, remote_notes, identity, {n.id for n in migrated})
            self.store.save(local)
            self._prune_pending(local)

        # local wins: the remote copy is older and the local one never reached it
        for note in to_push:
            await self._push(note, identity, report)

        logger.info(
            "Sync completed for %s: %d migrated, %d inserted, %d overwritten, %d pushed, %d errors",
            identity.user_id,
            len(report.migrated),
            len(report.inserted),
            len(report.overwritten),
            len(report.pushed),
            len(report.errors),
        )
        return report
