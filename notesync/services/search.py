import logging
from typing import Optional

from notesync.exceptions import RemoteSyncFailure
from notesync.storage.local_store import LocalStore, Note
from notesync.storage.remote_store import RemoteStore
from notesync.utils.identity import IdentityProvider

logger = logging.getLogger(__name__)


class SearchService:
    def __init__(self, store: LocalStore, remote: Optional[RemoteStore], identity: IdentityProvider):
        self.store = store
        self.remote = remote
        self.identity = identity

    async def search(self, query: str) -> list[Note]:
        """Substring search over the local notes, merged with remote full-text hits when signed in.

        Title matches come first, then newest first.
        """
        notes = self.store.load()
        if not query.strip():
            return notes

        needle = query.lower()
        results = [n for n in notes if needle in n.title.lower() or needle in n.content.lower()]

        identity = self.identity.current_identity() if self.remote is not None else None
        if identity is not None:
            try:
                remote_hits = await self.remote.search_full_text(query, identity)
            except RemoteSyncFailure as e:
                logger.warning("Remote search failed, using local results: %s", e)
            else:
                remote_ids = {n.id for n in remote_hits}
                results = remote_hits + [n for n in results if n.id not in remote_ids]

        results.sort(key=lambda n: (needle not in n.title.lower(), -n.updated().timestamp()))
        return results
