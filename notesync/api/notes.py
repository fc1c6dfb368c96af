import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from notesync.config import server_data_dir
from notesync.models.notes import NoteIn, NoteOut, SyncOut
from notesync.storage.notes_store import NotesStore
from notesync.utils.jwt_auth import current_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes", tags=["notes"])

DATA_DIR = server_data_dir()
store = NotesStore(DATA_DIR)

NoteId = Annotated[str, Path(pattern=r"^[A-Za-z0-9_-]{1,128}$")]


@router.get("", response_model=list[NoteOut])
def list_notes(user_id: str = Depends(current_owner)) -> list[NoteOut]:
    return [NoteOut(**n.to_dict()) for n in store.list_notes(user_id=user_id)]


@router.get("/search", response_model=list[NoteOut])
def search_notes(q: str = Query(min_length=1), user_id: str = Depends(current_owner)) -> list[NoteOut]:
    return [NoteOut(**n.to_dict()) for n in store.search_notes(user_id=user_id, query=q)]


@router.get("/{note_id}", response_model=NoteOut)
def get_note(note_id: NoteId, user_id: str = Depends(current_owner)) -> NoteOut:
    note = store.get_note(user_id=user_id, note_id=note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return NoteOut(**note.to_dict())


@router.put("/{note_id}", response_model=NoteOut)
def upsert_note(payload: NoteIn, note_id: NoteId, user_id: str = Depends(current_owner)) -> NoteOut:
    note = store.upsert_note(user_id=user_id, note_id=note_id, **payload.model_dump())
    logger.info("Upserted note %s for %s", note_id, user_id)
    return NoteOut(**note.to_dict())


# last-write-wins upsert; the stored copy survives unless the incoming one is newer
@router.post("/{note_id}/sync", response_model=SyncOut)
def sync_note(payload: NoteIn, note_id: NoteId, user_id: str = Depends(current_owner)) -> SyncOut:
    note, applied = store.sync_note(user_id=user_id, note_id=note_id, **payload.model_dump())
    logger.info("Synced note %s for %s (applied=%s)", note_id, user_id, applied)
    return SyncOut(applied=applied, note=NoteOut(**note.to_dict()))


# idempotent: deleting a missing note is not an error
@router.delete("/{note_id}", status_code=204)
def delete_note(note_id: NoteId, user_id: str = Depends(current_owner)) -> None:
    if store.delete_note(user_id=user_id, note_id=note_id):
        logger.info("Deleted note %s for %s", note_id, user_id)
    return None
