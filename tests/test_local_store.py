import json

import pytest

from helpers import make_note
from notesync.exceptions import StorageWriteFailure
from notesync.storage import kv_store
from notesync.storage.kv_store import FileKeyValueStore
from notesync.storage.local_store import NOTES_KEY, LocalStore, Note


def test_load_empty_store(store):
    assert store.load() == []


def test_save_load_is_byte_identical(tmp_path):
    store = LocalStore(FileKeyValueStore(tmp_path))
    store.save([make_note("a", title="Groceries", updated=1), make_note("b", guest_id="g1", dirty=True)])
    first = (tmp_path / f"{NOTES_KEY}.json").read_bytes()

    store.save(store.load())
    assert (tmp_path / f"{NOTES_KEY}.json").read_bytes() == first


def test_roundtrip_keeps_dirty_flag_and_owner(store):
    store.save([make_note("b", guest_id="g1", dirty=True, sort_order=3, color="#ffcc00")])
    (note,) = store.load()
    assert note.guest_id == "g1"
    assert note.user_id is None
    assert note.is_dirty is True
    assert note.sort_order == 3
    assert note.color == "#ffcc00"


def test_guest_id_is_stable_across_restarts(tmp_path):
    first = LocalStore(FileKeyValueStore(tmp_path)).get_or_create_guest_id()
    second = LocalStore(FileKeyValueStore(tmp_path)).get_or_create_guest_id()
    assert first == second
    assert first.startswith("guest_")


def test_pending_queue_has_no_duplicates(store):
    store.enqueue("a")
    store.enqueue("b")
    store.enqueue("a")
    assert store.pending() == ["a", "b"]

    store.dequeue("a")
    store.dequeue("missing")
    assert store.pending() == ["b"]


def test_write_failure_is_raised(tmp_path, monkeypatch):
    def boom(path, data):
        raise OSError("No space left on device")

    monkeypatch.setattr(kv_store, "_atomic_write_text", boom)
    store = LocalStore(FileKeyValueStore(tmp_path))
    with pytest.raises(StorageWriteFailure):
        store.save([make_note("a")])


def test_unreadable_blob_loads_as_empty(kv, store):
    kv.set(NOTES_KEY, "{not json")
    assert store.load() == []


def test_note_requires_exactly_one_owner():
    with pytest.raises(ValueError):
        make_note("a", user_id="userA", guest_id="g1")
    with pytest.raises(ValueError):
        Note(
            id="a",
            user_id=None,
            guest_id=None,
            title="",
            content="",
            color=None,
            sort_order=None,
            created_at="2026-01-01T00:00:00+00:00",
            updated_at="2026-01-01T00:00:00+00:00",
        )


def test_invalid_key_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        FileKeyValueStore(tmp_path).get("../notes")


def test_bad_record_is_skipped_not_the_collection(kv, store):
    store.save([make_note("a", title="one"), make_note("b", title="two")])
    records = json.loads(kv.get(NOTES_KEY))
    records[1]["guest_id"] = "g1"
    records.append({"id": "no-timestamps", "user_id": "userA"})
    kv.set(NOTES_KEY, json.dumps(records))

    assert [n.id for n in store.load()] == ["a"]


async def test_bad_record_does_not_wipe_notes_on_next_write(kv, store, service):
    store.save([make_note("a", title="one"), make_note("b", title="two")])
    records = json.loads(kv.get(NOTES_KEY))
    records[1]["guest_id"] = "g1"
    kv.set(NOTES_KEY, json.dumps(records))

    created = (await service.create("new", "")).note

    assert [n.id for n in store.load()] == ["a", created.id]
