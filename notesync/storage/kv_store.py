import os
from pathlib import Path
from typing import Optional, Protocol

from notesync.exceptions import StorageWriteFailure


def _safe_key_path(base_dir: Path, key: str) -> Path:
    # keys become file names; keep them flat
    if not key or any(ch in key for ch in "/\\") or ".." in key:
        raise ValueError("Invalid key")
    return base_dir / f"{key}.json"


def _atomic_write_text(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


class KeyValueStore(Protocol):
    """String-keyed blob persistence with atomic get/set/remove."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class FileKeyValueStore:
    """One file per key inside ``base_dir``."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def get(self, key: str) -> Optional[str]:
        path = _safe_key_path(self.base_dir, key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = _safe_key_path(self.base_dir, key)
        try:
            _atomic_write_text(path, value)
        except OSError as e:
            raise StorageWriteFailure(f"Failed to write '{key}': {e}", details={"key": key}) from e

    def remove(self, key: str) -> None:
        path = _safe_key_path(self.base_dir, key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageWriteFailure(f"Failed to remove '{key}': {e}", details={"key": key}) from e


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)
