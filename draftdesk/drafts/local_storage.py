import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from draftdesk.drafts.exceptions import PersistenceFailedError
from draftdesk.logging.logger import Log


class BaseLocalStorage(ABC):
    """Contract for durable key/value storage that survives a restart."""

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key is absent.

        Raises:
            PersistenceFailedError: if the storage cannot be read.
        """

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store bytes under key, replacing any previous value.

        Raises:
            PersistenceFailedError: if the storage cannot be written.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""


class FileLocalStorage(BaseLocalStorage):
    """Stores each key as one file in a directory.

    Writes go to a temporary file that is then renamed over the target, so a
    crash never leaves a half-written value. At most ``max_entries`` files are
    kept; the least recently written ones are evicted first.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path, max_entries: int = 10) -> None:
        self._root = root
        self._max_entries = max_entries

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceFailedError(f"Failed to read {path}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceFailedError(f"Failed to write {path}: {exc}") from exc
        self._evict()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceFailedError(f"Failed to delete {path}: {exc}") from exc

    def keys(self) -> list[str]:
        return [p.stem for p in self._entries()]

    def _entries(self) -> list[Path]:
        if not self._root.exists():
            return []
        files = [p for p in self._root.glob(f"*{self.SUFFIX}") if p.is_file()]
        return sorted(files, key=lambda p: p.stat().st_mtime_ns)

    def _evict(self) -> None:
        entries = self._entries()
        for path in entries[: max(0, len(entries) - self._max_entries)]:
            Log.info(f"Evicting local storage entry {path.stem}")
            path.unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        if not safe:
            raise ValueError("Storage key must contain at least one safe character")
        return self._root / f"{safe}{self.SUFFIX}"
