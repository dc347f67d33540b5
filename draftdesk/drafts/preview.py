import uuid
from collections.abc import Generator, Iterable
from contextlib import contextmanager

from draftdesk.drafts.exceptions import PreviewHandleStaleError

HANDLE_PREFIX = "blob:draftdesk/"


class PreviewRegistry:
    """Process-local preview handles for images that are not uploaded yet.

    A handle is an opaque string usable only inside this process. Handles do
    not survive a restart and must be released explicitly.
    """

    def __init__(self) -> None:
        self._payloads: dict[str, bytes] = {}

    def create(self, data: bytes) -> str:
        handle = f"{HANDLE_PREFIX}{uuid.uuid4()}"
        self._payloads[handle] = data
        return handle

    def resolve(self, handle: str) -> bytes:
        try:
            return self._payloads[handle]
        except KeyError:
            raise PreviewHandleStaleError(f"Preview handle {handle} is not live") from None

    def release(self, handle: str) -> None:
        if self._payloads.pop(handle, None) is None:
            raise PreviewHandleStaleError(f"Preview handle {handle} is not live")

    def release_many(self, handles: Iterable[str]) -> int:
        """Release every live handle in ``handles``; stale ones are skipped."""
        released = 0
        for handle in handles:
            if self._payloads.pop(handle, None) is not None:
                released += 1
        return released

    def is_live(self, handle: str | None) -> bool:
        return handle is not None and handle in self._payloads

    @property
    def live_count(self) -> int:
        return len(self._payloads)

    @contextmanager
    def scoped(self, data: bytes) -> Generator[str, None, None]:
        """Yield a handle that is released however the block exits."""
        handle = self.create(data)
        try:
            yield handle
        finally:
            self._payloads.pop(handle, None)
