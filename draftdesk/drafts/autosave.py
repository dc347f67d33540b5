import asyncio

from draftdesk.drafts.exceptions import PersistenceFailedError
from draftdesk.drafts.manager import DraftManager
from draftdesk.logging.logger import Log


class AutoSaver:
    """Periodically persists the active draft in a background task: sleep -> save."""

    def __init__(self, manager: DraftManager, interval_seconds: float) -> None:
        self._manager = manager
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the save loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self, max_ticks: int | None = None) -> None:
        """Save loop. Runs until cancelled.

        If max_ticks is set, stop after that many ticks (for testing).
        """
        Log.info(f"Auto-save started, every {self._interval}s")
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            await asyncio.sleep(self._interval)
            await self.tick()
            ticks += 1

    async def tick(self) -> bool:
        """Persist the active draft once. Failures are logged and retried next tick."""
        draft = self._manager.active_draft
        if draft is None:
            Log.debug("Auto-save skipped, no active draft")
            return False
        try:
            await self._manager.persist_draft(draft, auto_save=True)
        except PersistenceFailedError as exc:
            Log.warning(f"Auto-save of draft {draft.id} failed, will retry: {exc}")
            return False
        except Exception:
            Log.exception(f"Unexpected auto-save error for draft {draft.id}, will retry")
            return False
        return True
