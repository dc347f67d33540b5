import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

from draftdesk.config.settings import Settings
from draftdesk.drafts.autosave import AutoSaver
from draftdesk.drafts.exceptions import PersistenceFailedError
from draftdesk.drafts.local_storage import BaseLocalStorage, FileLocalStorage
from draftdesk.drafts.manager import DraftManager


def _mock_manager(active: object | None = None) -> MagicMock:
    manager = MagicMock()
    manager.active_draft = active
    manager.persist_draft = AsyncMock()
    return manager


class TestAutoSaverTick:
    def test_skips_without_active_draft(self) -> None:
        manager = _mock_manager(active=None)
        saver = AutoSaver(manager, interval_seconds=0.01)

        assert asyncio.run(saver.tick()) is False
        manager.persist_draft.assert_not_called()

    def test_persists_active_draft_as_auto_save(self) -> None:
        draft = MagicMock(id="d1")
        manager = _mock_manager(active=draft)
        saver = AutoSaver(manager, interval_seconds=0.01)

        assert asyncio.run(saver.tick()) is True
        manager.persist_draft.assert_awaited_once_with(draft, auto_save=True)

    @patch("draftdesk.drafts.autosave.Log")
    def test_failure_is_logged_not_raised(self, mock_log: MagicMock) -> None:
        manager = _mock_manager(active=MagicMock(id="d1"))
        manager.persist_draft.side_effect = PersistenceFailedError("disk full")
        saver = AutoSaver(manager, interval_seconds=0.01)

        assert asyncio.run(saver.tick()) is False
        mock_log.warning.assert_called_once()
        assert "disk full" in mock_log.warning.call_args[0][0]


class TestAutoSaverLoop:
    def test_retries_on_next_tick_after_failure(self) -> None:
        manager = _mock_manager(active=MagicMock(id="d1"))
        manager.persist_draft.side_effect = [PersistenceFailedError("busy"), None, None]
        saver = AutoSaver(manager, interval_seconds=0.001)

        asyncio.run(saver.run(max_ticks=3))

        assert manager.persist_draft.await_count == 3

    def test_start_and_stop_in_background(
        self, manager: DraftManager, local_storage: FileLocalStorage, settings: Settings
    ) -> None:
        draft = manager.new_draft()
        manager.set_title("Typing...")
        saver = AutoSaver(manager, interval_seconds=settings.autosave_interval_seconds)

        async def author_session() -> None:
            saver.start()
            assert saver.running
            await asyncio.sleep(settings.autosave_interval_seconds * 5)
            await saver.stop()

        asyncio.run(author_session())

        assert not saver.running
        stored = json.loads(local_storage.get(settings.drafts_storage_key))
        assert stored[0]["id"] == draft.id
        assert stored[0]["is_auto_save"] is True


class TestAutoSaverUnexpectedErrors:
    @patch("draftdesk.drafts.autosave.Log")
    def test_unexpected_error_is_logged_not_raised(self, mock_log: MagicMock) -> None:
        manager = _mock_manager(active=MagicMock(id="d1"))
        manager.persist_draft.side_effect = RuntimeError("disk driver bug")
        saver = AutoSaver(manager, interval_seconds=0.01)

        assert asyncio.run(saver.tick()) is False
        mock_log.exception.assert_called_once()

    def test_loop_survives_broken_storage(self, settings: Settings) -> None:
        storage = MagicMock(spec=BaseLocalStorage)
        storage.get.return_value = None
        storage.set.side_effect = RuntimeError("disk driver bug")
        manager = DraftManager(settings, storage, MagicMock())
        manager.new_draft()
        saver = AutoSaver(manager, interval_seconds=settings.autosave_interval_seconds)

        async def author_session() -> bool:
            saver.start()
            await asyncio.sleep(settings.autosave_interval_seconds * 5)
            still_running = saver.running
            await saver.stop()
            return still_running

        assert asyncio.run(author_session()) is True
        assert storage.set.call_count >= 2
        assert not saver.running
