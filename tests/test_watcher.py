"""Tests for the patch directory watcher."""

import logging
import sys
import uuid
from unittest.mock import MagicMock

import pytest

from live_patcher.config import Config
from live_patcher.patching import LivePatcher, ParseError, Unavailable, UnitRegistry
from live_patcher.watcher import PatchFileHandler, PatchWatcher


@pytest.fixture
def patcher():
    name = f"livepatch_watch_{uuid.uuid4().hex}"
    yield LivePatcher(Config({}), registry=UnitRegistry(name), capability=Unavailable())
    sys.modules.pop(name, None)


def _event(path, directory=False, dest=None):
    return MagicMock(is_directory=directory, src_path=str(path), dest_path=str(dest or path))


class TestHandleChange:
    def test_applies_fragment(self, tmp_path, patcher):
        fragment = tmp_path / "greeter.py"
        fragment.write_text("def greet():\n    return 'hi'\n", encoding="utf-8")

        handler = PatchFileHandler(patcher, str(tmp_path), debounce_seconds=0)
        assert handler.handle_change(str(fragment))
        assert "def greet" in patcher.pending_source()

    def test_ignored_files(self, tmp_path):
        mock_patcher = MagicMock()
        handler = PatchFileHandler(mock_patcher, str(tmp_path), debounce_seconds=0)
        for name in ("notes.txt", ".hidden.py", "backup.py~"):
            path = tmp_path / name
            path.write_text("def f():\n    pass\n", encoding="utf-8")
            assert not handler.handle_change(str(path))
        mock_patcher.patch.assert_not_called()

    def test_empty_file_skipped(self, tmp_path):
        mock_patcher = MagicMock()
        path = tmp_path / "empty.py"
        path.write_text("   \n", encoding="utf-8")

        handler = PatchFileHandler(mock_patcher, str(tmp_path), debounce_seconds=0)
        assert not handler.handle_change(str(path))
        mock_patcher.patch.assert_not_called()

    def test_unreadable_file_skipped(self, tmp_path):
        handler = PatchFileHandler(MagicMock(), str(tmp_path), debounce_seconds=0)
        assert not handler.handle_change(str(tmp_path / "missing.py"))

    def test_debounce(self, tmp_path):
        mock_patcher = MagicMock()
        mock_patcher.needs_restart.return_value = False
        path = tmp_path / "f.py"
        path.write_text("def f():\n    pass\n", encoding="utf-8")

        handler = PatchFileHandler(mock_patcher, str(tmp_path), debounce_seconds=60)
        assert handler.handle_change(str(path))
        assert not handler.handle_change(str(path))
        assert mock_patcher.patch.call_count == 1

    def test_parse_error_logged_and_skipped(self, tmp_path, caplog):
        mock_patcher = MagicMock()
        mock_patcher.patch.side_effect = ParseError("invalid syntax", 1, 5)
        path = tmp_path / "broken.py"
        path.write_text("def f(:\n", encoding="utf-8")

        handler = PatchFileHandler(mock_patcher, str(tmp_path), debounce_seconds=0)
        with caplog.at_level(logging.WARNING, logger="live_patcher.watcher"):
            assert not handler.handle_change(str(path))
        assert "broken.py" in caplog.text

    def test_namespace_forwarded(self, tmp_path):
        mock_patcher = MagicMock()
        mock_patcher.needs_restart.return_value = False
        path = tmp_path / "f.py"
        path.write_text("def f():\n    pass\n", encoding="utf-8")

        handler = PatchFileHandler(mock_patcher, str(tmp_path), namespace="app.core",
                                   debounce_seconds=0)
        handler.handle_change(str(path))
        mock_patcher.patch.assert_called_once_with("def f():\n    pass\n", "app.core")

    def test_restart_warning_logged_once(self, tmp_path, patcher, caplog):
        handler = PatchFileHandler(patcher, str(tmp_path), debounce_seconds=0)
        first, second = tmp_path / "a.py", tmp_path / "b.py"
        first.write_text("def a():\n    return 1\n", encoding="utf-8")
        second.write_text("def b():\n    return 2\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="live_patcher.watcher"):
            handler.handle_change(str(first))
            handler.handle_change(str(second))

        assert caplog.text.count("restart is required") == 1


class TestExport:
    def test_exports_written(self, tmp_path, patcher):
        watched = tmp_path / "patches"
        watched.mkdir()
        export_dir = tmp_path / "exports"
        fragment = watched / "f.py"
        fragment.write_text("def f():\n    return 1\n", encoding="utf-8")

        handler = PatchFileHandler(patcher, str(watched), export_dir=str(export_dir),
                                   debounce_seconds=0)
        handler.handle_change(str(fragment))

        assert "def f" in (export_dir / "pending.py").read_text(encoding="utf-8")
        assert "def f" in (export_dir / "original.py").read_text(encoding="utf-8")
        assert (export_dir / "patch.diff").read_text(encoding="utf-8").startswith("--- original")


class TestEvents:
    def test_event_dispatch(self, tmp_path):
        handler = PatchFileHandler(MagicMock(), str(tmp_path), debounce_seconds=0)
        handler.handle_change = MagicMock()

        handler.on_modified(_event(tmp_path / "a.py"))
        handler.on_created(_event(tmp_path / "b.py"))
        handler.on_moved(_event(tmp_path / "tmp123", dest=tmp_path / "c.py"))
        handler.on_modified(_event(tmp_path, directory=True))

        called = [c.args[0] for c in handler.handle_change.call_args_list]
        assert called == [str(tmp_path / "a.py"), str(tmp_path / "b.py"), str(tmp_path / "c.py")]


class TestPatchWatcher:
    def test_debounce_from_config(self, tmp_path, patcher):
        patcher.config.WATCH_DEBOUNCE_SECONDS = 3.0
        watcher = PatchWatcher(patcher, str(tmp_path))
        assert watcher.handler._debounce == 3.0

    def test_stop_without_start(self, tmp_path, patcher):
        PatchWatcher(patcher, str(tmp_path)).stop()

    def test_background_thread_joined_on_stop(self, tmp_path, patcher):
        watcher = PatchWatcher(patcher, str(tmp_path))
        watcher.start_background()
        thread, observer = watcher._thread, watcher._observer
        assert thread.is_alive()

        watcher.stop()

        assert watcher._thread is None
        assert not thread.is_alive()
        assert not observer.is_alive()
