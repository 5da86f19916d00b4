"""Tests for the log file setup and status output."""

import logging
import os

import pytest

from live_patcher.cli_display import setup_logger


@pytest.fixture
def package_logger():
    logger = logging.getLogger("live_patcher")
    level, handlers = logger.level, list(logger.handlers)
    yield logger
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


class TestSetupLogger:
    def test_log_file_created(self, tmp_path, package_logger):
        path = setup_logger(str(tmp_path / "logs"))

        package_logger.debug("[LivePatch] hello file")
        for handler in package_logger.handlers:
            handler.flush()

        assert os.path.dirname(path) == str(tmp_path / "logs")
        with open(path, encoding="utf-8") as fh:
            assert "hello file" in fh.read()

    def test_repeated_setup_keeps_one_file_handler(self, tmp_path, package_logger):
        setup_logger(str(tmp_path))
        setup_logger(str(tmp_path))

        names = [h.get_name() for h in package_logger.handlers]
        assert names.count("livepatch-file") == 1
