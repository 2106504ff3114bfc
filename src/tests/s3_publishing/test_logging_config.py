"""Tests for logging setup."""

import logging

import pytest

from s3_publishing.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers, level = list(root_logger.handlers), root_logger.level
    yield
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def test_default_log_file_in_log_dir(log_dir, restore_root_logger):
    log_file = setup_logging("DEBUG")

    assert log_file.parent == log_dir
    assert log_file.name.startswith("s3_publishing_")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("botocore").level == logging.WARNING


def test_explicit_log_file_receives_records(tmp_path, restore_root_logger):
    log_file = tmp_path / "nested" / "run.log"

    setup_logging("INFO", log_file=log_file, append=False)
    logging.getLogger("s3_publishing.test").info("published 3 resources")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "published 3 resources" in log_file.read_text()
