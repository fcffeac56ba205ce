from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from docxcombine.logging_utils import setup_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_file_log_keeps_debug_while_console_stays_at_info(tmp_path, restore_root_logging):
    log_path = tmp_path / "logs" / "merge.log"

    logger = setup_logging(log_path)
    logger.debug("mapping sizes")
    logger.info("merged")

    console = next(h for h in restore_root_logging.handlers if isinstance(h, RichHandler))
    assert console.level == logging.INFO
    for handler in restore_root_logging.handlers:
        handler.flush()
    text = log_path.read_text(encoding="utf-8")
    assert "DEBUG docxcombine: mapping sizes" in text
    assert "INFO docxcombine: merged" in text


def test_verbose_console_and_repeated_setup(restore_root_logging):
    setup_logging(verbose=True)
    setup_logging(verbose=True)

    consoles = [h for h in restore_root_logging.handlers if isinstance(h, RichHandler)]
    assert len(consoles) == 1
    assert consoles[0].level == logging.DEBUG
