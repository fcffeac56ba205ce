from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAME = "docxcombine"


def setup_logging(log_path: Path | None = None, *, verbose: bool = False) -> logging.Logger:
    """Rich console at INFO (DEBUG with ``verbose``); the optional log file always gets DEBUG.

    Per-package id mapping sizes are logged at DEBUG, so a log file keeps them even
    when the console stays quiet.
    """
    console = RichHandler(rich_tracebacks=True, show_path=False, show_time=True, show_level=True)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    handlers: list[logging.Handler] = [console]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S"))
        handlers.append(fh)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, format="%(message)s", force=True)
    return logging.getLogger(LOGGER_NAME)
