# secondhand_search/config/logging_config.py

"""Logging for the ``secondhand_search`` logger tree.

Local runs get a per-run file under ``logs/`` (``run_<timestamp>.log``)
holding DEBUG records from the scrapers, the browser manager and the
orchestrator, next to a stderr console handler.  Serverless hosts have
no writable project directory, so there only the console handler is
installed.

The console threshold comes from the caller, else ``LOG_LEVEL``.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from secondhand_search.config.runtime_profile import is_serverless
from secondhand_search.config.settings import Settings

ROOT_LOGGER_NAME = "secondhand_search"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def console_level(level: int | str | None = None) -> int:
    """Resolve a level name or number, falling back to ``LOG_LEVEL``."""
    chosen = Settings.LOG_LEVEL if level is None else level
    if isinstance(chosen, int):
        return chosen
    resolved = logging.getLevelName(chosen.upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def _run_log_path() -> Path:
    Settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Settings.LOGS_DIR / f"run_{stamp}.log"


def setup_logging(
    level: int | str | None = None,
    to_file: bool | None = None,
) -> Path | None:
    """Attach handlers to the ``secondhand_search`` logger once.

    Args:
        level: Console threshold; defaults to ``Settings.LOG_LEVEL``.
        to_file: Write a per-run log file.  Defaults to off on
            serverless hosts and on everywhere else.

    Returns:
        The run's log file, or None when only the console is used.
    """
    if to_file is None:
        to_file = not is_serverless(os.environ)
    log_file = _run_log_path() if to_file else None

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    # Repeated calls (e.g. tests) keep the first handlers
    if root_logger.handlers:
        return log_file

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
        )
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level(level))
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )
    root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging initialised, log file: %s", log_file or "(console only)"
    )
    return log_file
