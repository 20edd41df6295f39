"""
Logging setup for the tracker.

Console output for everything at LOG_LEVEL, plus a durable error log that
keeps ERROR records (including unhandled exceptions caught at the app
boundary) across restarts.
"""

import logging
from pathlib import Path

from tracker.app.core.config import Settings
from tracker.app.services.wib import format_wib_timestamp

_HANDLER_TAG = "_tracker_handler"


class WIBFormatter(logging.Formatter):
    """Formats record times as WIB wall-clock timestamps."""

    def formatTime(self, record, datefmt=None):
        return format_wib_timestamp(record.created)


def configure_logging(settings: Settings) -> None:
    """
    Install tracker log handlers on the root logger.

    Idempotent: handlers installed by a previous call are replaced, so the
    app lifespan may run more than once in the same process (tests).
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = WIBFormatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    setattr(console, _HANDLER_TAG, True)
    root.addHandler(console)

    error_log = Path(settings.ERROR_LOG_PATH)
    error_log.parent.mkdir(parents=True, exist_ok=True)
    error_file = logging.FileHandler(error_log, encoding="utf-8")
    error_file.setLevel(logging.ERROR)
    error_file.setFormatter(formatter)
    setattr(error_file, _HANDLER_TAG, True)
    root.addHandler(error_file)

    root.setLevel(settings.LOG_LEVEL.upper())
