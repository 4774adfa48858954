"""
Logging setup for the PanelBase process.

Every record is written as ``<RFC 3339 UTC timestamp> | <message>`` to
stdout and to ``logs/<start timestamp>.log`` under the base directory.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
# Filename-safe variant, one file per process start
LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%SZ"

_HANDLER_MARK = "_panelbase_handler"


class UTCFormatter(logging.Formatter):
    """Formatter whose ``asctime`` is UTC in RFC 3339 form"""

    converter = time.gmtime

    def __init__(self, fmt: str = LOG_FORMAT):
        super().__init__(fmt=fmt, datefmt=TIMESTAMP_FORMAT)


def _remove_own_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()


def configure_logging(
    logs_dir: Optional[Path] = None,
    level: int = logging.INFO,
    verbose: bool = False
) -> Optional[Path]:
    """
    Configure the root logger

    Calling it again replaces the handlers installed by a previous call.

    Args:
        logs_dir: Directory for the log file; no file is written when None
        level: Log level
        verbose: Shortcut for DEBUG level

    Returns:
        Path of the log file, or None when only stdout is used
    """
    if verbose:
        level = logging.DEBUG

    root = logging.getLogger()
    _remove_own_handlers(root)
    formatter = UTCFormatter()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    setattr(stream_handler, _HANDLER_MARK, True)
    root.addHandler(stream_handler)

    log_file = None
    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        started = datetime.now(timezone.utc).strftime(LOG_FILE_TIMESTAMP_FORMAT)
        log_file = logs_dir / f"{started}.log"
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        root.addHandler(file_handler)

    root.setLevel(level)
    # Third-party HTTP chatter stays at WARNING unless verbose
    logging.getLogger("urllib3").setLevel(logging.DEBUG if verbose else logging.WARNING)
    return log_file
