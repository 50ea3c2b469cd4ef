"""
Per-run log sink: leveled records to the console and an append-only text file.

Levels are INFO, OK, SKIP, WARN and ERR. OK and SKIP are registered as
custom logging levels; WARNING and ERROR are rendered with their short
names. Write failures on the file handler go through logging's own
handleError and never interrupt the run.
"""

import itertools
import logging
import sys
from pathlib import Path
from typing import Optional

SKIP = 22
OK = 25

logging.addLevelName(SKIP, "SKIP")
logging.addLevelName(OK, "OK")

LEVEL_LABELS = {
    logging.WARNING: "WARN",
    logging.ERROR: "ERR",
    logging.CRITICAL: "ERR",
}

LOG_FORMAT = "%(asctime)s [%(label)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_run_ids = itertools.count(1)


class LevelLabelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.label = LEVEL_LABELS.get(record.levelno, record.levelname)
        return super().format(record)


def open_run_log(
    log_path: Optional[Path],
    verbose: bool = False,
    stream=None,
) -> logging.Logger:
    """
    Build a dedicated logger for one run. It does not propagate to the root
    logger, so several runs in one process never share handlers.
    If log_path cannot be opened the logger still works, console-only.
    """
    logger = logging.getLogger(f"media_archiver.run{next(_run_ids)}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    formatter = LevelLabelFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_path is not None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open log file %s: %s (console only)", log_path, e)
        else:
            file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def close_run_log(logger: logging.Logger) -> None:
    """Flush and detach every handler opened by open_run_log."""
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
