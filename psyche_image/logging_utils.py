from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_NAME = "psyche-image.log"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


class RunLogHandler(logging.FileHandler):
    """File handler of the current run; a second configure_logging() finds it."""


def configure_logging(log_path: str, *, verbose: bool = False) -> str:
    """Log every run to log_path at DEBUG and to stderr at INFO (DEBUG if verbose).

    stdout is left alone: it only carries the final image path. When the log
    directory cannot be created the file goes to the current directory.

    Returns the file path actually used.
    """

    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, RunLogHandler):
            return h.baseFilename

    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RunLogHandler(log_path, encoding="utf-8")
    except OSError:
        file_handler = RunLogHandler(str(Path.cwd() / LOG_NAME), encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    for h in (file_handler, console):
        h.setFormatter(fmt)
        root.addHandler(h)
    root.setLevel(logging.DEBUG)

    logging.getLogger(__name__).info("Logging to %s", file_handler.baseFilename)
    return file_handler.baseFilename
