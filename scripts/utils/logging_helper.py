"""A basic logging helper shared by the map scripts."""
import logging
import sys
from pathlib import Path


def setup_logging(level=logging.INFO, log_file=None):
    """Configures root logging to stdout and, optionally, a log file.

    Existing root handlers are replaced so repeated runs in one interpreter
    do not duplicate output.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=handlers,
    )
