"""Logging for the engine's modules.

Modules log through `get_logger(__name__)` and never attach handlers. An
application decides where records go; scripts and tests can call
`setup_logging`, which attaches a console handler and an optional file
handler to the root logger. A later call swaps out the handlers the
previous call attached and leaves everyone else's handlers in place.
"""

import logging
import sys

LOG_FORMAT = "%(levelname)-8s %(name)s | %(message)s"

_attached: list[logging.Handler] = []


def setup_logging(level: int | str = "WARNING", log_file: str | None = None) -> list[logging.Handler]:
    "Route engine records at `level` and above to stderr, and to `log_file` if given."
    root = logging.getLogger()
    while _attached:
        handler = _attached.pop()
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    _attached.extend(handlers)
    return handlers


def get_logger(name: str) -> logging.Logger:
    # No level here: records follow the root logger's configuration.
    return logging.getLogger(name)
