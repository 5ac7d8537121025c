"""
Logging setup for decompcg.

All modules log through ``logging.getLogger(__name__)`` below the
``decompcg`` namespace. Nothing is configured on import; applications call
init_logging() once to attach handlers. Child loggers inherit handlers and
formatting without re-attaching them.

Records may carry ``node_id``, ``phase`` and ``iteration`` fields (passed via
``extra=``); the context filter fills them with "-" when absent so format
strings never fail.
"""

import logging
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "decompcg"

_FORMAT = (
    "%(asctime)s [%(levelname)s] %(name)s "
    "node=%(node_id)s phase=%(phase)s it=%(iteration)s | %(message)s"
)


class _ContextFilter(logging.Filter):
    """Ensure optional logging fields exist to avoid KeyErrors."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in ("node_id", "phase", "iteration"):
            if not hasattr(record, key):
                setattr(record, key, "-")
        return True


def make_context_filter() -> logging.Filter:
    return _ContextFilter()


def make_formatter() -> logging.Formatter:
    return logging.Formatter(_FORMAT)


def init_logging(
    level: Union[int, str] = logging.INFO,
    to_console: bool = True,
    logfile: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure the ``decompcg`` logger.

    Args:
        level: Logging level (int or name such as "DEBUG")
        to_console: Attach a stream handler
        logfile: Optional file to write the log to (overwritten)

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    formatter = make_formatter()
    context_filter = make_context_filter()

    # Replace handlers installed by a previous call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if logfile is not None:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        fh.addFilter(context_filter)
        logger.addHandler(fh)

    if to_console:
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(formatter)
        sh.addFilter(context_filter)
        logger.addHandler(sh)

    logger.propagate = not logger.handlers
    return logger
