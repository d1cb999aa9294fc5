"""Tagged loggers for smallbot.

Every module logs through ``get_logger(__name__)``; records carry a short
tag (``bot``, ``stream_renderer``, ``tools:memory``...) instead of the full
dotted name. The level can be changed at runtime with ``set_log_level`` and
defaults to ``LOG_LEVEL`` from the environment.

    log = get_logger("bot")
    log.info("Polling started")
    poll_log = log.getChild("poll")    # tag "bot:poll"
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

__all__ = ["setup_logger", "get_logger", "set_log_level", "get_log_level"]

ROOT = "smallbot"
DEFAULT_LOG_FILE = Path("~/.smallbot/logs/bot.log").expanduser()
CONSOLE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname).1s [%(tag)s] %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s [%(tag)s] %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3
QUIET_LIBRARIES = ("litellm", "LiteLLM", "httpx", "urllib3")


class _TagFilter(logging.Filter):
    """Adds ``record.tag``: the logger name below the package, colon separated."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(ROOT + "."):
            name = name[len(ROOT) + 1:]
        record.tag = name.replace(".", ":")
        return True


def _parse_level(level: Union[str, int, None]) -> Optional[int]:
    if level is None or level == "":
        return None
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logger(verbose: bool = False,
                 level: Union[str, int, None] = None,
                 log_file: Union[str, Path, bool, None] = None) -> logging.Logger:
    """Attach console and rotating-file handlers to the package logger.

    The level is ``level`` if given, else ``LOG_LEVEL`` from the environment,
    else DEBUG when ``verbose`` and INFO otherwise. ``log_file=False`` turns
    file logging off. Safe to call again; old handlers are replaced.
    """
    logger = logging.getLogger(ROOT)
    resolved = _parse_level(level)
    if resolved is None:
        resolved = _parse_level(os.environ.get("LOG_LEVEL"))
    if resolved is None:
        resolved = logging.DEBUG if verbose else logging.INFO

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(resolved)
    logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    handlers = [console]

    if log_file is not False:
        path = DEFAULT_LOG_FILE if log_file in (None, True) else Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES,
                                           backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(_TagFilter())
        logger.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def get_logger(tag: str) -> logging.Logger:
    """Logger for ``tag``, always placed under the package logger."""
    if tag == ROOT or tag.startswith(ROOT + "."):
        return logging.getLogger(tag)
    return logging.getLogger(f"{ROOT}.{tag}")


def set_log_level(level: Union[str, int]) -> None:
    """Change the level of every smallbot logger at runtime."""
    resolved = _parse_level(level)
    if resolved is None:
        raise ValueError("Log level must not be empty")
    logging.getLogger(ROOT).setLevel(resolved)


def get_log_level() -> str:
    return logging.getLevelName(logging.getLogger(ROOT).getEffectiveLevel())
