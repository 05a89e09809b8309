"""Logging bootstrap for the Ghostwriter desktop app.

Records go to a size-rotated file under ``~/.ghostwriter/logs`` (or
``$GHOSTWRITER_LOG_DIR``) and, optionally, to stderr. Prompt payload dumps
carry document text, so records from the AI layer are clipped to
``payload_chars`` characters before they reach any handler.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = [
    "DATE_FORMAT",
    "LOG_FILE_NAME",
    "LOG_FORMAT",
    "PayloadClipFilter",
    "get_log_path",
    "get_logger",
    "setup_logging",
]

LOG_FILE_NAME = "ghostwriter.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_DEFAULT_LOG_DIR = Path.home() / ".ghostwriter" / "logs"
_LOG_DIR_ENV = "GHOSTWRITER_LOG_DIR"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "qasync", "httpx", "httpcore", "openai")
_PAYLOAD_LOGGER_PREFIX = "ghostwriter.ai"
_CONFIGURED = False
_LOG_PATH: Path | None = None


class PayloadClipFilter(logging.Filter):
    """Clip long AI-layer messages so whole documents never land in the log."""

    def __init__(self, max_chars: int, prefix: str = _PAYLOAD_LOGGER_PREFIX) -> None:
        super().__init__()
        self.max_chars = max(0, int(max_chars))
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.max_chars or not record.name.startswith(self.prefix):
            return True
        message = record.getMessage()
        if len(message) > self.max_chars:
            hidden = len(message) - self.max_chars
            record.msg = f"{message[: self.max_chars]}... [{hidden} chars clipped]"
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    payload_chars: int = 4_000,
    force: bool = False,
) -> Path:
    """Install the rotating file (and console) handlers on the root logger.

    Calling again is a no-op returning the active log path unless ``force``
    is set, in which case the previous handlers are closed and replaced.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_dir(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = _build_handlers(log_path, console=console, max_bytes=max_bytes, backup_count=backup_count)
    clip = PayloadClipFilter(payload_chars)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(clip)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_third_party(level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    logging.getLogger(__name__).debug("Logging to %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Active log file, or ``None`` before :func:`setup_logging` ran."""

    return _LOG_PATH


def _build_handlers(log_path: Path, *, console: bool, max_bytes: int, backup_count: int) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    return handlers


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet_third_party(root_level: int) -> None:
    # Third-party loggers never go below WARNING.
    level = max(root_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
