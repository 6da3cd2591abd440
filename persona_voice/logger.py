"""
Logging Configuration Module

Standard library logging for the API server, the CLI and voice sessions.
Module loggers come from ``get_logger``; code that works on behalf of one
room or one transcript connection uses ``get_scoped_logger`` so every line
carries that scope.

Usage:
    from persona_voice.logger import get_logger, get_scoped_logger

    logger = get_logger(__name__)
    room_log = get_scoped_logger(__name__, "voice-rafa-1234")
    room_log.info("Received transcript")   # ... | [voice-rafa-1234] Received transcript
"""

import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Third-party loggers that flood DEBUG output
SDK_LOGGERS = ("azure", "aiohttp.access", "livekit", "websockets")


class LevelColorFormatter(logging.Formatter):
    """Console formatter that colors the level name on terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Copy so file handlers never see escape codes
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname:<8}{self.RESET}"
        return super().format(colored)


class ScopedLogger(logging.LoggerAdapter):
    """Prefixes every message with ``[scope]``, e.g. a room or connection id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['scope']}] {msg}", kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Replace the root handlers with a console handler and an optional file.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional path, parent directories are created
        use_colors: Color level names when stdout is a terminal
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    if use_colors and sys.stdout.isatty():
        console.setFormatter(LevelColorFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    else:
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)

    sdk_level = max(numeric_level, logging.WARNING)
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_scoped_logger(name: str, scope: str) -> ScopedLogger:
    """Module logger whose messages are tagged with a room or connection id."""
    return ScopedLogger(logging.getLogger(name), {"scope": scope})


_configured = False


def init_logging() -> None:
    """Configure logging from settings once per process."""
    global _configured
    if _configured:
        return

    from persona_voice.config import settings
    setup_logging(level=settings.logging.level, log_file=settings.logging.file)
    _configured = True
