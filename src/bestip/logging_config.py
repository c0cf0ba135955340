from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Optional

DETAILED_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d %(message)s"
SIMPLE_FORMAT = "%(levelname)s %(message)s"

# third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "asyncio")

LEVEL_COLOURS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[34m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET = "\033[0m"


class QueryKeyFilter(logging.Filter):
    """Mask API keys that appear in logged request URLs."""

    PATTERN = re.compile(r"([?&](?:key|token|license_key)=)[^&\s]+", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        rendered = record.getMessage()
        masked = self.PATTERN.sub(r"\1[MASKED]", rendered)
        if masked != rendered:
            record.msg, record.args = masked, None
        return True


class ColoredFormatter(logging.Formatter):
    """Colours the level name when the terminal supports it."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = LEVEL_COLOURS.get(record.levelno)
        if not prefix or not sys.stdout.isatty():
            return super().format(record)
        tinted = logging.makeLogRecord(record.__dict__)
        tinted.levelname = prefix + record.levelname + RESET
        return super().format(tinted)


def _resolve_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(QueryKeyFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    *,
    log_file: Optional[str | Path] = None,
    format_style: str = "detailed",
    use_color: Optional[bool] = None,
) -> None:
    """
    Route all bestip logging to stderr, and optionally to a file.

    Args:
        level: Level name; unknown names fall back to INFO.
        log_file: Extra plain-text log file, parent directories are created.
        format_style: "detailed" or "simple".
        use_color: Colour level names; auto-detected from the TTY when None.
    """
    threshold = _resolve_level(level)
    fmt = DETAILED_FORMAT if format_style == "detailed" else SIMPLE_FORMAT
    if use_color is None:
        use_color = sys.stdout.isatty()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(threshold)

    console_formatter = ColoredFormatter(fmt) if use_color else logging.Formatter(fmt)
    root.addHandler(_handler(logging.StreamHandler(sys.stderr), threshold, console_formatter))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(
            _handler(logging.FileHandler(path, encoding="utf-8"), threshold, logging.Formatter(fmt))
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
