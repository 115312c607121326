from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path

MASK = "***"

_SECRET_KEYS = r"apiKey|apiSecret|api_key|api_secret|passphrase|memo|signature|sign|secret|AccessKeyId"

_KEY_VALUE = re.compile(rf"(?i)\b({_SECRET_KEYS})=([^\s&]+)")
_JSON_PAIR = re.compile(rf"(?i)(\"(?:{_SECRET_KEYS})\"\s*:\s*)\"[^\"]*\"")


def sanitize(text: object) -> str:
    """Mask values of secret-like ``key=value`` and ``"key": "value"`` pairs."""
    if text is None:
        return ""
    value = str(text)
    value = _KEY_VALUE.sub(lambda m: f"{m.group(1)}={MASK}", value)
    return _JSON_PAIR.sub(lambda m: f'{m.group(1)}"{MASK}"', value)


class RedactingFilter(logging.Filter):
    """Run every record through ``sanitize`` before any handler emits it."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = sanitize(message)
        record.args = None
        return True


def configure_logging(log_dir: Path | None = None) -> None:
    """Configure logging with console and rotating file handlers."""
    level_name = os.environ.get("CRYPTOCONSOLE_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    redactor = RedactingFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redactor)
    root_logger.addHandler(console_handler)

    # 10MB per file, 5 backups
    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "cryptoconsole.log",
            maxBytes=10*1024*1024,
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        root_logger.addHandler(file_handler)
