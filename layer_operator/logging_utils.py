"""Structured logging for operator registration runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging import Logger
from pathlib import Path
from typing import Any, Dict, Optional

from hexbytes import HexBytes
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "layer_operator"


def configure_logging(level: str = "INFO", log_file: Optional[str | Path] = None) -> Logger:
    """Configure console logging and an optional JSON lines audit file.

    Args:
        level: Logging level name (case insensitive).
        log_file: Optional path of a JSON lines file receiving every record.

    Returns:
        The package logger.
    """

    console = Console(stderr=True)
    handler = RichHandler(console=console, show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)
    logger.propagate = False

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(StructuredJsonFormatter())
        logger.addHandler(file_handler)

    logger.debug("Structured logging initialised", extra={"event": "logging_configured"})
    return logger


def _encode_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value).to_0x_hex()
    return str(value)


class StructuredJsonFormatter(logging.Formatter):
    """Write each record as one JSON line for the registration audit trail.

    Keys are emitted in a stable order: ``ts``, ``level``, ``logger``,
    ``event``, ``message``, then ``data`` and ``exc_info`` when present.
    Byte values inside ``data`` (digests, salts, hashes) are rendered as 0x hex.
    """

    default_event = "log"

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.__dict__.get("event", self.default_event),
            "message": record.getMessage(),
        }
        data = record.__dict__.get("data")
        if data is not None:
            entry["data"] = data
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_encode_value, separators=(",", ":"))


__all__ = ["configure_logging", "StructuredJsonFormatter", "LOGGER_NAME"]
