"""Logging configuration with JSON formatting for production."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

EXTRA_FIELDS = ("track", "index", "elapsed_ms", "remaining_ms")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Sequencer extras (track name, cursor index, timing)
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(
    level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure logging based on environment.

    In production: structured JSON logs
    In development: human-readable logs

    Args:
        level: Level name (default INFO); unknown names fall back to INFO
        json_logs: Force JSON on or off instead of reading STAGE_PLAYER_ENV
        stream: Output stream (default stdout); the CLI logs to stderr so
            cue sheets stay clean on stdout
    """
    if json_logs is None:
        env = os.environ.get("STAGE_PLAYER_ENV", "development").lower()
        json_logs = env in ("production", "prod", "staging")
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)

    if json_logs:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Reduce noise from the websocket server
    logging.getLogger("websockets").setLevel(logging.WARNING)
