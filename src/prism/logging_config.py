"""Logging configuration for Prism.

Modules log through `logging.getLogger(__name__)`; this module only decides
where records go and how they look. Plaintext values, nonces and keys are
never passed to a logger.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_data.update(extra_fields)
        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install handlers on the `prism` logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit structured JSON instead of plain text.
        log_file: Optional file path for a second handler.
    """
    prism_logger = logging.getLogger("prism")
    prism_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in prism_logger.handlers[:]:
        prism_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    prism_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        prism_logger.addHandler(file_handler)


def short(value: str, width: int = 10) -> str:
    """Truncate an address or hash for a log line."""
    return value if len(value) <= width else value[:width] + "..."
