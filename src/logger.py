"""
Logging Setup Module.

Builds the application logger used by every component. Log records carry
either a plain string or a dict with a ``message`` key plus structured
fields, e.g.::

    logger.info({"message": "Emitting version", "iid": 5})

All handlers write to stderr or to a file, never to stdout, because stdout
carries the resource protocol response.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }

        if isinstance(record.msg, dict):
            log_data.update(record.msg)
        else:
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """Human readable formatter used in development mode."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            fields = dict(record.msg)
            message = fields.pop("message", "")
            details = " ".join(f"{key}={value}" for key, value in fields.items())
            text = f"{message} {details}".strip()
        else:
            text = record.getMessage()

        line = f"{record.levelname:<8} {record.name}: {text}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class LogManager:
    """
    Owns the application logger and its handlers.

    Attributes:
        logger (logging.Logger): Configured application logger.
    """

    def __init__(
        self,
        app_name: str,
        log_dir: Optional[str] = None,
        development: bool = False,
        level: int = logging.INFO,
    ):
        """
        Create and configure the application logger.

        Args:
            app_name (str): Logger name, also used for the log file name.
            log_dir (Optional[str]): Directory for a log file. No file is
                written when empty.
            development (bool): Use the readable formatter instead of JSON.
            level (int): Logging level.
        """
        self.logger = logging.getLogger(app_name)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.logger.handlers.clear()

        formatter: logging.Formatter = (
            ReadableFormatter() if development else JSONFormatter()
        )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(
                os.path.join(log_dir, f"{app_name}.log"), encoding="utf-8"
            )
            file_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(file_handler)

        # python-gitlab and requests are chatty at debug level
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("gitlab").setLevel(logging.WARNING)
