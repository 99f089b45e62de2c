"""
Module for centralized, configurable logging across VerdeIndex packages.
"""

import logging
import os
import json
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs log records as one JSON object per line with keys:
    timestamp (ISO8601, UTC), level, name, message.
    """

    def format(self, record):
        record_dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            record_dict["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(record_dict)


class Logger:
    """
    Central logging setup for all modules.
    """

    _configured = False

    @staticmethod
    def setup(
        level: int | None = None,
        fmt: str | None = None,
        datefmt: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        """
        Configure the root logger once.

        If level is not provided, reads from the VERDEINDEX_LOG_LEVEL environment
        variable. ``fmt="json"`` (or VERDEINDEX_LOG_FMT=json) switches to
        structured output; any other non-empty value is used as a format string.
        """
        if Logger._configured:
            return
        if level is None:
            env_level = os.getenv("VERDEINDEX_LOG_LEVEL", "INFO").upper()
            effective_level = getattr(logging, env_level, logging.INFO)
        else:
            effective_level = level

        fmt_mode = fmt if fmt is not None else os.getenv("VERDEINDEX_LOG_FMT", "")
        default_fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        root = logging.getLogger()
        root.handlers.clear()

        if fmt_mode.lower() == "json":
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter(datefmt=datefmt))
            root.addHandler(handler)
            root.setLevel(effective_level)
        else:
            logging.basicConfig(
                level=effective_level,
                format=fmt_mode or default_fmt,
                datefmt=datefmt,
            )
        Logger._configured = True

    @staticmethod
    def get_logger(
        name: str = "verdeindex", *, level: int | None = None, fmt: str | None = None
    ) -> logging.Logger:
        """
        Get a logger with the specified name, configuring logging on first use.

        Parameters:
            name: The name of the logger.
            level: Optional logging level to set up.
            fmt: Optional format mode ("json") or format string.

        Returns:
            logging.Logger: The configured logger instance.
        """
        Logger.setup(level=level, fmt=fmt)
        return logging.getLogger(name)
