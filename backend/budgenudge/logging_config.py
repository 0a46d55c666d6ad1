"""Logging configuration: JSON lines in production, plain text otherwise."""

import logging
import sys

from pythonjsonlogger import jsonlogger

from budgenudge.config import settings


def setup_logging() -> None:
    """Configure the root logger from settings.log_format."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
        logging.root.handlers = [handler]
        logging.root.setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


def mask_phone(phone_number: str) -> str:
    """Keep only the last four digits of a phone number for log output."""
    digits = "".join(c for c in phone_number or "" if c.isdigit())
    return f"***{digits[-4:]}" if digits else "***"
