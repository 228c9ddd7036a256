# placesearch/core/logging_config.py
"""Process-wide logging setup for services embedding the search engine."""

import json
import logging
from typing import Optional

from .config import settings


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra"):
            log_obj.update(record.extra)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to settings.log_level
        structured: Emit JSON lines; defaults to settings.structured_logs
    """
    level_name = (level or settings.log_level).upper()
    use_structured = settings.structured_logs if structured is None else structured

    handler = logging.StreamHandler()
    if use_structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    logging.root.handlers = [handler]
    logging.root.setLevel(level_name)

    # Reduce noise from libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.INFO)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
