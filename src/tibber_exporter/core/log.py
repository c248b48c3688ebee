"""Process-wide logging setup."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from tibber_exporter.core.config import LoggingConfig
from tibber_exporter.core.models import LogFormat

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "google", "urllib3")


class JsonFormatter(logging.Formatter):
    """Renders each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Install a single stdout handler on the root logger.

    `verbose` forces DEBUG regardless of the configured level.
    """
    handler = logging.StreamHandler(sys.stdout)
    if config.format == LogFormat.JSON:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    level = logging.DEBUG if verbose else getattr(logging, config.level)
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
