import json
import logging
from datetime import UTC, datetime
from typing import Any

from capsession.config import settings

_LOGGING_CONFIGURED = False


class JsonLogFormatter(logging.Formatter):
    _extra_fields = (
        "event_name",
        "identifier",
        "issuer",
        "audience",
        "state",
        "channel",
        "status",
        "token_count",
        "storage_backend",
        "configured_level",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self._extra_fields:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def configure_logging(level_name: str | None = None) -> None:
    """Install the JSON handler on the ``capsession`` logger only.

    The host application keeps ownership of the root logger; records still
    propagate to it.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    configured = level_name or settings.log_level
    logger = logging.getLogger("capsession")
    level = getattr(logging, configured.upper(), None)
    if not isinstance(level, int):
        logging.getLogger("capsession.logging").warning(
            "invalid_log_level_fallback",
            extra={
                "event_name": "invalid_log_level_fallback",
                "configured_level": configured,
            },
        )
        level = logging.INFO

    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logger.handlers = [handler]

    _LOGGING_CONFIGURED = True
