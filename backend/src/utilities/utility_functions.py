import json
import logging.config
from datetime import datetime, timezone

from .constants import LOG_FORMAT

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

# Server -> subscriber units: one JSON object followed by a blank line
def encode_event(message) -> bytes:
    return (json.dumps(message.model_dump(mode="json")) + "\n\n").encode("utf-8")

def configure_logging(level: str = "INFO"):
    level = level.upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,     # keep uvicorn loggers
        "formatters": {
            "plain": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "plain"},
        },
        "loggers": {
            "": {"handlers": ["console"], "level": level},
            "uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
        },
    })
