"""
Configuração de logging da aplicação.

Uma linha JSON por evento no console, com os campos:
level, logger, module, function, line, message.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone

LOGGER_NAME = "custodia"

FIELDS = {
    "level": "levelname",
    "logger": "name",
    "module": "module",
    "function": "funcName",
    "line": "lineno",
    "message": "message",
}


class JsonFormatter(logging.Formatter):
    def __init__(self, fmt_dict: dict | None = None):
        super().__init__()
        self.fmt_dict = fmt_dict if fmt_dict is not None else {"message": "message"}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        }
        payload.update({key: record.__dict__.get(attr) for key, attr in self.fmt_dict.items()})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter, "fmt_dict": FIELDS},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                },
            },
            "loggers": {
                LOGGER_NAME: {
                    "handlers": ["console"],
                    "level": level,
                    "propagate": True,
                },
            },
        }
    )
    return logging.getLogger(LOGGER_NAME)
