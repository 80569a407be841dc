"""JSON log lines for the `kubeconverge` logger.

Log calls may pass a dict with structured context as the only argument:

    logit.info("deleted", {"kind": "Deployment", "id": "default/nginx"})

The formatter merges that dict into the emitted JSON object.

"""

import json
import logging
import sys
from datetime import UTC, datetime


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # Do not use `record.getMessage` when the argument is a context dict
        # because messages may legitimately contain `%` characters.
        if isinstance(record.args, dict):
            msg, context = str(record.msg), dict(record.args)
        else:
            msg, context = record.getMessage(), {}

        data = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": msg,
        }
        data.update({k: v for k, v in context.items() if k not in data})
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup(level: str) -> logging.Logger:
    """Route all `kubeconverge` logs with at least `level` severity to stderr."""
    logger = logging.getLogger("kubeconverge")
    logger.setLevel(level.upper())

    # Replace our own handlers to make this function idempotent.
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
