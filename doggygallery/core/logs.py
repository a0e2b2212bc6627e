# doggygallery/core/logs.py
# Console + optional rotating file logging for the "doggygallery" logger tree.

from __future__ import annotations
import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAME = "doggygallery"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "name": record.name,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: int = logging.INFO, logs_dir: Optional[str] = None,
                  json_logs: bool = False) -> logging.Logger:
    """
    Console always; file only when logs_dir is given.
      - console: "HH:MM:SS [LEVEL] name: message"
      - file:    midnight rotation, 14 backups, plain or JSON lines
    Calling it again replaces the handlers (tests, reloads).
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                                      datefmt="%H:%M:%S"))
    logger.addHandler(ch)

    if logs_dir:
        d = Path(logs_dir).expanduser()
        d.mkdir(parents=True, exist_ok=True)
        log_path = d / "doggygallery.log"
        fh = logging.handlers.TimedRotatingFileHandler(
            log_path, when="midnight", backupCount=14, encoding="utf-8"
        )
        fh.setLevel(level)
        if json_logs:
            fh.setFormatter(JsonFormatter())
        else:
            fh.setFormatter(logging.Formatter(
                "%(asctime)sZ [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            ))
        logger.addHandler(fh)
        logger.debug("Log file: %s", log_path)

    return logger
