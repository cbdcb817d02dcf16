# src/minibus/core/log.py
"""
Root logging for minibus users and tests.

Environment (``.env`` is loaded first): LOG_LEVEL (default INFO) and
LOG_JSON=1 for one JSON object per line.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

PLAIN_FORMAT = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"

_configured = False


class JsonFormatter(logging.Formatter):
    fields = ("filename", "lineno", "funcName")

    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "ts": record.created,
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        doc.update({f: getattr(record, f, None) for f in self.fields})
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info).splitlines()[-1]
        return json.dumps(doc, ensure_ascii=False, default=str)


def _level(name: str) -> int:
    lvl = logging.getLevelName(name.upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def _stdout_handler(json_mode: bool) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter() if json_mode else logging.Formatter(PLAIN_FORMAT))
    return handler


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Install one stdout handler on the root logger.

    Arguments override the environment. Later calls do nothing unless force=True.
    """
    global _configured
    if _configured and not force:
        return

    load_dotenv()
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if json_mode is None:
        json_mode = os.getenv("LOG_JSON", "0") == "1"

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(_stdout_handler(json_mode))
    root.setLevel(_level(level))
    _configured = True


def get(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_level(level: str) -> None:
    logging.getLogger().setLevel(_level(level))
