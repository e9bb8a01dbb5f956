"""
Structured logging for the librarian package.

Every logger under the `librarian` namespace writes one JSON object per
record to stdout (and optionally to a file). Context about the item being
processed is passed as `extra={'details': {...}}` and emitted under
`details`; an `item` or `commit_id` key found there is also lifted to the
top level so log queries can filter on it directly.
"""

import json
import logging
import sys
from typing import List, Optional

ROOT_LOGGER = "librarian"
LIFTED_DETAILS = ("item", "commit_id")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        details = getattr(record, 'details', None)
        if isinstance(details, dict):
            for key in LIFTED_DETAILS:
                if key in details:
                    entry[key] = details[key]
            entry["details"] = details
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class LoggingManager:
    """
    Owns the handlers of the `librarian` logger.

    A single instance exists per process. `configure` replaces its handlers
    once the level and log file are known from configuration; until then the
    defaults (INFO, stdout only) apply.
    """
    _instance: Optional['LoggingManager'] = None

    def __init__(self, log_level: str = "INFO", log_file: Optional[str] = None):
        self.log_level = log_level.upper()
        self.log_file = log_file
        self.logger = logging.getLogger(ROOT_LOGGER)
        self.logger.setLevel(self.log_level)
        # Records stay out of the root logger's plain-text handlers
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        for handler in self._build_handlers():
            self.logger.addHandler(handler)

    def _build_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if self.log_file:
            handlers.append(logging.FileHandler(self.log_file, encoding='utf-8'))
        for handler in handlers:
            handler.setLevel(self.log_level)
            handler.setFormatter(JsonFormatter())
        return handlers

    @classmethod
    def configure(cls, log_level: str = "INFO", log_file: Optional[str] = None) -> 'LoggingManager':
        current = cls._instance
        if current is None or (current.log_level, current.log_file) != (log_level.upper(), log_file):
            cls._instance = cls(log_level=log_level, log_file=log_file)
        return cls._instance

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if cls._instance is None:
            cls._instance = cls()
        return logging.getLogger(name)


def get_logger(name: str) -> logging.Logger:
    return LoggingManager.get_logger(name)
