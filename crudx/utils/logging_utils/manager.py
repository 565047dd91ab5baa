from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, current_app

# crudx layer -> file under the log directory
CATEGORY_FILES: Dict[str, str] = {
    "app": "application.log",
    "model": "model.log",
    "query": "query.log",
    "manager": "manager.log",
    "object": "object.log",
    "error": "errors.log",
    "exception": "exceptions.log",
}
FALLBACK_CATEGORY = "app"

_RECORD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_log_context: ContextVar[Dict[str, Any]] = ContextVar("crudx_log_context", default={})


def _app_logger() -> Optional[logging.Logger]:
    try:
        return current_app.logger
    except RuntimeError:
        return None


@contextmanager
def log_context(**fields: Any):
    """Add ``fields`` (model, action, manager...) to every record logged inside the block."""

    updated = dict(_log_context.get())
    updated.update({k: v for k, v in fields.items() if v is not None})
    token = _log_context.set(updated)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextAwareFormatter(logging.Formatter):
    """Text or JSON output, with the active ``log_context`` fields appended."""

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        *,
        json_format: bool = False,
        static_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(fmt=fmt or "[%(asctime)s] %(levelname)s %(name)s - %(message)s", datefmt=datefmt)
        self.json_format = json_format
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        context = _log_context.get()
        if not self.json_format:
            base = super().format(record)
            if context:
                base += " | " + " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            return base

        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
        }
        # anything passed through ``extra=``
        payload.update({k: v for k, v in vars(record).items() if k not in _RECORD_FIELDS and k not in payload})
        if context:
            payload["context"] = dict(context)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class LoggerManager:
    """
    One ``crudx.<category>`` logger per crudx layer, each writing to its own
    timed-rotating file. The console handler is shared, and the Flask app's
    handlers are mirrored so category records also reach the app log.
    """

    def __init__(
        self,
        *,
        base_dir: Optional[str] = None,
        rotation_when: str = "midnight",
        backup_count: int = 7,
        level: int = logging.INFO,
        enable_console: bool = True,
        mirror_app_handlers: bool = True,
        json_format: bool = False,
        static_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._base_dir = base_dir
        self._rotation_when = rotation_when
        self._backup_count = backup_count
        self._level = level
        self._enable_console = enable_console
        self._mirror_app_handlers = mirror_app_handlers
        self._formatter = ContextAwareFormatter(json_format=json_format, static_fields=static_fields)
        self._loggers: Dict[str, logging.Logger] = {}
        self._attached: Dict[str, List[logging.Handler]] = {}
        self._console_handler: Optional[logging.Handler] = None

    @property
    def base_dir(self) -> Path:
        return Path(self._base_dir or os.getenv("LOGGING_BASE_DIR", "/tmp/crudx_logs"))

    def get_logger(self, category: str) -> logging.Logger:
        key = category.lower()
        if key not in CATEGORY_FILES:
            key = FALLBACK_CATEGORY
        if key in self._loggers:
            return self._loggers[key]

        logger = logging.getLogger(f"crudx.{key}")
        logger.propagate = False
        logger.setLevel(self._level)

        self.base_dir.mkdir(parents=True, exist_ok=True)
        handler = TimedRotatingFileHandler(
            self.base_dir / CATEGORY_FILES[key],
            when=self._rotation_when,
            backupCount=self._backup_count,
            encoding="utf-8",
            utc=True,
        )
        handler.setFormatter(self._formatter)
        # the file handler comes first, it is the only one closed on detach
        attached = [handler]

        if self._enable_console:
            if self._console_handler is None:
                self._console_handler = logging.StreamHandler()
                self._console_handler.setFormatter(self._formatter)
            attached.append(self._console_handler)

        app_logger = _app_logger()
        if self._mirror_app_handlers and app_logger is not None:
            attached.extend(app_logger.handlers)

        for h in attached:
            if h not in logger.handlers:
                logger.addHandler(h)
        self._attached[key] = attached
        self._loggers[key] = logger
        return logger

    def shutdown(self) -> None:
        for key, logger in self._loggers.items():
            attached = self._attached.pop(key, [])
            for handler in attached:
                logger.removeHandler(handler)
            if attached:
                attached[0].close()
        self._loggers.clear()
        if self._console_handler:
            self._console_handler.close()
            self._console_handler = None


def _to_level(value: Any, default: int = logging.INFO) -> int:
    if isinstance(value, int):
        return value
    numeric = getattr(logging, str(value or "").strip().upper(), None)
    return numeric if isinstance(numeric, int) else default


_manager: Optional[LoggerManager] = None


def init_logger(app: Flask) -> LoggerManager:
    """Replace the shared manager with one configured from ``app.config``."""

    global _manager

    manager = LoggerManager(
        base_dir=app.config.get("LOGGING_BASE_DIR"),
        rotation_when=app.config.get("LOGGING_ROTATION_WHEN", "midnight"),
        backup_count=int(app.config.get("LOGGING_ROTATION_BACKUP_COUNT", 7)),
        level=_to_level(app.config.get("LOGGING_DEFAULT_LEVEL")),
        enable_console=bool(app.config.get("LOGGING_CONSOLE_ENABLED", True)),
        json_format=bool(app.config.get("LOGGING_JSON_FORMAT", False)),
        static_fields={"app": app.config.get("APP_NAME", app.name)},
    )

    shutdown_logger()
    _manager = manager
    return _manager


def logger_manager() -> LoggerManager:
    global _manager
    if _manager is None:
        _manager = LoggerManager(level=_to_level(os.getenv("LOGGING_DEFAULT_LEVEL")))
    return _manager


def shutdown_logger() -> None:
    global _manager
    if _manager is None:
        return
    _manager.shutdown()
    _manager = None


def get_logger(category: str) -> logging.Logger:
    return logger_manager().get_logger(category)
