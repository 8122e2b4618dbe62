"""
Logging setup driven by the monitoring configuration.

Console and rotating-file handlers are attached to the root logger so the
pipeline modules (which log through ``logging.getLogger(__name__)``) and
``app.logger`` share one configuration. structlog's ``ProcessorFormatter``
renders every stdlib record: ``LOG_FORMAT=json`` emits one JSON object per
line including any ``reconcile_*`` context passed via ``extra``, ``text`` uses
the console renderer.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog

_HANDLER_MARKER = "_wall_app_handler"


def _add_app_name(app_name: str) -> structlog.types.Processor:
    def processor(logger, method_name, event_dict):  # noqa: ARG001
        event_dict["app"] = app_name
        return event_dict

    return processor


def build_processors(app_name: str, *, time_fmt: str = "iso") -> list[structlog.types.Processor]:
    """Pre-chain applied to records that come from the standard library."""
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt, utc=True),
        _add_app_name(app_name),
        structlog.stdlib.ExtraAdder(),
        structlog.processors.format_exc_info,
    ]


def build_formatter(log_format: str, app_name: str) -> structlog.stdlib.ProcessorFormatter:
    if str(log_format).lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(default=str)
        pre_chain = build_processors(app_name)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
        pre_chain = build_processors(app_name, time_fmt="%Y-%m-%d %H:%M:%S")
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=pre_chain,
    )


def setup_logging(app) -> None:
    """Configure root and application loggers from ``app.config``."""

    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    # Re-running setup (tests, reloader) must not stack handlers.
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    formatter = build_formatter(app.config.get("LOG_FORMAT", "text"), app.config.get("APP_NAME", "Wall Reconcile"))
    handlers: list[logging.Handler] = []

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "reconcile.log")),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        setattr(handler, _HANDLER_MARKER, True)
        root.addHandler(handler)

    app.logger.debug(
        "Logging configured",
        extra={"log_format": app.config.get("LOG_FORMAT"), "log_handlers": len(handlers)},
    )
