# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Logging setup and per-run logging context.

Every record passes through :class:`RunContextFilter`, which copies the
current run id, workflow name and duration from context variables so that a
run's log lines can be correlated, in text or JSON format.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from time import perf_counter
from typing import List, Optional

run_id_var: ContextVar[str] = ContextVar("run_id", default="")
workflow_name_var: ContextVar[str] = ContextVar("workflow_name", default="")
run_duration_var: ContextVar[str] = ContextVar("run_duration_ms", default="")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(run_id)s %(workflow)s] %(message)s"
JSON_FIELDS = ("time", "level", "logger", "run_id", "workflow", "duration_ms", "message")

DEFAULT_MAX_LOG_FILE_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 3


class RunContextFilter(logging.Filter):
    """Injects run_id, workflow and duration_ms from context variables."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        record.workflow = workflow_name_var.get()
        record.duration_ms = run_duration_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        values = (
            self.formatTime(record),
            record.levelname,
            record.name,
            getattr(record, "run_id", ""),
            getattr(record, "workflow", ""),
            getattr(record, "duration_ms", ""),
            record.getMessage(),
        )
        data = dict(zip(JSON_FIELDS, values))
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class RunContext:
    """Set the logging context variables for the duration of one run.

    Usage::

        with RunContext(workflow="Daily digest"):
            orchestrator.validate_and_repair(graph)
    """

    def __init__(self, workflow: str = "", run_id: Optional[str] = None):
        self.workflow = workflow
        self.run_id = run_id or uuid.uuid4().hex
        self._tokens: list = []
        self._start = 0.0

    def __enter__(self) -> "RunContext":
        self._tokens = [
            run_id_var.set(self.run_id),
            workflow_name_var.set(self.workflow),
            run_duration_var.set(""),
        ]
        self._start = perf_counter()
        return self

    def elapsed_ms(self) -> float:
        return round((perf_counter() - self._start) * 1000, 2)

    def mark_duration(self) -> float:
        """Publish the elapsed time so that following records carry it."""
        elapsed = self.elapsed_ms()
        run_duration_var.set(str(elapsed))
        return elapsed

    def __exit__(self, *exc_info) -> None:
        for var, token in zip((run_id_var, workflow_name_var, run_duration_var), self._tokens):
            var.reset(token)


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_file: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> List[logging.Handler]:
    """Configure the ``flowmend_core`` and ``flowmend_common`` loggers.

    Replaces handlers installed by a previous call, so it is safe to call more
    than once (e.g. from tests). Returns the installed handlers.
    """
    formatter = JsonFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT)
    context_filter = RunContextFilter()

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=DEFAULT_MAX_LOG_FILE_BYTES if max_bytes is None else max_bytes,
                backupCount=DEFAULT_LOG_BACKUP_COUNT if backup_count is None else backup_count,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)

    for name in ("flowmend_core", "flowmend_common"):
        logger = logging.getLogger(name)
        for old in [h for h in logger.handlers if getattr(h, "_flowmend", False)]:
            logger.removeHandler(old)
            old.close()
        for handler in handlers:
            handler._flowmend = True  # type: ignore[attr-defined]
            logger.addHandler(handler)
        logger.setLevel(level.upper())
        logger.propagate = False
    return handlers
