"""Root logging setup: compact console output or JSON lines, tagged per import run."""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextvars import ContextVar
from pathlib import Path
from traceback import FrameSummary, extract_tb
from types import TracebackType
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the correlation id ties together every log line of ONE import run.
# ContextVar keeps it per asyncio task, so two imports running side by side never
# share an id.
_correlation_id: ContextVar[str | None] = ContextVar("labelcatalog_correlation_id", default=None)

# Third-party loggers that drown our own output at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "redis", "asyncio", "aiosqlite")

CONSOLE_FORMAT = "%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s"

# JSON key -> LogRecord attribute
_JSON_RECORD_FIELDS = {
    "level": "levelname",
    "logger": "name",
    "module": "module",
    "function": "funcName",
    "line": "lineno",
}


def get_correlation_id() -> str:
    """Correlation id of the current task ("" outside an import run)."""
    return _correlation_id.get() or ""


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Tag the current task's log records.

    Args:
        correlation_id: Id to use, a fresh random hex id when None

    Returns:
        The id now in effect
    """
    value = correlation_id or uuid.uuid4().hex
    _correlation_id.set(value)
    return value


class CorrelationIdFilter(logging.Filter):
    """Stamps correlation_id and app onto every record passing the handler."""

    def __init__(self, app_name: str = "labelcatalog") -> None:
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.app = self.app_name
        return True


def _exception_chain(exc: BaseException) -> list[BaseException]:
    """Exceptions linked through __cause__/__context__, root cause first."""
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and not any(current is seen for seen in chain):
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain[::-1]


def _own_frames(tb: TracebackType | None, package: str) -> Iterator[FrameSummary]:
    for frame in extract_tb(tb):
        if f"/{package}/" in frame.filename and "site-packages" not in frame.filename:
            yield frame


class CompactExceptionFormatter(logging.Formatter):
    """Console formatter that prints exception chains root cause first, package frames only.

    Example:
        12:00:01 │ ERROR   │ labelcatalog.application.services.label_import_service:172 │ ...
        ╰─► KeyError: 'name'
            File "repositories.py", line 226, in find_or_create
        ╰─► ImportTransactionError: Import for label 2 failed: 'name'
    """

    package_name = "labelcatalog"

    def formatException(self, ei: Any) -> str:
        exc = ei[1]
        if exc is None:
            return ""

        lines: list[str] = []
        for link in _exception_chain(exc):
            lines.append(f"╰─► {type(link).__name__}: {link}")
            for frame in _own_frames(link.__traceback__, self.package_name):
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[misc]
    """One JSON object per record with location, app and correlation id."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        for key, attribute in _JSON_RECORD_FIELDS.items():
            log_record[key] = getattr(record, attribute)

        # Only present once a run has tagged the task
        for key in ("app", "correlation_id"):
            value = getattr(record, key, None)
            if value:
                log_record[key] = value


# Listen future me, CatalogContainer calls this once at startup. It swaps out ALL root
# handlers, so repeated calls (tests, scripts) don't stack duplicate output.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "labelcatalog",
) -> None:
    """Configure the root logger.

    Args:
        log_level: Level name; unknown names fall back to INFO
        json_format: JSON lines (log shipping) instead of the console format
        app_name: Value of the "app" field on every record
    """
    level = logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if json_format:
        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"
        )
    else:
        formatter = CompactExceptionFormatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter(app_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured (level=%s, json=%s)", logging.getLevelName(level), json_format
    )
