"""
Logging setup for the eligibility engine.

Engine modules log through plain ``logging.getLogger(__name__)`` loggers;
this module decides where those records go and how they look. Every record
emitted while a screening is being processed carries that screening's id,
taken from ``screening_id_var``.

Console output goes to stderr so the CLI can keep stdout for JSON results.
Log files are always written as JSON lines.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, TextIO

screening_id_var: ContextVar[Optional[str]] = ContextVar('screening_id', default=None)


@contextmanager
def screening_context(screening_id: Optional[str]) -> Iterator[None]:
    """Attach ``screening_id`` to every record logged inside the block."""
    token = screening_id_var.set(screening_id)
    try:
        yield
    finally:
        screening_id_var.reset(token)


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = dict(getattr(record, 'extra_data', None) or {})
    screening_id = screening_id_var.get()
    if screening_id and 'screening_id' not in fields:
        fields['screening_id'] = screening_id
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers and files."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line terminal format: ``time LEVEL [logger] message | k=v``."""

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        line = f"{clock} {record.levelname:<8} [{record.name}] {record.getMessage()}"

        fields = _record_fields(record)
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that merges fixed context (component, employer...) into each record."""

    def process(self, msg: str, kwargs: Dict) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        extra_data = dict(self.extra)
        extra_data.update(extra.get('extra_data') or {})
        extra['extra_data'] = extra_data
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> List[logging.Handler]:
    """
    Route all engine logging to the console and, optionally, a file.

    Replaces any handlers already on the root logger and returns the new ones.

    Args:
        level: Root log level name, e.g. ``"INFO"``
        json_output: Emit JSON lines on the console instead of readable text
        log_file: Extra JSON-lines file; parent directories are created
        stream: Console stream, stderr when omitted
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(JsonFormatter() if json_output else ReadableFormatter())
    handlers: List[logging.Handler] = [console]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    return handlers


def get_logger(name: str, **context) -> ContextLogger:
    """Logger for ``name`` that adds ``context`` to every record it emits."""
    return ContextLogger(logging.getLogger(name), context)
