"""Structured logging setup: queue-backed stdlib sinks, structlog front end, redaction."""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Final, cast

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOG_FILENAME: Final[str] = "forge.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "forge_orchestrator"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096
_LOG_FORMATS: Final[frozenset[str]] = frozenset({"json", "text"})

_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "task_id",
    "correlation_id",
    "step",
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_OPENAI_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-[A-Za-z0-9]{12,}\b")
_ANTHROPIC_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-ant-[A-Za-z0-9_-]{12,}\b")

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "forge_observability_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed structured logging."""

    run_id: str
    base_log_dir: Path | str | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    log_format: str = "json"
    queue_size: int = _DEFAULT_QUEUE_SIZE
    log_filename: str = _DEFAULT_LOG_FILENAME
    stream: IO[str] | None = None
    redactor: LogRedactor | None = None


def new_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str | None = None,
    log_dir: Path | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Configure structured logging from an ``[observability]`` section and return the logger.

    Logs go to ``stream`` (stderr by default) and, when ``log_dir`` is non-empty, to
    ``<log_dir>/<run_id>/forge.jsonl``. structlog is configured to render through the
    same stdlib handlers so component events and plain records share one sink.
    """

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    raw_format = cfg.get("log_format", "json")
    log_format = raw_format if isinstance(raw_format, str) else "json"
    redact_enabled = bool(cfg.get("redact_secrets", True))
    raw_base_log_dir: object = log_dir if log_dir is not None else cfg.get("log_dir", "")
    base_log_dir: Path | str | None = (
        raw_base_log_dir if isinstance(raw_base_log_dir, (Path, str)) else None
    )

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id if run_id is not None else new_run_id(),
            base_log_dir=base_log_dir or None,
            logger_name=logger_name,
            level=level,
            log_format=log_format,
            stream=stream,
            redactor=None if redact_enabled else _identity_redactor,
        )
    )
    configure_structlog()
    return handle.logger


def configure_structlog() -> None:
    """Route ``structlog.get_logger(__name__)`` events into stdlib logging."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class _DropCounter:
    """Thread-safe counter for dropped queue records."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


class _NonBlockingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that snapshots correlation fields and drops records when full."""

    def __init__(self, log_queue: queue.Queue[object], drop_counter: _DropCounter) -> None:
        super().__init__(log_queue)
        self._drop_counter = drop_counter

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread cannot see this task's contextvars.
        context = get_correlation_context()
        if context:
            record.correlation = context
        prepared = super().prepare(record)
        return cast("logging.LogRecord", prepared)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self._drop_counter.increment()


class _StructuredFormatter(logging.Formatter):
    """Render one record as a JSON object line, or as ``level logger message k=v`` text."""

    def __init__(
        self,
        *,
        redactor: LogRedactor,
        base_context: Mapping[str, str],
        log_format: str,
    ) -> None:
        super().__init__()
        self._redactor = redactor
        self._base_context = dict(base_context)
        self._log_format = log_format

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _coerce_log_message(
                self._redactor(_normalize_json_value(record.getMessage()))
            ),
        }

        correlation = _merge_correlation_context(record, self._base_context)
        for key, value in sorted(correlation.items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._redactor(_normalize_json_value(extras))

        if record.exc_info is not None:
            event["exception"] = _coerce_log_message(
                self._redactor(_normalize_json_value(self.formatException(record.exc_info)))
            )

        if self._log_format == "text":
            return _render_text(event)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _render_text(event: Mapping[str, JSONValue]) -> str:
    head = f"{event['timestamp']} {event['level']:<7} {event['logger']}: {event['message']}"
    parts = [head]
    fields = event.get("fields")
    if isinstance(fields, dict):
        for key in sorted(fields):
            parts.append(f"{key}={_coerce_log_message(fields[key])}")
    for key in _CORRELATION_KEYS:
        value = event.get(key)
        if isinstance(value, str):
            parts.append(f"{key}={value}")
    exception = event.get("exception")
    if isinstance(exception, str):
        parts.append("\n" + exception)
    return " ".join(parts)


class StructuredLoggingHandle:
    """Runtime handle for an active structured logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        log_queue: queue.Queue[object],
        queue_handler: _NonBlockingQueueHandler,
        sink_handlers: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
        drop_counter: _DropCounter,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sink_handlers = sink_handlers
        self._listener = listener
        self._drop_counter = drop_counter
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def dropped_records(self) -> int:
        return self._drop_counter.value()

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        for handler in self._sink_handlers:
            handler.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._shutdown_lock:
            if self._is_shutdown:
                return

            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()

            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()

            for handler in self._sink_handlers:
                handler.flush()
                # The stream handler does not own stderr/stdout.
                if isinstance(handler, logging.FileHandler):
                    handler.close()

            self._is_shutdown = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure queue-backed structured logging for a single run."""

    _shutdown_previous_active_handle()

    run_id = _validate_non_empty(config.run_id, "run_id")
    logger_name = _validate_non_empty(config.logger_name, "logger_name")
    level = _parse_log_level(config.level)
    log_format = config.log_format.strip().lower()
    if log_format not in _LOG_FORMATS:
        raise ValueError(f"unsupported log format {config.log_format!r}")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")

    formatter = _StructuredFormatter(
        redactor=config.redactor if config.redactor is not None else default_log_redactor,
        base_context={"run_id": run_id},
        log_format=log_format,
    )

    stream = config.stream if config.stream is not None else sys.stderr
    stream_handler = logging.StreamHandler(stream)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    sink_handlers: list[logging.Handler] = [stream_handler]

    log_path: Path | None = None
    if config.base_log_dir:
        log_filename = _validate_non_empty(config.log_filename, "log_filename")
        if Path(log_filename).name != log_filename:
            raise ValueError("log_filename must not include path separators")
        run_log_dir = Path(config.base_log_dir) / run_id
        run_log_dir.mkdir(parents=True, exist_ok=True)
        log_path = run_log_dir / log_filename
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        # Files always get JSON lines.
        file_handler.setFormatter(
            _StructuredFormatter(
                redactor=config.redactor if config.redactor is not None else default_log_redactor,
                base_context={"run_id": run_id},
                log_format="json",
            )
        )
        sink_handlers.append(file_handler)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=config.queue_size)
    drop_counter = _DropCounter()
    queue_handler = _NonBlockingQueueHandler(log_queue, drop_counter)
    queue_handler.setLevel(level)

    listener = logging.handlers.QueueListener(log_queue, *sink_handlers, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sink_handlers=tuple(sink_handlers),
        listener=listener,
        drop_counter=drop_counter,
    )

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = handle

    _register_atexit_shutdown()
    return handle


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is not None:
        resolved.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop the listener and close file sinks."""

    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is None:
        return

    resolved.shutdown(timeout_seconds=timeout_seconds)

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Set correlation fields for the active context and return a reset token."""

    state = get_correlation_context()
    for key, value in fields.items():
        key_name = _validate_non_empty(key, "correlation key")
        if value is None:
            state.pop(key_name, None)
            continue
        state[key_name] = _validate_non_empty(value, "correlation value")
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields (``task_id=...``) for log records in scope."""

    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction of secret-looking keys and API-key-shaped strings."""

    return _redact_value(value, key_context=None)


def redact_text(text: str) -> str:
    return _redact_string(text)


def _shutdown_previous_active_handle() -> None:
    existing = get_active_logging_handle()
    if existing is not None:
        existing.shutdown()

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = None


def _register_atexit_shutdown() -> None:
    global _ATEXIT_REGISTERED
    if _ATEXIT_REGISTERED:
        return
    atexit.register(shutdown_logging)
    _ATEXIT_REGISTERED = True


def _validate_non_empty(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_log_message(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _merge_correlation_context(
    record: logging.LogRecord,
    base_context: Mapping[str, str],
) -> dict[str, str]:
    merged = dict(base_context)
    user_context = getattr(record, "correlation", None)
    if isinstance(user_context, Mapping):
        for key, value in user_context.items():
            if isinstance(key, str) and isinstance(value, str) and value.strip():
                merged[key] = value.strip()

    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()
    return merged


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS:
            continue
        if key in _CORRELATION_KEYS or key == "correlation":
            continue
        if key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _REDACTED_VALUE
    if isinstance(value, datetime):
        normalized = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
        return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(
            (_normalize_json_value(item) for item in value),
            key=lambda item: json.dumps(item, sort_keys=True, ensure_ascii=False),
        )
    return repr(value)


def _identity_redactor(value: JSONValue) -> JSONValue:
    return value


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    redacted = _ANTHROPIC_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)
    redacted = _OPENAI_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)
    return redacted


__all__ = [
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "new_run_id",
    "redact_text",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
