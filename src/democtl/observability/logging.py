"""
democtl — run logging.

File: src/democtl/observability/logging.py

Purpose
- One JSON object per line for every democtl invocation, on stderr and optionally in
  ``<log_dir>/<run_id>/democtl.jsonl``.
- Stamp each line with the run id and whatever scenario/stage/check is in scope.

Functional requirements
- Records are handed to a background listener through a bounded queue; a full queue drops
  the record and counts it instead of blocking a check.
- ``structlog`` loggers obtained anywhere in democtl share the same sinks, and their
  keyword arguments end up under ``fields``.
- Secrets never reach a sink in clear: secret-looking keys, ``KEY=value`` assignments,
  bearer tokens and any literal secret value registered for the run are masked.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import queue
import re
import sys
import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from democtl.constants import LOGIN_KEY_NAME

MASK: Final[str] = "***REDACTED***"
LOG_FILENAME: Final[str] = "democtl.jsonl"

_SCOPE_KEYS: Final[tuple[str, ...]] = ("scenario_id", "stage", "check_kind")
_SECRET_KEY_MARKERS: Final[tuple[str, ...]] = (
    "login_key",
    "secret",
    "token",
    "password",
    "authorization",
    "cookie",
)
_ASSIGNMENT_RE: Final[re.Pattern[str]] = re.compile(
    rf"(?i)\b({LOGIN_KEY_NAME}|[a-z_]*login[_-]?key|token|password|secret)(\s*[:=]\s*)([^\s,;\"']+)"
)
_BEARER_RE: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "scope"}

_SCOPE: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "democtl_log_scope", default={}
)

_active_lock = threading.Lock()
_active: LogSession | None = None
_atexit_hooked = False


class SecretRedactor:
    """Mask secret material in log payloads.

    ``secrets`` are literal values known for this run (for example the demo login key);
    they are masked wherever they appear, independent of the surrounding key name.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self._literals = tuple(sorted({s for s in secrets if len(s) >= 4}, key=len, reverse=True))

    def __call__(self, value: Any, *, key: str | None = None) -> Any:
        if key is not None and any(marker in key.lower() for marker in _SECRET_KEY_MARKERS):
            return MASK
        if isinstance(value, str):
            return self._scrub(value)
        if isinstance(value, Mapping):
            return {str(k): self(v, key=str(k)) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self(item) for item in value]
        return value

    def _scrub(self, text: str) -> str:
        for literal in self._literals:
            text = text.replace(literal, MASK)
        text = _ASSIGNMENT_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{MASK}", text)
        return _BEARER_RE.sub(f"Bearer {MASK}", text)


def _passthrough(value: Any, *, key: str | None = None) -> Any:
    return value


@dataclass(frozen=True, slots=True)
class LoggingOptions:
    run_id: str
    level: int | str = "WARNING"
    log_dir: Path | str | None = None
    logger_name: str = "democtl"
    to_stderr: bool = True
    redact: bool = True
    secrets: tuple[str, ...] = ()
    queue_size: int = 4096


class _BoundedQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, records: queue.Queue[Any]) -> None:
        super().__init__(records)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Scope is read on the emitting thread; the listener thread has its own context.
        record.scope = dict(_SCOPE.get())
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str, redactor: Any) -> None:
        super().__init__()
        self._run_id = run_id
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "run_id": self._run_id,
            "message": self._redact(record.getMessage()),
        }
        for key, value in sorted(getattr(record, "scope", {}).items()):
            line[key] = value
        fields = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if fields:
            line["fields"] = self._redact(fields)
        if record.exc_info:
            line["exception"] = self._redact(self.formatException(record.exc_info))
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class LogSession:
    """Handle on the sinks opened for one democtl run."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        handler: _BoundedQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._handler = handler
        self._listener = listener
        self._sinks = sinks
        self._closed = False

    @property
    def dropped(self) -> int:
        return self._handler.dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # QueueListener.stop() drains everything already enqueued before returning.
        self._listener.stop()
        self.logger.removeHandler(self._handler)
        self._handler.close()
        for sink in self._sinks:
            sink.flush()
            sink.close()


def start_logging(options: LoggingOptions) -> LogSession:
    """Open the sinks described by ``options`` and make them the active session."""
    global _active, _atexit_hooked

    run_id = options.run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    if options.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = parse_level(options.level)

    shutdown_logging()

    redactor = SecretRedactor(options.secrets) if options.redact else _passthrough
    formatter = _JsonLinesFormatter(run_id, redactor)
    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if options.log_dir is not None:
        log_path = Path(options.log_dir) / run_id / LOG_FILENAME
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if options.to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setFormatter(formatter)

    logger = logging.getLogger(options.logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    handler = _BoundedQueueHandler(queue.Queue(maxsize=options.queue_size))
    listener = logging.handlers.QueueListener(handler.queue, *sinks)
    listener.start()
    logger.addHandler(handler)
    _route_structlog()

    session = LogSession(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        handler=handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _active_lock:
        _active = session
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return session


def setup_logging(
    section: Mapping[str, object] | None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    secrets: Iterable[str] = (),
) -> LogSession:
    """Start logging from the ``[logging]`` table of ``democtl.toml``.

    ``log_dir`` is only used when ``to_file`` is set. ``secrets`` are literal values to
    mask on top of the pattern-based redaction.
    """

    cfg = dict(section or {})
    level = cfg.get("level", "WARNING")
    return start_logging(
        LoggingOptions(
            run_id=run_id,
            level=level if isinstance(level, (int, str)) else "WARNING",
            log_dir=log_dir if cfg.get("to_file") else None,
            redact=bool(cfg.get("redact_secrets", True)),
            secrets=tuple(secrets),
        )
    )


def shutdown_logging(session: LogSession | None = None) -> None:
    """Close ``session`` (default: the active one); a no-op when nothing is open."""
    global _active
    with _active_lock:
        target = session if session is not None else _active
        if target is None:
            return
        if _active is target:
            _active = None
    target.close()


def active_session() -> LogSession | None:
    with _active_lock:
        return _active


def current_scope() -> dict[str, str]:
    return dict(_SCOPE.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind scenario/stage fields onto every record emitted inside the block.

    Passing ``None`` (or a blank string) for a key unbinds it for the duration.
    """

    scope = dict(_SCOPE.get())
    for key, value in fields.items():
        text = "" if value is None else str(value).strip()
        if text:
            scope[key] = text
        else:
            scope.pop(key, None)
    token = _SCOPE.set(scope)
    try:
        yield
    finally:
        _SCOPE.reset(token)


def parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelNamesMapping().get(value.strip().upper())
    if level is None:
        raise ValueError(f"unsupported logging level {value!r}")
    return level


def _route_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return str(value)


__all__ = [
    "LOG_FILENAME",
    "MASK",
    "LogSession",
    "LoggingOptions",
    "SecretRedactor",
    "active_session",
    "correlation_scope",
    "current_scope",
    "parse_level",
    "setup_logging",
    "shutdown_logging",
    "start_logging",
]
