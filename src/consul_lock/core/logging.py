"""Logging helpers for consul-lock.

All diagnostics go to stderr. The supervised program owns stdout.
"""

import atexit
import contextlib
import json
import logging
import re
import sys
from datetime import UTC, datetime

from consul_lock.core.config import LogConfig

_LOG_RECORD_RESERVED_FIELDS = set(logging.makeLogRecord({}).__dict__.keys()) | {"message", "asctime"}
_REDACTED_VALUE = "[REDACTED]"
_SENSITIVE_FIELD_NAMES = {"token", "acl_token", "consul_token", "x_consul_token", "authorization"}
_TOKEN_PATTERN = re.compile(
    r"""(?ix)
    (?P<key>(?:x-consul-token|consul[_-]?http[_-]?token|token|authorization)["']?)
    (?P<separator>\s*[:=]\s*)
    (?P<quote>["']?)
    (?P<value>[^\s,;&"'}]+)
    (?P=quote)
    """
)
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_atexit_registered = False


def _safe_record_message(record: logging.LogRecord) -> str:
    try:
        return record.getMessage()
    except Exception:
        return f"{record.msg!s} [log-message-format-error]"


def _redact_token_match(match: re.Match[str]) -> str:
    quote = match.group("quote")
    return f"{match.group('key')}{match.group('separator')}{quote}{_REDACTED_VALUE}{quote}"


def redact_message(message: str) -> str:
    """Mask ACL tokens embedded in a log message."""
    return _TOKEN_PATTERN.sub(_redact_token_match, message)


def _is_sensitive_field(name: str) -> bool:
    return name.lower().replace("-", "_") in _SENSITIVE_FIELD_NAMES


class SensitiveDataFilter(logging.Filter):
    """Best-effort redaction of ACL tokens in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_message(_safe_record_message(record))
        record.args = ()
        for key, value in list(record.__dict__.items()):
            if key in _LOG_RECORD_RESERVED_FIELDS or key.startswith("_"):
                continue
            if _is_sensitive_field(key):
                record.__dict__[key] = _REDACTED_VALUE
            elif isinstance(value, str):
                record.__dict__[key] = redact_message(value)
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging output.

    Each log record is a single JSON object on one line.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _safe_record_message(record),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "thread_name": record.threadName,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Custom attributes set via logging's `extra` or a context adapter.
        for key, value in record.__dict__.items():
            if key in _LOG_RECORD_RESERVED_FIELDS or key.startswith("_"):
                continue
            log_entry.setdefault(key, value)

        return json.dumps(log_entry, default=str)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges contextual fields into record extras."""

    def process(self, msg, kwargs):
        merged_extra = dict(self.extra)
        extra = kwargs.get("extra")
        if isinstance(extra, dict):
            merged_extra.update(extra)
        kwargs["extra"] = merged_extra
        return msg, kwargs


def with_log_context(logger: logging.Logger | logging.LoggerAdapter, **context: object) -> logging.LoggerAdapter:
    """Return a logger enriched with persistent contextual fields."""
    base = logger
    existing: dict[str, object] = {}
    if isinstance(logger, logging.LoggerAdapter):
        existing = dict(logger.extra or {})
        base = logger.logger
    existing.update({k: v for k, v in context.items() if v is not None})
    return ContextLoggerAdapter(base, existing)


def setup_logging(config: LogConfig | None = None) -> logging.Logger:
    """Setup logging to stderr.

    Args:
        config: Level and format; defaults to WARNING text output

    Returns:
        The package logger
    """
    global _atexit_registered

    config = config or LogConfig()

    if not _atexit_registered:
        atexit.register(logging.shutdown)
        _atexit_registered = True

    log_level = config.level.upper()
    if log_level not in _VALID_LEVELS:
        print(f"Warning: Invalid log level '{config.level}', using WARNING", file=sys.stderr)
        log_level = "WARNING"
    numeric_level = getattr(logging, log_level)

    for handler in logging.root.handlers[:]:
        handler.close()
        logging.root.removeHandler(handler)

    if config.format.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    handler.addFilter(SensitiveDataFilter())
    logging.root.addHandler(handler)
    logging.root.setLevel(numeric_level)

    logger = logging.getLogger("consul_lock")
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logger.debug("Logging initialized at %s", log_level)
    return logger


def flush_logging_handlers() -> None:
    """Flush root handlers before the process exits."""
    for handler in logging.root.handlers:
        with contextlib.suppress(Exception):
            handler.flush()
