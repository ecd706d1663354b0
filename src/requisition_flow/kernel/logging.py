"""
Structured logging for the requisition workflow

Every façade command runs inside a LogOperation: one "started" line, then
"completed" or "failed" with the elapsed time. All lines written while a
command runs carry the same correlation_id. User identifiers are masked
before they reach a log line.
"""

import contextvars
import logging
import secrets
import sys
import time
from typing import Any

import structlog

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


def get_correlation_id() -> str:
    """Correlation id of the running command, minted on first use"""
    cid = correlation_id_var.get()
    if not cid:
        cid = secrets.token_urlsafe(16)
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def configure_logging(*, json_output: bool = False, log_level: str = "INFO") -> None:
    """
    Route structlog through the stdlib root logger on stdout

    Args:
        json_output: One JSON object per line instead of the colored console renderer
        log_level: Name of the minimum level, e.g. "WARNING"
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# Masked in every LogOperation line
REDACTED_FIELDS = frozenset({"actor_id", "requester_id", "receiver_id", "target_user_ids"})


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy of context with user identifiers replaced by a marker"""
    return {
        key: "***REDACTED***" if key in REDACTED_FIELDS else value
        for key, value in context.items()
    }


class LogOperation:
    """
    Timed log bracket around one façade command

    Opens a fresh correlation id when none is active and restores the
    previous value on exit. Exceptions are logged and re-raised.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = redact_context(context)
        self.start_time: float = 0.0
        self._token: contextvars.Token[str] | None = None

    def __enter__(self) -> "LogOperation":
        if not correlation_id_var.get():
            self._token = correlation_id_var.set(secrets.token_urlsafe(16))
        self.start_time = time.perf_counter()
        self.logger.info(f"{self.operation} started", operation=self.operation, **self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **self.context,
            )
        else:
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context,
            )
        if self._token is not None:
            correlation_id_var.reset(self._token)
            self._token = None
