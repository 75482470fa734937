"""
Observability Infrastructure

Structured logging, correlation tracking and Prometheus counters for the
workflow engine.
"""

import contextvars
import logging
import sys
import uuid
from typing import Any

import structlog
from prometheus_client import Counter

from .config import Settings, settings

# Context variables for correlation tracking
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
actor_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("actor_id", default="")

# Prometheus metrics
INTENT_COUNT = Counter(
    "jobflow_intents_total",
    "Intents processed by the workflow engine",
    ["intent", "outcome"],
)

STATUS_TRANSITIONS = Counter(
    "jobflow_status_transitions_total",
    "Job status transitions committed",
    ["from_status", "to_status"],
)

EVENTS_PUBLISHED = Counter(
    "jobflow_events_published_total",
    "Domain events published after commit",
    ["event_type"],
)

EVENT_HANDLER_FAILURES = Counter(
    "jobflow_event_handler_failures_total",
    "Event handler exceptions (logged, never propagated)",
    ["event_type"],
)

NOTIFICATIONS_SENT = Counter(
    "jobflow_notifications_total",
    "Notifications handed to the gateway",
    ["kind", "outcome"],
)

HOURMETER_FLAGS = Counter(
    "jobflow_hourmeter_flags_total", "Meter readings flagged", ["reason"]
)


class CorrelationIdProcessor:
    """Structlog processor to add correlation and actor IDs to all log entries."""

    def __call__(
        self, logger: Any, name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        correlation_id = correlation_id_var.get("")
        actor_id = actor_id_var.get("")

        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        if actor_id:
            event_dict["actor_id"] = actor_id

        return event_dict


def configure_logging(config: Settings | None = None) -> None:
    """Configure structured logging with JSON or console output."""
    config = config or settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        CorrelationIdProcessor(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.add_log_level,
    ]

    if config.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=config.ENVIRONMENT == "local")
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    if config.LOG_SQL:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    else:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for request tracking."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> str:
    return correlation_id_var.get("")


def set_actor_id(actor_id: str) -> None:
    actor_id_var.set(actor_id)


def record_intent(intent: str, outcome: str) -> None:
    INTENT_COUNT.labels(intent=intent, outcome=outcome).inc()


def record_transition(from_status: str, to_status: str) -> None:
    STATUS_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()


def record_hourmeter_flags(reasons: list[str]) -> None:
    for reason in reasons:
        HOURMETER_FLAGS.labels(reason=reason).inc()
