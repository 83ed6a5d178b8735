"""Observability for the dialogue core.

Structured logging (structlog, with secret redaction), Prometheus counters
for gate decisions, streaming and playback, and OpenTelemetry spans around
streaming sessions.
"""

import logging
import re
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from structlog.processors import JSONRenderer

# Prometheus metrics
OPERATION_COUNTER = Counter(
    "chorus_operations_total",
    "Total number of timed operations",
    ["operation", "status", "agent_id"],
)

OPERATION_LATENCY = Histogram(
    "chorus_operation_duration_seconds",
    "Operation latency in seconds",
    ["operation", "agent_id"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
)

GENERATION_REQUESTS = Counter(
    "chorus_generation_requests_total",
    "Generation requests seen by the gate",
    ["status", "reason"],
)

UTTERANCES_STREAMED = Counter(
    "chorus_utterances_streamed_total",
    "Utterances delivered by the streaming collaborator",
    ["status"],
)

UTTERANCES_CONSUMED = Counter(
    "chorus_utterances_consumed_total",
    "Utterances dequeued by the playback scheduler",
    ["status"],
)

SESSION_DURATION = Histogram(
    "chorus_session_duration_seconds",
    "Wall time of a streaming session",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

SESSION_ERRORS = Counter(
    "chorus_session_errors_total",
    "Streaming sessions that ended with an error",
    ["error_type"],
)

QUEUE_DEPTH = Gauge(
    "chorus_queue_depth",
    "Pending utterances per agent",
    ["agent_id"],
)

ACTIVE_SESSIONS_GAUGE = Gauge(
    "chorus_active_sessions",
    "Streaming sessions currently in flight",
)

REGISTERED_AGENTS_GAUGE = Gauge(
    "chorus_registered_agents",
    "Agents currently held by the registry",
)

# Secrets and contact details that may leak into prompts or provider errors.
# Utterance ids are 32 hex characters, so bare tokens need at least 40.
REDACTION_PATTERNS = [
    ("API_KEY", re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_-]{16,}")),
    ("BEARER", re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")),
    ("EMAIL", re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b")),
    ("PHONE", re.compile(r"\b(?:\+?\d{1,2}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")),
    ("TOKEN", re.compile(r"\b[A-Za-z0-9]{40,}\b")),
]


def redact_pii(value: Any) -> Any:
    """Mask secrets and contact details in a string; other values pass through.

    >>> redact_pii("key sk-abcdefghijklmnopqrstu, mail bo@farm.example")
    'key [REDACTED_API_KEY], mail [REDACTED_EMAIL]'
    """
    if not isinstance(value, str):
        return value
    for label, pattern in REDACTION_PATTERNS:
        value = pattern.sub(f"[REDACTED_{label}]", value)
    return value


def _redact_nested(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact_nested(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_redact_nested(v) for v in value]
    return redact_pii(value)


def pii_redaction_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor applying ``redact_pii`` to every logged value."""
    return _redact_nested(event_dict)


def setup_logging(
    log_level: str = "INFO",
    enable_pii_redaction: bool = True,
    log_format: str = "json",
) -> None:
    """Route structlog through the stdlib root logger.

    ``log_format="text"`` renders colored console lines for the CLI; anything
    else emits one JSON object per event.
    """
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if enable_pii_redaction:
        processors.append(pii_redaction_processor)
    processors.append(
        structlog.dev.ConsoleRenderer() if log_format == "text" else JSONRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(service_name: str = "chorus", otlp_endpoint: str | None = None) -> None:
    """Install a global tracer provider exporting session spans.

    Spans go to ``otlp_endpoint`` over gRPC when given, otherwise to stdout.
    """
    from chorus import __version__

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.version": __version__}
        )
    )
    exporter = (
        OTLPSpanExporter(endpoint=otlp_endpoint)
        if otlp_endpoint
        else ConsoleSpanExporter()
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def get_logger(name: str, **context: Any) -> Any:
    """Structlog logger, optionally bound to ``context``."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


class OperationTiming:
    """Outcome of one timed operation, filled in when the block exits."""

    def __init__(self, operation: str, agent_id: str, tick: int | None) -> None:
        self.operation = operation
        self.agent_id = agent_id
        self.tick = tick
        self.status = "running"
        self.duration: float | None = None


@asynccontextmanager
async def async_performance_timer(
    operation: str,
    agent_id: str | None = None,
    tick: int | None = None,
    logger: Any = None,
    record_metrics: bool = True,
    create_span: bool = True,
) -> AsyncGenerator[OperationTiming, None]:
    """Time an async block with a tracing span, Prometheus metrics and a log line.

    Cancellation and other ``BaseException``s count as errors and still end
    the span before propagating.
    """
    timing = OperationTiming(operation, agent_id or "unknown", tick)
    logger = logger or get_logger("chorus.performance")
    span = None
    if create_span:
        span = trace.get_tracer("chorus.performance").start_span(operation)
        span.set_attribute("agent_id", timing.agent_id)
        if tick is not None:
            span.set_attribute("tick", tick)

    start = time.perf_counter()
    error: BaseException | None = None
    try:
        yield timing
    except BaseException as e:
        error = e
        raise
    finally:
        timing.duration = time.perf_counter() - start
        timing.status = "success" if error is None else "error"

        if record_metrics:
            OPERATION_COUNTER.labels(
                operation=operation, status=timing.status, agent_id=timing.agent_id
            ).inc()
            OPERATION_LATENCY.labels(
                operation=operation, agent_id=timing.agent_id
            ).observe(timing.duration)

        if span is not None:
            span.set_attribute("duration_seconds", timing.duration)
            if error is None:
                span.set_status(trace.Status(trace.StatusCode.OK))
            else:
                span.record_exception(error)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
            span.end()

        log = logger.debug if error is None else logger.warning
        log(
            "Operation timed",
            operation=operation,
            status=timing.status,
            agent_id=timing.agent_id,
            tick=tick,
            latency_ms=round(timing.duration * 1000, 3),
        )


def record_generation_request(accepted: bool, reason: str) -> None:
    """Count a gate decision under its ``RejectReason`` value."""
    GENERATION_REQUESTS.labels(
        status="accepted" if accepted else "rejected", reason=reason
    ).inc()


def record_streamed_utterance(status: str) -> None:
    """Count a streamed utterance as ``enqueued`` or ``dropped``."""
    UTTERANCES_STREAMED.labels(status=status).inc()


def record_consumed_utterance(status: str) -> None:
    """Count a dequeued utterance as ``spoken`` or ``ignored``."""
    UTTERANCES_CONSUMED.labels(status=status).inc()


def record_session(duration_seconds: float, error_type: str | None = None) -> None:
    SESSION_DURATION.observe(duration_seconds)
    if error_type is not None:
        SESSION_ERRORS.labels(error_type=error_type).inc()


def record_queue_depth(agent_id: str, depth: int) -> None:
    QUEUE_DEPTH.labels(agent_id=agent_id).set(depth)


def update_active_sessions(count: int) -> None:
    ACTIVE_SESSIONS_GAUGE.set(count)


def update_registered_agents(count: int) -> None:
    REGISTERED_AGENTS_GAUGE.set(count)


def start_metrics_server(port: int = 8000) -> None:
    """Expose the Prometheus registry over HTTP on ``port``."""
    start_http_server(port)
