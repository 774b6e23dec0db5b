"""Tracing, Prometheus series and structured logging for the booking service."""

import logging

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

from .config import settings

SERVICE_NAME = "shuttle-booking-api"

# Prometheus series
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Seat engine metrics
SEATS_ASSIGNED = Counter(
    'trip_seats_assigned_total',
    'Seats written onto a trip',
    ['price_rule_id', 'held'],
    registry=REGISTRY
)

TRIPS_CREATED = Counter(
    'trips_created_total',
    'Vehicle instances created',
    ['price_rule_id'],
    registry=REGISTRY
)

ASSIGNMENT_FAILURES = Counter(
    'trip_assignment_failures_total',
    'Seat assignments that failed',
    ['reason'],
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Bookings promoted to Confirmed',
    ['price_rule_id'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Bookings cancelled',
    registry=REGISTRY
)

PAYMENTS_VERIFIED = Counter(
    'booking_payments_verified_total',
    'Payment verifications by result',
    ['result'],
    registry=REGISTRY
)

HOLDS_RECLAIMED = Counter(
    'trip_holds_reclaimed_total',
    'Seat entries dropped by cleanup',
    ['reason'],
    registry=REGISTRY
)

RESCHEDULE_OUTCOMES = Counter(
    'reschedule_passengers_total',
    'Reschedule sweep outcomes per passenger',
    ['outcome'],
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_failures_total',
    'Notifications that could not be delivered',
    ['kind'],
    registry=REGISTRY
)


def _trace_ids(logger, method_name, event_dict):
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")
    return event_dict


def setup_structured_logging():
    """Route structlog events through JSON (or the console renderer in debug)."""
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            # request_id is bound by RequestIDMiddleware
            structlog.contextvars.merge_contextvars,
            _trace_ids,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "deployment.environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME):
    """Install a tracer provider; spans leave the process only when OTLP is configured."""
    provider = TracerProvider(resource=_resource(app_name))
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(app_name)


def setup_metrics(app_name: str = SERVICE_NAME):
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(app_name), metric_readers=[reader]))
    return metrics.get_meter(app_name)


def instrument_fastapi(app):
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready,metrics")


def instrument_sqlalchemy(engine=None):
    """Trace SQL statements, on the given async engine or globally."""
    instrumentor = SQLAlchemyInstrumentor()
    if engine is None:
        instrumentor.instrument()
    else:
        instrumentor.instrument(engine=engine.sync_engine)


def get_tracer(name: str):
    return trace.get_tracer(name)


class MetricsCollector:
    """Thin facade over the Prometheus series above."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_seat_assigned(price_rule_id: str, held: bool):
        SEATS_ASSIGNED.labels(price_rule_id=price_rule_id, held="true" if held else "false").inc()

    @staticmethod
    def record_trip_created(price_rule_id: str):
        TRIPS_CREATED.labels(price_rule_id=price_rule_id).inc()

    @staticmethod
    def record_assignment_failure(reason: str):
        ASSIGNMENT_FAILURES.labels(reason=reason).inc()

    @staticmethod
    def record_bookings_confirmed(price_rule_id: str, count: int):
        BOOKINGS_CONFIRMED.labels(price_rule_id=price_rule_id).inc(count)

    @staticmethod
    def record_booking_cancelled():
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_payment_verification(success: bool):
        PAYMENTS_VERIFIED.labels(result="success" if success else "failure").inc()

    @staticmethod
    def record_holds_reclaimed(expired: int, deleted: int):
        for reason, count in (("expired", expired), ("deleted", deleted)):
            if count:
                HOLDS_RECLAIMED.labels(reason=reason).inc(count)

    @staticmethod
    def record_reschedule_outcome(outcome: str, count: int = 1):
        RESCHEDULE_OUTCOMES.labels(outcome=outcome).inc(count)

    @staticmethod
    def record_notification_failure(kind: str):
        NOTIFICATION_FAILURES.labels(kind=kind).inc()


metrics_collector = MetricsCollector()


def get_prometheus_metrics() -> bytes:
    return generate_latest(REGISTRY)


class StructuredLogger:
    """
    Keyword-context logger used by the sweeps and the CLI.

    ``with_context`` returns a child carrying extra bound fields, so a
    whole sweep run shares its dates on every line.
    """

    def __init__(self, bound):
        self._bound = structlog.get_logger(bound) if isinstance(bound, str) else bound

    def with_context(self, **fields) -> "StructuredLogger":
        return StructuredLogger(self._bound.bind(**fields))

    def debug(self, event: str, **fields):
        self._bound.debug(event, **fields)

    def info(self, event: str, **fields):
        self._bound.info(event, **fields)

    def warning(self, event: str, **fields):
        self._bound.warning(event, **fields)

    def error(self, event: str, **fields):
        self._bound.error(event, **fields)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
