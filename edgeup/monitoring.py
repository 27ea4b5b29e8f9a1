"""Monitoring and observability setup.

Traces and metrics are exported over OTLP when OTEL_ENABLED is set. When it
is not, the global no-op providers stay in place and every counter below is
still safe to call, so the service code never checks whether telemetry is on.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

from edgeup.config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if OTEL_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        tracer_provider = TracerProvider(resource=resource)
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)

        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if OTEL_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        otlp_metric_reader = PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        )

        meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[otlp_metric_reader]
        )
        metrics.set_meter_provider(meter_provider)

        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


# Initialize tracer and meter
tracer = init_tracing()
meter = init_metrics()

# Negotiation metrics
negotiations_created_counter = meter.create_counter(
    "edgeup.negotiations.created",
    description="Total number of offers sent by buyers",
    unit="1"
)

negotiations_decided_counter = meter.create_counter(
    "edgeup.negotiations.decided",
    description="Seller decisions on offers by outcome (accepted, rejected)",
    unit="1"
)

# Order metrics
orders_created_counter = meter.create_counter(
    "edgeup.orders.created",
    description="Total number of orders by path (direct, negotiated)",
    unit="1"
)

order_total_histogram = meter.create_histogram(
    "edgeup.orders.total",
    description="Order total in minor currency units",
    unit="RON"
)

order_status_changes_counter = meter.create_counter(
    "edgeup.orders.status_changes",
    description="Order status transitions by target status",
    unit="1"
)

stock_conflicts_counter = meter.create_counter(
    "edgeup.products.stock_conflicts",
    description="Orders or acceptances refused because stock ran out",
    unit="1"
)

# Catalog metrics
products_listed_counter = meter.create_counter(
    "edgeup.products.listed",
    description="Products put up for sale by category",
    unit="1"
)

reviews_created_counter = meter.create_counter(
    "edgeup.reviews.created",
    description="Reviews left on products by rating",
    unit="1"
)

# Notification metrics
notifications_published_counter = meter.create_counter(
    "edgeup.notifications.published",
    description="Notifications pushed to the live channel by type",
    unit="1"
)

notification_push_failures_counter = meter.create_counter(
    "edgeup.notifications.push_failures",
    description="Notifications persisted but not delivered to the live channel",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "edgeup.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "edgeup.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

registrations_counter = meter.create_counter(
    "edgeup.users.registered",
    description="New accounts by role",
    unit="1"
)
