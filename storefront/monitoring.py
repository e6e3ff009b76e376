"""Monitoring and observability setup.

Tracing and metrics are exported over OTLP when ``TELEMETRY_ENABLED`` is on.
With telemetry off the module still exposes the same tracer and instruments,
backed by the OpenTelemetry no-op providers, so callers never branch on it.
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
import pyroscope

from storefront.config import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
    TELEMETRY_ENABLED
)

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
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


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not TELEMETRY_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": "demo"}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


if TELEMETRY_ENABLED:
    tracer = init_tracing()
    meter = init_metrics()
else:
    tracer = trace.get_tracer(__name__)
    meter = metrics.get_meter(__name__)

# Catalog metrics
product_views_counter = meter.create_counter(
    "storefront.products.views",
    description="Total number of product catalog views",
    unit="1"
)

cart_additions_counter = meter.create_counter(
    "storefront.cart.additions",
    description="Total number of product snapshots appended to the cart",
    unit="1"
)

cart_removals_counter = meter.create_counter(
    "storefront.cart.removals",
    description="Total number of cart entries removed before checkout",
    unit="1"
)

# Checkout metrics
checkout_counter = meter.create_counter(
    "storefront.checkouts",
    description="Total number of checkout attempts by outcome",
    unit="1"
)

checkout_amount_histogram = meter.create_histogram(
    "storefront.checkout.amount",
    description="Cart total at checkout",
    unit="INR"
)

# Fulfillment metrics
order_status_transitions_counter = meter.create_counter(
    "storefront.orders.status_transitions",
    description="Fulfillment status transitions applied to tracked batches",
    unit="1"
)

order_ratings_counter = meter.create_counter(
    "storefront.orders.ratings",
    description="Ratings submitted for delivered orders",
    unit="1"
)

# State store health
store_parse_failures_counter = meter.create_counter(
    "storefront.store.parse_failures",
    description="Persisted sequences that failed to parse and fell back to empty",
    unit="1"
)

store_write_conflicts_counter = meter.create_counter(
    "storefront.store.write_conflicts",
    description="Optimistic transactions aborted by a concurrent writer",
    unit="1"
)
