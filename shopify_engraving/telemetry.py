"""OpenTelemetry helpers for metrics instrumentation."""

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader

METER_NAME = "shopify_engraving"

_meter_provider_initialized = False


def init_metrics(console: bool = False) -> None:
    """Install a meter provider, exporting to the console when ``console`` is set."""
    global _meter_provider_initialized
    if _meter_provider_initialized:
        return
    readers = [PeriodicExportingMetricReader(ConsoleMetricExporter())] if console else []
    metrics.set_meter_provider(MeterProvider(metric_readers=readers))
    _meter_provider_initialized = True


def get_webhook_duration_histogram() -> metrics.Histogram:
    """Histogram of webhook processing time."""
    meter = metrics.get_meter(METER_NAME)
    return meter.create_histogram(
        name="engraving.webhook.duration",
        unit="ms",
        description="Duration of Shopify webhook processing",
    )


def get_saved_engravings_counter() -> metrics.Counter:
    """Counter of engravings written to orders."""
    meter = metrics.get_meter(METER_NAME)
    return meter.create_counter(
        name="engraving.orders.saved",
        unit="1",
        description="Engravings recorded on orders",
    )
