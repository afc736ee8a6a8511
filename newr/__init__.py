"""
Python telemetry export client: batches log and span records and delivers them to the
New Relic style Log and Trace APIs, with retry, rate-limit backoff and oversized-payload splitting.

Set environment variables:
    NEWR_API_KEY: ingest API key
    NEWR_REGION: "us" (default) or "eu"
    NEWR_ENDPOINT: Optional custom ingest domain
    NEWR_BATCH_MODE: "time" (default) or "size", see config.py for the other NEWR_BATCH_* settings

Example (OpenTelemetry):
    from opentelemetry import trace
    from newr import get_newr_client, flush_tracing

    get_newr_client()  # attaches the exporter to the global tracer provider
    with trace.get_tracer(__name__).start_as_current_span("work"):
        ...
    flush_tracing()

Example (direct, inside an event loop):
    exporter = NewrExporter(ExporterConfig(api_key="...", batch_mode=SizeBatchMode(min_items=100)))
    await exporter.push(log_record, span_record)
    await exporter.flush()
"""

from .batch import BatchTracker
from .client import NewrClient, flush_tracing, get_newr_client, get_newr_tracer
from .config import ExporterConfig
from .constants import VERSION
from .delivery import DeliverySession
from .exceptions import RecordSerializationError
from .newr_exporter import NewrExporter
from .otel import NewrSpanExporter
from .record_kinds import LOGS, SPANS
from .transport import AiohttpTransport, TransportResponse
from .types import ApiEndpoint, FlushStats, SendState, SendStatus, SizeBatchMode, TimeBatchMode
from .worker import ExportWorker

__all__ = [
    "ApiEndpoint",
    "AiohttpTransport",
    "BatchTracker",
    "DeliverySession",
    "ExportWorker",
    "ExporterConfig",
    "FlushStats",
    "LOGS",
    "NewrClient",
    "NewrExporter",
    "NewrSpanExporter",
    "RecordSerializationError",
    "SPANS",
    "SendState",
    "SendStatus",
    "SizeBatchMode",
    "TimeBatchMode",
    "TransportResponse",
    "flush_tracing",
    "get_newr_client",
    "get_newr_tracer",
    "VERSION",
]
