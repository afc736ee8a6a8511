"""
OpenTelemetry span exporter that turns finished spans into newr log and span records.
Each span becomes one (log record, span record) pair handed to an ExportWorker.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.trace import StatusCode

from .constants import LOG_TAG, NEWR_TRACER_NAME, VERSION
from .types import LogRecord, SpanRecord
from .worker import ExportWorker

logger = logging.getLogger(LOG_TAG)


def _ns_to_ms(nanoseconds: Optional[int]) -> Optional[int]:
    if nanoseconds is None:
        return None
    return int(nanoseconds // 1_000_000)


def _clean_attributes(attributes) -> Dict[str, Any]:
    """OTel attribute values may be tuples; JSON wants lists."""
    if not attributes:
        return {}
    return {key: list(value) if isinstance(value, tuple) else value for key, value in attributes.items()}


def _common_block(span: ReadableSpan) -> Dict[str, Any]:
    attributes = _clean_attributes(span.resource.attributes if span.resource else None)
    attributes["instrumentation.provider"] = NEWR_TRACER_NAME
    attributes["instrumentation.version"] = VERSION
    return {"attributes": attributes}


def serialize_span(span: ReadableSpan) -> SpanRecord:
    """Convert a ReadableSpan to a span record in the newrelic trace format."""
    span_context = span.get_span_context()
    attributes = _clean_attributes(span.attributes)
    attributes["name"] = span.name
    if span.end_time is not None:
        attributes["duration.ms"] = (span.end_time - span.start_time) / 1_000_000
    if span.parent is not None:
        attributes["parent.id"] = format(span.parent.span_id, "016x")
    service_name = (span.resource.attributes or {}).get("service.name") if span.resource else None
    if service_name:
        attributes["service.name"] = service_name
    status_code = span.status.status_code
    if status_code == StatusCode.ERROR:
        attributes["error"] = True
        if span.status.description:
            attributes["error.message"] = span.status.description

    return {
        "common": _common_block(span),
        "spans": [
            {
                "id": format(span_context.span_id, "016x"),
                "trace.id": format(span_context.trace_id, "032x"),
                "timestamp": _ns_to_ms(span.start_time),
                "attributes": attributes,
            }
        ],
    }


def serialize_span_logs(span: ReadableSpan) -> LogRecord:
    """
    Convert a ReadableSpan to a log record: one entry for the span itself plus one per span event,
    all linked to the span by trace.id and span.id.
    """
    span_context = span.get_span_context()
    link = {
        "trace.id": format(span_context.trace_id, "032x"),
        "span.id": format(span_context.span_id, "016x"),
    }
    level = "ERROR" if span.status.status_code == StatusCode.ERROR else "INFO"
    logs: List[Dict[str, Any]] = [
        {
            "timestamp": _ns_to_ms(span.end_time if span.end_time is not None else span.start_time),
            "message": span.name,
            "attributes": {**link, "level": level},
        }
    ]
    for event in span.events or []:
        logs.append({
            "timestamp": _ns_to_ms(event.timestamp),
            "message": event.name,
            "attributes": {**_clean_attributes(event.attributes), **link, "level": level},
        })
    return {"common": _common_block(span), "logs": logs}


class NewrSpanExporter(SpanExporter):
    """
    Exports finished spans through an ExportWorker. Batching, retries and delivery happen in the
    worker's thread, so export() only serialises and queues.
    """

    def __init__(self, worker: Optional[ExportWorker] = None):
        self.worker = worker if worker is not None else ExportWorker()

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        if not spans:
            logger.debug(f"export: called with empty spans list")
            return SpanExportResult.SUCCESS

        dropped = 0
        for span in spans:
            if not self.worker.submit(serialize_span_logs(span), serialize_span(span)):
                dropped += 1
        if dropped:
            logger.warning(f"export: {dropped} of {len(spans)} span(s) were dropped")
            return SpanExportResult.FAILURE
        logger.debug(f"export: queued {len(spans)} span(s)")
        return SpanExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.worker.flush(timeout_millis / 1000.0)

    def shutdown(self) -> None:
        self.worker.shutdown()
