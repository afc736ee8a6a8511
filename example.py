"""
Example usage of the newr exporter, through OpenTelemetry and directly.
"""

import asyncio
import logging
import os

from dotenv import load_dotenv
from opentelemetry import trace

from newr import ExporterConfig, NewrExporter, SizeBatchMode, flush_tracing, get_newr_client

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(level=logging.INFO)
logging.getLogger("NEWR").setLevel(logging.DEBUG)

print(f"Region: {os.getenv('NEWR_REGION', 'us')}, endpoint: {os.getenv('NEWR_ENDPOINT', 'not set')}")


def traced_work():
    # Attaches the exporter to the global tracer provider, or disables tracing if NEWR_API_KEY is missing
    client = get_newr_client()
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span("checkout") as span:
        span.set_attribute("cart.items", 3)
        span.add_event("payment authorised")
        with tracer.start_as_current_span("send-receipt"):
            pass
    if client.enabled:
        flush_tracing()
        client.shutdown()


async def direct_push():
    # Size mode: nothing is sent until 4 records (2 pushes) have been added
    exporter = NewrExporter(ExporterConfig(batch_mode=SizeBatchMode(min_items=4)))
    for i in range(3):
        log = {"logs": [{"message": f"job {i} done", "attributes": {"job.id": i}}]}
        span = {"spans": [{"id": f"{i:016x}", "trace.id": f"{i:032x}", "attributes": {"name": f"job-{i}"}}]}
        await exporter.push(log, span)
    await exporter.flush()
    print(f"Last flush: {exporter.last_flush_stats}")
    await exporter.close()


if __name__ == "__main__":
    traced_work()
    if os.getenv("NEWR_API_KEY"):
        asyncio.run(direct_push())
