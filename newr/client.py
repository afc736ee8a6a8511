# newr/client.py
import logging
from functools import lru_cache
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import ExporterConfig
from .constants import LOG_TAG, NEWR_TRACER_NAME, VERSION
from .http_utils import get_api_key

logger = logging.getLogger(LOG_TAG)


class NewrClient:
    """
    Singleton client for newr tracing.

    This class manages the tracing provider, exporter, and enabled state.
    Access via get_newr_client() which returns the singleton instance.
    """
    _instance: Optional['NewrClient'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._provider = None
            cls._instance._exporter = None # not imported for typecheck, avoids circular imports
            cls._instance._enabled = True
            cls._instance._initialized = False
        return cls._instance

    @property
    def provider(self) -> Optional[TracerProvider]:
        return self._provider

    @provider.setter
    def provider(self, value: Optional[TracerProvider]) -> None:
        self._provider = value

    @property
    def exporter(self):
        """The NewrSpanExporter attached to the provider, if any."""
        return self._exporter

    @exporter.setter
    def exporter(self, value) -> None:
        self._exporter = value

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        logger.info(f"newr tracing {'enabled' if value else 'disabled'}")
        self._enabled = value

    def shutdown(self) -> None:
        """
        Shutdown the tracer provider and exporter, sending anything still buffered.
        This will also set enabled=False.
        """
        try:
            logger.info(f"newr tracing shutting down")
            self.enabled = False
            if self._provider:
                self._provider.shutdown()
            elif self._exporter:
                self._exporter.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down tracing: {e}")
            self.enabled = False


# Global singleton instance
client: NewrClient = NewrClient()


@lru_cache(maxsize=1)
def get_newr_client() -> NewrClient:
    """
    Initialize and return the newr client singleton.

    Loads configuration from environment variables (NEWR_API_KEY, NEWR_REGION, NEWR_ENDPOINT,
    NEWR_BATCH_*) and attaches a NewrSpanExporter to the global tracer provider.
    Without an API key, tracing is disabled and a warning is logged; this function never raises.

    Idempotent: calling it multiple times is safe and will only initialize once.
    """
    try:
        _init_tracing()
    except Exception as e:
        logger.error(f"Failed to initialize newr tracing: {e}")
        logger.warning(f"newr tracing is disabled. Your application will continue to run without tracing.")
        client.enabled = False
    return client


def _init_tracing() -> None:
    """Initialize tracing system and load configuration from environment variables."""
    if client._initialized:
        return

    try:
        if not get_api_key():
            client.enabled = False
            logger.warning(f"newr tracing is disabled: missing required environment variable NEWR_API_KEY")
            client._initialized = True
            return

        config = ExporterConfig()
        provider = trace.get_tracer_provider()
        # If it's still the default proxy, install a real SDK provider
        if not isinstance(provider, TracerProvider):
            provider = TracerProvider()
            trace.set_tracer_provider(provider)

        _attach_newr_processor(provider, config)
        client.provider = provider
        logger.info(f"newr initialized and tracing ({config!r})")
        client._initialized = True
    except Exception as e:
        logger.error(f"Error initializing newr tracing: {e}")
        client._initialized = True  # prevent retry loops
        raise


def _attach_newr_processor(provider: TracerProvider, config: ExporterConfig) -> None:
    """Attach the newr span processor to the provider. Idempotent."""
    from .newr_exporter import NewrExporter
    from .otel import NewrSpanExporter
    from .worker import ExportWorker

    for p in provider._active_span_processor._span_processors:
        existing = _processor_exporter(p)
        if isinstance(existing, NewrSpanExporter):
            logger.debug(f"newr span processor already attached, skipping")
            client.exporter = existing
            return

    exporter = NewrSpanExporter(ExportWorker(NewrExporter(config)))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    client.exporter = exporter
    logger.debug(f"newr span processor attached successfully")


def get_newr_tracer() -> trace.Tracer:
    """Get the newr tracer, tagged with the package version."""
    return trace.get_tracer(NEWR_TRACER_NAME, VERSION)


def flush_tracing(timeout_millis: int = 30000) -> bool:
    """
    Flush all pending spans to the ingest API and wait for the flush round to finish.
    Flushes also happen automatically when a batch completes, so this is only needed
    before exiting a process or at the end of a test run.
    """
    newr_client = get_newr_client()
    flushed = True
    if newr_client.provider:
        flushed = newr_client.provider.force_flush(timeout_millis)
    # the batch processor only hands spans over; the worker still has to send them
    if newr_client.exporter:
        flushed = newr_client.exporter.force_flush(timeout_millis) and flushed
    return flushed


def _processor_exporter(processor):
    # The attribute moved between opentelemetry-sdk releases
    exporter = getattr(processor, "span_exporter", None)
    if exporter is None:
        exporter = getattr(getattr(processor, "_batch_processor", None), "_exporter", None)
    return exporter
