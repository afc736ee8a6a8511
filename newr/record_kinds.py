"""
Per record kind request building: which URL a batch goes to and with which headers.
"""

from dataclasses import dataclass
from typing import Any, Dict, Sequence

from .constants import EU_LOG_HOST, EU_TRACE_HOST, US_LOG_HOST, US_TRACE_HOST
from .http_utils import build_headers, to_gz
from .types import ApiEndpoint, Region


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: Dict[str, str]
    body: bytes


class RecordKind:
    """
    Capability object for one kind of record. Subclasses set name, path and the regional hosts,
    and may add extra headers.
    """
    name: str = ""
    path: str = ""
    us_host: str = ""
    eu_host: str = ""

    def resolve_url(self, endpoint: ApiEndpoint) -> str:
        if endpoint.region == Region.EU:
            base = self.eu_host
        elif endpoint.region == Region.CUSTOM:
            base = endpoint.domain.rstrip("/")
        else:
            base = self.us_host
        return f"{base}{self.path}"

    def extra_headers(self) -> Dict[str, str]:
        return {}

    def build_request(self, batch: Sequence[Any], endpoint: ApiEndpoint, api_key: str) -> PreparedRequest:
        """Build the POST for one batch. Raises RecordSerializationError if the batch is not JSON-serialisable."""
        return PreparedRequest(
            url=self.resolve_url(endpoint),
            headers=build_headers(api_key, self.extra_headers()),
            body=to_gz(batch),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LogRecordKind(RecordKind):
    # https://docs.newrelic.com/docs/logs/log-api/introduction-log-api/#json-headers
    name = "log"
    path = "/log/v1"
    us_host = US_LOG_HOST
    eu_host = EU_LOG_HOST


class SpanRecordKind(RecordKind):
    # https://docs.newrelic.com/docs/distributed-tracing/trace-api/trace-api-general-requirements-limits/
    name = "span"
    path = "/trace/v1"
    us_host = US_TRACE_HOST
    eu_host = EU_TRACE_HOST

    def extra_headers(self) -> Dict[str, str]:
        return {"Data-Format": "newrelic", "Data-Format-Version": "1"}


LOGS = LogRecordKind()
SPANS = SpanRecordKind()
