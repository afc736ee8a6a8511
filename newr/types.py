"""
Value types shared by the exporter: record shapes, batch modes, endpoints and send results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict, Union


class CommonBlock(TypedDict, total=False):
    """Attributes shared by every entry of a log or span record."""
    attributes: Dict[str, Any]


class LogRecord(TypedDict, total=False):
    """One log record as produced by NewrSpanExporter. See the Log API docs for the full shape."""
    common: CommonBlock
    logs: List[Dict[str, Any]]


class SpanRecord(TypedDict, total=False):
    """One span record as produced by NewrSpanExporter (Data-Format: newrelic, version 1)."""
    common: CommonBlock
    spans: List[Dict[str, Any]]


@dataclass(frozen=True)
class TimeBatchMode:
    """Batch completes when max_items is reached or timeout_seconds pass without a new item."""
    timeout_seconds: float = 5.0
    max_items: int = 10

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {self.max_items}")


@dataclass(frozen=True)
class SizeBatchMode:
    """Batch completes only once min_items have been added. No time trigger."""
    min_items: int = 10

    def __post_init__(self):
        if self.min_items < 1:
            raise ValueError(f"min_items must be >= 1, got {self.min_items}")


BatchMode = Union[TimeBatchMode, SizeBatchMode]


class Region(str, Enum):
    US = "us"
    EU = "eu"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ApiEndpoint:
    """
    Where records are sent. Use ApiEndpoint.us(), ApiEndpoint.eu() or ApiEndpoint.custom(domain).
    The full URL is resolved per record kind, see record_kinds.py.
    """
    region: Region = Region.US
    domain: Optional[str] = None

    def __post_init__(self):
        if self.region == Region.CUSTOM and not self.domain:
            raise ValueError("A custom endpoint requires a domain")
        if self.region != Region.CUSTOM and self.domain:
            raise ValueError(f"domain is only valid for a custom endpoint, not {self.region.value}")

    @classmethod
    def us(cls) -> "ApiEndpoint":
        return cls(Region.US)

    @classmethod
    def eu(cls) -> "ApiEndpoint":
        return cls(Region.EU)

    @classmethod
    def custom(cls, domain: str) -> "ApiEndpoint":
        return cls(Region.CUSTOM, domain.rstrip("/") if domain else domain)


class SendState(Enum):
    FINISHED = "finished"    # all items accepted, rejected or abandoned
    REMAINING = "remaining"  # more to send, no wait needed
    TIMEOUT = "timeout"      # caller must wait `delay` seconds first


@dataclass(frozen=True)
class SendStatus:
    """Result of one DeliverySession.send() step."""
    state: SendState
    delay: float = 0.0

    @classmethod
    def finished(cls) -> "SendStatus":
        return cls(SendState.FINISHED)

    @classmethod
    def remaining(cls) -> "SendStatus":
        return cls(SendState.REMAINING)

    @classmethod
    def timeout(cls, delay: float) -> "SendStatus":
        return cls(SendState.TIMEOUT, float(delay))

    @property
    def is_finished(self) -> bool:
        return self.state == SendState.FINISHED

    @property
    def is_timeout(self) -> bool:
        return self.state == SendState.TIMEOUT


@dataclass
class FlushStats:
    """Outcome of one completed flush round, per record kind."""
    logs_delivered: int = 0
    logs_abandoned: int = 0
    spans_delivered: int = 0
    spans_abandoned: int = 0
    requests: int = 0
    waited_seconds: float = 0.0
