"""
Data model for captured exchanges.

A :class:`LogRecord` is built when a request arrives, filled in as the
exchange progresses, and handed to the log store exactly once when it is
finalized. After that point nothing in the package touches it again.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

HeaderValue = Union[str, List[str]]
HeaderMap = Dict[str, HeaderValue]


def new_record_id() -> str:
    """Return a random identifier that is unique for all practical purposes."""
    return uuid.uuid4().hex


def snapshot_headers(items: Iterable[Tuple[str, str]]) -> HeaderMap:
    """Build a header mapping from ``(name, value)`` pairs.

    Names are lower-cased. A header that appears more than once becomes a
    list of its values, in the order they were received.
    """
    headers: HeaderMap = {}
    for name, value in items:
        key = name.lower()
        if key not in headers:
            headers[key] = value
            continue
        existing = headers[key]
        if isinstance(existing, list):
            existing.append(value)
        else:
            headers[key] = [existing, value]
    return headers


def header_value(headers: Optional[HeaderMap], name: str) -> Optional[str]:
    """First value of ``name`` in a snapshot, or None."""
    if not headers:
        return None
    value = headers.get(name.lower())
    if isinstance(value, list):
        return value[0] if value else None
    return value


@dataclass
class LogRecord:
    """One proxied request and what came back for it."""
    method: str
    url: str
    request_headers: HeaderMap = field(default_factory=dict)
    id: str = field(default_factory=new_record_id)
    timestamp: float = field(default_factory=time.time)
    status_code: Optional[int] = None
    response_headers: Optional[HeaderMap] = None
    response_body: Optional[str] = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    response_size: int = 0

    def mark_done(self) -> None:
        """Stamp the elapsed time since arrival."""
        self.duration_ms = (time.time() - self.timestamp) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "method": self.method,
            "url": self.url,
            "request_headers": self.request_headers,
            "status_code": self.status_code,
            "response_headers": self.response_headers,
            "response_body": self.response_body,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 2),
            "response_size": self.response_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogRecord":
        return cls(
            id=data.get("id") or new_record_id(),
            timestamp=data.get("timestamp", 0),
            method=data.get("method", "GET"),
            url=data.get("url", ""),
            request_headers=data.get("request_headers", {}),
            status_code=data.get("status_code"),
            response_headers=data.get("response_headers"),
            response_body=data.get("response_body"),
            error=data.get("error"),
            duration_ms=data.get("duration_ms", 0.0),
            response_size=data.get("response_size", 0),
        )

    def matches_filter(self, term: str) -> bool:
        """Case-insensitive substring match over the whole exchange."""
        term_lower = term.lower()
        searchable = (
            f"{self.method} {self.url} "
            f"{json.dumps(self.request_headers)} "
            f"{json.dumps(self.response_headers or {})} "
            f"{self.response_body or ''} {self.error or ''}"
        ).lower()
        return term_lower in searchable

    def get_summary(self) -> str:
        """One-line summary."""
        status = f" → {self.status_code}" if self.status_code else ""
        error = f" [{self.error}]" if self.error else ""
        return (f"{self.method} {self.url}{status} "
                f"({self.duration_ms:.0f}ms, {self.response_size}B){error}")
