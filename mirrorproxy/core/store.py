"""
Bounded, insertion-ordered store of finalized log records.

Records arrive from many handler threads at once, so every mutation and
read goes through one lock. Subscribers are called outside the lock, once
per appended record.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from mirrorproxy.core.models import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

Listener = Callable[[LogRecord], None]


class LogStore:
    """FIFO-bounded list of :class:`LogRecord` with change notification."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if not 1 <= capacity <= DEFAULT_CAPACITY:
            raise ValueError(f"capacity must be between 1 and {DEFAULT_CAPACITY}")
        self.capacity = capacity
        self._records: Deque[LogRecord] = deque()
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ── Mutation ─────────────────────────────────────────────────────────

    def append(self, record: LogRecord) -> None:
        """Add a finalized record, dropping the oldest if over capacity."""
        with self._lock:
            self._records.append(record)
            while len(self._records) > self.capacity:
                self._records.popleft()
            listeners = list(self._listeners)

        for cb in listeners:
            try:
                cb(record)
            except Exception as e:
                logger.debug(f"Log listener error: {e}")

    def clear_all(self) -> int:
        """Empty the store. Returns number of records dropped."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        return count

    # ── Subscribers ──────────────────────────────────────────────────────

    def on_appended(self, callback: Listener) -> None:
        """Register a callback invoked once for every appended record."""
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(callback)
            except ValueError:
                return False
            return True

    # ── Access ───────────────────────────────────────────────────────────

    def snapshot(self) -> List[LogRecord]:
        """All current records, oldest first."""
        with self._lock:
            return list(self._records)

    def get(self, record_id: str) -> Optional[LogRecord]:
        with self._lock:
            for r in self._records:
                if r.id == record_id:
                    return r
        return None

    def query(
        self,
        limit: Optional[int] = None,
        filter_term: Optional[str] = None,
        method: Optional[str] = None,
    ) -> List[LogRecord]:
        """Filtered records, most recent first.

        Args:
            limit: Max number of records to return.
            filter_term: Substring filter on URL/headers/body.
            method: Filter by HTTP method.
        """
        records = self.snapshot()
        if filter_term:
            records = [r for r in records if r.matches_filter(filter_term)]
        if method:
            records = [r for r in records if r.method.upper() == method.upper()]
        records.reverse()
        if limit:
            records = records[:limit]
        return records

    # ── Statistics / Export ──────────────────────────────────────────────

    def stats(self) -> Dict[str, Any]:
        records = self.snapshot()
        methods: Dict[str, int] = {}
        status_codes: Dict[str, int] = {}
        errors = 0
        total_bytes = 0
        total_duration = 0.0

        for r in records:
            methods[r.method] = methods.get(r.method, 0) + 1
            if r.status_code:
                bucket = f"{r.status_code // 100}xx"
                status_codes[bucket] = status_codes.get(bucket, 0) + 1
            if r.error:
                errors += 1
            total_bytes += r.response_size
            total_duration += r.duration_ms

        total = len(records)
        return {
            "total_requests": total,
            "capacity": self.capacity,
            "errors": errors,
            "total_bytes": total_bytes,
            "methods": methods,
            "status_codes": status_codes,
            "avg_duration_ms": round(total_duration / total, 1) if total else 0,
        }

    def export_json(self, limit: Optional[int] = None, filter_term: Optional[str] = None) -> str:
        records = self.query(limit=limit, filter_term=filter_term)
        data = {
            "stats": self.stats(),
            "records": [r.to_dict() for r in records],
            "exported_at": time.time(),
        }
        return json.dumps(data, indent=2)
