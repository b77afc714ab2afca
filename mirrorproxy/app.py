"""
Host-side application context and command handlers.

Everything a front end needs to drive the proxy lives on an explicit
:class:`AppContext` that the front end creates and passes to each handler:
the running server (if any), the records mirrored from it, and the log
viewer currently attached. The handlers enforce the host rules (valid port,
one running server per context) and return status dicts for display.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from mirrorproxy.config import MirrorProxyConfig
from mirrorproxy.core.models import LogRecord
from mirrorproxy.core.server import ProxyServer

logger = logging.getLogger(__name__)

Viewer = Callable[[LogRecord], None]


@dataclass
class AppContext:
    config: MirrorProxyConfig = field(default_factory=MirrorProxyConfig)
    server: Optional[ProxyServer] = None
    records: List[LogRecord] = field(default_factory=list)
    viewer: Optional[Viewer] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _on_log_added(self, record: LogRecord) -> None:
        with self._lock:
            self.records.append(record)
            overflow = len(self.records) - self.config.proxy.max_logs
            if overflow > 0:
                del self.records[:overflow]
            viewer = self.viewer
        if viewer:
            viewer(record)


def validate_port(value: Union[str, int]) -> Optional[str]:
    """Return an error message for an unusable port, else None."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return "Please enter a valid port number (1-65535)"
    if port < 1 or port > 65535:
        return "Please enter a valid port number (1-65535)"
    return None


def start_proxy(ctx: AppContext, port: Union[str, int, None] = None) -> Dict[str, Any]:
    """Start a proxy for this context unless one is already running."""
    if ctx.server and ctx.server.is_running:
        return {
            "ok": False,
            "error": f"Proxy server is already running on port {ctx.server.get_port()}",
        }

    port = ctx.config.proxy.port if port is None else port
    problem = validate_port(port)
    if problem:
        return {"ok": False, "error": problem}

    server = ProxyServer(
        port=int(port),
        on_log_added=ctx._on_log_added,
        host=ctx.config.proxy.host,
        max_logs=ctx.config.proxy.max_logs,
        options=ctx.config.forward_options(),
    )
    result = server.start()
    if result["ok"]:
        ctx.server = server
    else:
        ctx.server = None
        result["error"] = f"Failed to start proxy server: {result['error']}"
    return result


def stop_proxy(ctx: AppContext) -> Dict[str, Any]:
    if not ctx.server:
        return {"ok": False, "error": "Proxy is not running"}
    result = ctx.server.stop()
    ctx.server = None
    return result


def clear_logs(ctx: AppContext) -> int:
    """Drop every record, host-side and server-side. Returns host count."""
    with ctx._lock:
        count = len(ctx.records)
        ctx.records = []
    if ctx.server:
        ctx.server.clear_logs()
    return count


def show_logs(ctx: AppContext, viewer: Viewer) -> int:
    """Attach a viewer and replay the records seen so far into it.

    Returns the number of records replayed.
    """
    with ctx._lock:
        ctx.viewer = viewer
        existing = list(ctx.records)
    for record in existing:
        viewer(record)
    return len(existing)


def close_logs(ctx: AppContext) -> None:
    with ctx._lock:
        ctx.viewer = None
