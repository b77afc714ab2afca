"""
MirrorProxy Core Module
"""

from mirrorproxy.core.models import LogRecord
from mirrorproxy.core.server import ProxyServer, ServerState
from mirrorproxy.core.store import LogStore

__all__ = ["LogRecord", "LogStore", "ProxyServer", "ServerState"]
