"""
MirrorProxy — Transparent HTTP Forwarding Proxy with Traffic Transcripts
========================================================================

Point a client at the proxy (standard proxy mode, ``/http://...`` path mode,
or plain Host-header mode) and every exchange is relayed byte-for-byte while
a decoded, human-readable copy is kept for inspection.
"""

__version__ = "1.0.0"
__app_name__ = "MirrorProxy"
