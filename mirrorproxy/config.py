"""
MirrorProxy Configuration Management
====================================
Handles config loading, env-var overrides, and platform-specific paths.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from platformdirs import user_config_dir

from mirrorproxy.core.capture import MAX_CAPTURE_BYTES
from mirrorproxy.core.forwarder import READ_CHUNK_SIZE, ForwardOptions
from mirrorproxy.core.store import DEFAULT_CAPACITY

logger = logging.getLogger(__name__)

APP_NAME = "mirrorproxy"

# ── paths ────────────────────────────────────────────────────────────────────

CONFIG_DIR = Path(user_config_dir(APP_NAME))
CONFIG_FILE = CONFIG_DIR / "config.yaml"


# ── default config ───────────────────────────────────────────────────────────

DEFAULT_CONFIG: Dict[str, Any] = {
    "proxy": {
        "host": "127.0.0.1",
        "port": 8888,
        "max_logs": DEFAULT_CAPACITY,
        "verify_tls": True,
        "upstream_timeout": None,
    },
    "capture": {
        "max_body_bytes": MAX_CAPTURE_BYTES,
        "chunk_size": READ_CHUNK_SIZE,
    },
    "ui": {
        "show_banner": True,
        "verbose": False,
        "body_preview": 2000,
    },
}


@dataclass
class ProxyConfig:
    host: str = "127.0.0.1"
    port: int = 8888
    max_logs: int = DEFAULT_CAPACITY
    verify_tls: bool = True
    upstream_timeout: Optional[float] = None


@dataclass
class CaptureConfig:
    max_body_bytes: int = MAX_CAPTURE_BYTES
    chunk_size: int = READ_CHUNK_SIZE


@dataclass
class UIConfig:
    show_banner: bool = True
    verbose: bool = False
    body_preview: int = 2000


@dataclass
class MirrorProxyConfig:
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    def forward_options(self) -> ForwardOptions:
        return ForwardOptions(
            upstream_timeout=self.proxy.upstream_timeout,
            verify_tls=self.proxy.verify_tls,
            chunk_size=self.capture.chunk_size,
            capture_limit=self.capture.max_body_bytes,
        )


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _bounded(value: int, upper: int, name: str) -> int:
    if value > upper:
        logger.warning(f"{name}={value} exceeds the limit, using {upper}")
        return upper
    return value


def load_config(path: Optional[Path] = None) -> MirrorProxyConfig:
    """Load configuration from disk, env vars, and defaults."""
    path = path or CONFIG_FILE
    raw: Dict[str, Any] = {}

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    merged = _deep_merge(DEFAULT_CONFIG, raw)

    # Env-var overrides
    if os.environ.get("MIRRORPROXY_HOST"):
        merged["proxy"]["host"] = os.environ["MIRRORPROXY_HOST"]
    if os.environ.get("MIRRORPROXY_PORT"):
        merged["proxy"]["port"] = int(os.environ["MIRRORPROXY_PORT"])
    if os.environ.get("MIRRORPROXY_MAX_LOGS"):
        merged["proxy"]["max_logs"] = int(os.environ["MIRRORPROXY_MAX_LOGS"])
    if os.environ.get("MIRRORPROXY_VERIFY_TLS"):
        merged["proxy"]["verify_tls"] = _env_bool(os.environ["MIRRORPROXY_VERIFY_TLS"])

    # The store and the capture buffer have hard ceilings.
    merged["proxy"]["max_logs"] = _bounded(
        int(merged["proxy"]["max_logs"]), DEFAULT_CAPACITY, "proxy.max_logs")
    merged["capture"]["max_body_bytes"] = _bounded(
        int(merged["capture"]["max_body_bytes"]), MAX_CAPTURE_BYTES, "capture.max_body_bytes")

    return MirrorProxyConfig(
        proxy=ProxyConfig(**merged.get("proxy", {})),
        capture=CaptureConfig(**merged.get("capture", {})),
        ui=UIConfig(**merged.get("ui", {})),
    )


def save_config(cfg: MirrorProxyConfig, path: Optional[Path] = None) -> Path:
    """Persist current configuration to disk."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "proxy": {
            "host": cfg.proxy.host,
            "port": cfg.proxy.port,
            "max_logs": cfg.proxy.max_logs,
            "verify_tls": cfg.proxy.verify_tls,
            "upstream_timeout": cfg.proxy.upstream_timeout,
        },
        "capture": {
            "max_body_bytes": cfg.capture.max_body_bytes,
            "chunk_size": cfg.capture.chunk_size,
        },
        "ui": {
            "show_banner": cfg.ui.show_banner,
            "verbose": cfg.ui.verbose,
            "body_preview": cfg.ui.body_preview,
        },
    }
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    return path


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    result = copy.deepcopy(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result
