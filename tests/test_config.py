"""Tests for MirrorProxy configuration module."""

from pathlib import Path

import pytest

from mirrorproxy.config import (
    DEFAULT_CONFIG,
    CaptureConfig,
    MirrorProxyConfig,
    ProxyConfig,
    _deep_merge,
    load_config,
    save_config,
)
from mirrorproxy.core.capture import MAX_CAPTURE_BYTES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MIRRORPROXY_HOST", "MIRRORPROXY_PORT",
                 "MIRRORPROXY_MAX_LOGS", "MIRRORPROXY_VERIFY_TLS"):
        monkeypatch.delenv(name, raising=False)


def test_default_config():
    """Test that default config is created properly."""
    cfg = MirrorProxyConfig()
    assert cfg.proxy.host == "127.0.0.1"
    assert cfg.proxy.port == 8888
    assert cfg.proxy.max_logs == 1000
    assert cfg.proxy.verify_tls is True
    assert cfg.proxy.upstream_timeout is None
    assert cfg.capture.max_body_bytes == MAX_CAPTURE_BYTES
    assert cfg.ui.show_banner is True


def test_proxy_config():
    pc = ProxyConfig(host="0.0.0.0", port=9000, verify_tls=False)
    assert pc.host == "0.0.0.0"
    assert pc.port == 9000
    assert pc.verify_tls is False


def test_forward_options():
    cfg = MirrorProxyConfig(
        proxy=ProxyConfig(verify_tls=False, upstream_timeout=12.5),
        capture=CaptureConfig(max_body_bytes=4096, chunk_size=512),
    )
    opts = cfg.forward_options()
    assert opts.verify_tls is False
    assert opts.upstream_timeout == 12.5
    assert opts.capture_limit == 4096
    assert opts.chunk_size == 512


def test_deep_merge():
    """Test deep merge of config dictionaries."""
    base = {"a": {"b": 1, "c": 2}, "d": 3}
    override = {"a": {"b": 10}, "e": 5}
    result = _deep_merge(base, override)
    assert result["a"]["b"] == 10
    assert result["a"]["c"] == 2
    assert result["d"] == 3
    assert result["e"] == 5


def test_deep_merge_leaves_base_untouched():
    base = {"a": {"b": 1}}
    result = _deep_merge(base, {})
    result["a"]["b"] = 99
    assert base["a"]["b"] == 1


def test_load_missing_file_uses_defaults(tmp_path):
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg.proxy.port == DEFAULT_CONFIG["proxy"]["port"]
    assert cfg.capture.chunk_size == DEFAULT_CONFIG["capture"]["chunk_size"]


def test_load_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("proxy:\n  port: 9191\n  verify_tls: false\nui:\n  show_banner: false\n")
    cfg = load_config(path)
    assert cfg.proxy.port == 9191
    assert cfg.proxy.verify_tls is False
    assert cfg.proxy.host == "127.0.0.1"
    assert cfg.ui.show_banner is False


def test_load_empty_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    cfg = load_config(path)
    assert cfg.proxy.port == 8888


def test_env_var_override(monkeypatch, tmp_path):
    """Test that environment variables override config."""
    path = tmp_path / "config.yaml"
    path.write_text("proxy:\n  port: 9191\n")
    monkeypatch.setenv("MIRRORPROXY_PORT", "7070")
    monkeypatch.setenv("MIRRORPROXY_HOST", "0.0.0.0")
    monkeypatch.setenv("MIRRORPROXY_MAX_LOGS", "50")
    monkeypatch.setenv("MIRRORPROXY_VERIFY_TLS", "no")
    cfg = load_config(path)
    assert cfg.proxy.port == 7070
    assert cfg.proxy.host == "0.0.0.0"
    assert cfg.proxy.max_logs == 50
    assert cfg.proxy.verify_tls is False


def test_env_override_does_not_leak_into_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("MIRRORPROXY_PORT", "7070")
    load_config(tmp_path / "nope.yaml")
    assert DEFAULT_CONFIG["proxy"]["port"] == 8888


def test_save_and_reload(tmp_path):
    cfg = MirrorProxyConfig(proxy=ProxyConfig(port=8123, upstream_timeout=3.0))
    cfg.ui.body_preview = 500
    path = save_config(cfg, tmp_path / "sub" / "config.yaml")
    assert path.exists()
    assert isinstance(path, Path)

    loaded = load_config(path)
    assert loaded.proxy.port == 8123
    assert loaded.proxy.upstream_timeout == 3.0
    assert loaded.ui.body_preview == 500


def test_limits_clamped_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("proxy:\n  max_logs: 5000\ncapture:\n  max_body_bytes: 10485760\n")
    cfg = load_config(path)
    assert cfg.proxy.max_logs == 1000
    assert cfg.capture.max_body_bytes == MAX_CAPTURE_BYTES


def test_max_logs_env_clamped(monkeypatch, tmp_path):
    monkeypatch.setenv("MIRRORPROXY_MAX_LOGS", "250000")
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg.proxy.max_logs == 1000


def test_lower_limits_kept(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("proxy:\n  max_logs: 10\ncapture:\n  max_body_bytes: 2048\n")
    cfg = load_config(path)
    assert cfg.proxy.max_logs == 10
    assert cfg.capture.max_body_bytes == 2048
