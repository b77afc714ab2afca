"""
Tests for the click command line.
"""

import http.client
import json
import os
import socket
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mirrorproxy import __version__
from mirrorproxy.cli import main


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.setattr("mirrorproxy.config.CONFIG_FILE", tmp_path / "config.yaml")
    for name in ("MIRRORPROXY_HOST", "MIRRORPROXY_MAX_LOGS", "MIRRORPROXY_VERIFY_TLS"):
        monkeypatch.delenv(name, raising=False)
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    monkeypatch.setenv("MIRRORPROXY_PORT", str(s.getsockname()[1]))
    s.close()
    return tmp_path


def _interrupt(_seconds):
    raise KeyboardInterrupt


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_shows_values(monkeypatch):
    monkeypatch.setenv("MIRRORPROXY_PORT", "9191")
    result = CliRunner().invoke(main, ["config"])
    assert result.exit_code == 0
    assert "9191" in result.output
    assert "max_logs" in result.output


def test_config_save(isolated_config):
    result = CliRunner().invoke(main, ["config", "--save"])
    assert result.exit_code == 0
    assert (isolated_config / "config.yaml").exists()


def test_serve_until_interrupted():
    with patch("mirrorproxy.cli.time.sleep", _interrupt):
        result = CliRunner().invoke(main, ["serve", "--no-banner"])
    assert result.exit_code == 0, result.output
    assert "listening" in result.output
    assert "Proxy stopped. 0 requests captured." in result.output


def test_serve_export(isolated_config):
    out = isolated_config / "traffic.json"
    with patch("mirrorproxy.cli.time.sleep", _interrupt):
        result = CliRunner().invoke(main, ["serve", "--no-banner", "-q", "--export", str(out)])
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text())
    assert data["records"] == []
    assert data["stats"]["total_requests"] == 0


def test_serve_invalid_port():
    result = CliRunner().invoke(main, ["serve", "--no-banner", "--port", "70000"])
    assert result.exit_code == 1
    assert "valid port" in result.output


def test_serve_bind_failure():
    blocker = socket.socket()
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    try:
        port = blocker.getsockname()[1]
        result = CliRunner().invoke(main, ["serve", "--no-banner", "--port", str(port)])
    finally:
        blocker.close()
    assert result.exit_code == 1
    assert "Failed to start proxy server" in result.output


def test_serve_summary_without_traffic():
    with patch("mirrorproxy.cli.time.sleep", _interrupt):
        result = CliRunner().invoke(main, ["serve", "--no-banner", "--summary", "5"])
    assert result.exit_code == 0, result.output
    assert "No requests were captured" in result.output


def test_serve_prints_captured_request():
    port = int(os.environ["MIRRORPROXY_PORT"])

    def request_then_interrupt(_seconds):
        # No Host header and no absolute URL: rejected and logged as a 400.
        conn = http.client.HTTPConnection("127.0.0.1", port, timeout=10)
        try:
            conn.putrequest("GET", "/not-a-url", skip_host=True)
            conn.endheaders()
            assert conn.getresponse().status == 400
        finally:
            conn.close()
        raise KeyboardInterrupt

    with patch("mirrorproxy.cli.time.sleep", request_then_interrupt):
        result = CliRunner().invoke(main, ["serve", "--no-banner", "--summary", "5"])
    assert result.exit_code == 0, result.output
    assert "Invalid URL" in result.output
    assert "Captured Requests" in result.output
    assert "Proxy stopped. 1 requests captured." in result.output
