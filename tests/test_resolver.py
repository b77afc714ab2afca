"""
Tests for target resolution and URL validation.
"""

import pytest

from mirrorproxy.core.errors import InvalidTargetError
from mirrorproxy.core.resolver import Target, parse_target, resolve_target


# ── resolve_target ───────────────────────────────────────────────────────────


class TestResolveTarget:
    def test_absolute_http_used_verbatim(self):
        url = "http://api.example.com/v1/users?page=2"
        assert resolve_target(url, "proxy.local:8888") == url

    def test_absolute_https_used_verbatim(self):
        url = "https://api.example.com/v1"
        assert resolve_target(url) == url

    def test_other_scheme_still_absolute(self):
        assert resolve_target("ftp://files.example.com/a") == "ftp://files.example.com/a"

    def test_path_mode_http(self):
        assert resolve_target("/http://example.com/a?b=1", "localhost:8888") == \
            "http://example.com/a?b=1"

    def test_path_mode_https(self):
        assert resolve_target("/https://example.com/") == "https://example.com/"

    def test_path_mode_matches_absolute_mode(self):
        url = "http://example.com:8080/path"
        assert resolve_target("/" + url, "h") == resolve_target(url, "h")

    def test_path_mode_scheme_case_insensitive(self):
        assert resolve_target("/HTTPS://example.com/") == "HTTPS://example.com/"

    def test_path_mode_only_for_http_schemes(self):
        assert resolve_target("/s3://bucket/key", "example.com") == \
            "http://example.com/s3://bucket/key"
        assert resolve_target("/a://b", "example.com") == "http://example.com/a://b"

    def test_path_mode_other_scheme_without_host(self):
        assert resolve_target("/ftp://files.example.com/a") == "/ftp://files.example.com/a"

    def test_host_fallback(self):
        assert resolve_target("/api/items?x=1", "backend.internal:3000") == \
            "http://backend.internal:3000/api/items?x=1"

    def test_host_fallback_root(self):
        assert resolve_target("/", "example.com") == "http://example.com/"

    def test_no_host_returns_raw(self):
        assert resolve_target("/api/items") == "/api/items"
        assert resolve_target("not-a-url", None) == "not-a-url"

    def test_empty_host_returns_raw(self):
        assert resolve_target("/x", "") == "/x"

    def test_path_that_only_mentions_http(self):
        assert resolve_target("/docs/http://", "example.com") == \
            "http://example.com/docs/http://"


# ── parse_target ─────────────────────────────────────────────────────────────


class TestParseTarget:
    def test_http_default_port(self):
        t = parse_target("http://example.com/a/b?q=1#frag")
        assert isinstance(t, Target)
        assert t.scheme == "http"
        assert t.hostname == "example.com"
        assert t.port == 80
        assert t.path == "/a/b?q=1"
        assert not t.is_https

    def test_https_default_port(self):
        t = parse_target("https://example.com")
        assert t.port == 443
        assert t.path == "/"
        assert t.is_https

    def test_explicit_port(self):
        t = parse_target("http://127.0.0.1:5000/health")
        assert t.hostname == "127.0.0.1"
        assert t.port == 5000
        assert t.path == "/health"

    def test_scheme_case_insensitive(self):
        t = parse_target("HTTP://Example.COM/")
        assert t.scheme == "http"
        assert t.hostname == "example.com"

    def test_ipv6_host(self):
        t = parse_target("http://[::1]:8080/")
        assert t.hostname == "::1"
        assert t.port == 8080

    def test_keeps_original_url(self):
        url = "http://example.com/x"
        assert parse_target(url).url == url

    @pytest.mark.parametrize("url", [
        "",
        "not-a-url",
        "not a url",
        "/api/items",
        "ftp://example.com/file",
        "http://",
        "http:///path",
        "http://exa mple.com/",
        "http://example.com:notaport/",
        "http://example.com:70000/",
        "http://example.com:0/",
        "http://[::1/",
        "http://bad%host/",
    ])
    def test_invalid(self, url):
        with pytest.raises(InvalidTargetError):
            parse_target(url)

    def test_error_message_names_url(self):
        with pytest.raises(InvalidTargetError) as exc:
            parse_target("not-a-url")
        assert "Invalid URL: not-a-url" in str(exc.value)
        assert exc.value.url == "not-a-url"
