from __future__ import annotations

import httpx
import pytest

from common.favicons import (
    FaviconClient,
    FaviconError,
    FaviconNotFoundError,
    IconCache,
    host_for,
)


@pytest.mark.parametrize(
    "uri,host",
    [
        ("https://GitHub.com/login", "github.com"),
        ("example.org/path", "example.org"),
        ("http://10.0.0.1:8080", "10.0.0.1"),
        ("androidapp://com.example", None),
        ("", None),
    ],
)
def test_host_for(uri, host):
    assert host_for(uri) == host


def _client(handler, sleeps=None):
    return FaviconClient(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
    )


def test_fetch_requests_icon_png():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=b"png")

    with _client(handler) as client:
        assert client.fetch("github.com") == b"png"
    assert seen == ["https://icons.bitwarden.net/github.com/icon.png"]


def test_404_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(FaviconNotFoundError):
        _client(handler).fetch("nowhere.example")
    assert len(calls) == 1


def test_server_errors_retry_with_backoff_then_succeed():
    responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, content=b"ok")]
    sleeps = []

    def handler(request):
        return responses.pop(0)

    assert _client(handler, sleeps).fetch("github.com") == b"ok"
    assert sleeps == [0.5, 1.0]


def test_transport_errors_exhaust_attempts():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(FaviconError, match="after retries"):
        _client(handler).fetch("github.com")


def test_icon_cache_download_and_lookup(tmp_path):
    def handler(request):
        if "missing" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, content=b"PNG")

    icons = IconCache(tmp_path / "icons")
    uris = ["https://github.com", "https://www.github.com/x", "github.com/other", "https://missing.example"]
    hosts = icons.missing_hosts(uris)
    assert hosts == ["github.com", "www.github.com", "missing.example"]

    result = icons.download(_client(handler), hosts)

    assert result == {"github.com": True, "www.github.com": True, "missing.example": False}
    assert icons.path("github.com").read_bytes() == b"PNG"
    assert icons.icon_for(["androidapp://x", "https://github.com/"]) == icons.path("github.com")
    assert icons.icon_for(["https://missing.example"]) is None
    assert icons.missing_hosts(uris) == ["missing.example"]

    assert icons.clear() == 2
    assert not icons.has("github.com")
