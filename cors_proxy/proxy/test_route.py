"""
End-to-end tests of the proxy route through FastAPI's TestClient.

The upstream is an httpx MockTransport, so every request the proxy sends is
recorded and can be inspected byte for byte.
"""

import hashlib

import httpx
import pytest
from fastapi.testclient import TestClient

from cors_proxy.utils_tests.upstream_mock import upstream_response

TARGET = "http://upstream.example/echo"


@pytest.fixture
def client(proxy_app):
    return TestClient(proxy_app)


def echo_headers(request: httpx.Request) -> httpx.Response:
    headers = [(f"X-Echo-{name}", value) for name, value in request.headers.multi_items()]
    return upstream_response(200, headers=headers, body=b"echo")


class TestTargetValidation:
    def test_missing_target_is_bad_request(self, client, upstream):
        r = client.get("/proxy")

        assert r.status_code == 400
        assert r.headers["content-type"].startswith("text/plain")
        assert r.text == "Missing _proxyTargetUrl"
        assert upstream.requests == []

    def test_blank_target_is_bad_request(self, client, upstream):
        r = client.post("/proxy", params={"_proxyTargetUrl": "  "}, content=b"data")

        assert r.status_code == 400
        assert upstream.requests == []

    @pytest.mark.parametrize("target", ["ftp://x", "/relative/path", "not a url"])
    def test_invalid_target_is_bad_request(self, client, upstream, target):
        r = client.get("/proxy", params={"_proxyTargetUrl": target})

        assert r.status_code == 400
        assert "_proxyTargetUrl" in r.text
        assert upstream.requests == []


class TestForwarding:
    def test_get_round_trip_rewrites_host(self, client, upstream):
        upstream.respond = echo_headers

        r = client.get(
            "/proxy",
            params={"_proxyTargetUrl": TARGET},
            headers={"X-Custom": "value", "Connection": "keep-alive, X-Custom-Hop", "X-Custom-Hop": "1"},
        )

        assert r.status_code == 200
        assert r.text == "echo"
        assert r.headers["x-echo-host"] == "upstream.example"
        assert r.headers["x-echo-x-custom"] == "value"
        assert r.headers["x-echo-user-agent"] == "testclient"
        assert "x-echo-connection" not in r.headers
        assert "x-echo-x-custom-hop" not in r.headers

    @pytest.mark.parametrize(
        "name, value",
        [
            ("Keep-Alive", "timeout=5"),
            ("Proxy-Authorization", "Basic Zm9vOmJhcg=="),
            ("TE", "trailers"),
            ("Trailer", "Expires"),
            ("Upgrade", "websocket"),
        ],
    )
    def test_hop_by_hop_never_forwarded(self, client, upstream, name, value):
        upstream.respond = lambda request: upstream_response(
            200, headers=[(name, value), ("X-Kept", "1")]
        )

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET}, headers={name: value})

        assert name.lower() not in upstream.last.headers
        assert name.lower() not in r.headers
        assert r.headers["x-kept"] == "1"

    def test_other_query_parameters_forwarded(self, client, upstream):
        client.get(
            "/proxy/ignored/path?_proxyTargetUrl=http%3A%2F%2Fupstream.example%2Fsearch%3Fq%3Dx"
            "&page=3&_preserveCookieDomain"
        )

        assert str(upstream.last.url) == "http://upstream.example/search?q=x&page=3"

    def test_large_body_streamed_intact(self, client, upstream):
        payload = bytes(range(256)) * (32 * 1024)  # 8 MiB
        upstream.respond = lambda request: upstream_response(
            200, body=hashlib.sha256(request.content).hexdigest().encode()
        )

        r = client.post(
            "/proxy",
            params={"_proxyTargetUrl": TARGET},
            content=payload,
            headers={"Content-Type": "application/octet-stream"},
        )

        assert r.status_code == 200
        assert r.text == hashlib.sha256(payload).hexdigest()
        assert upstream.last.headers["content-length"] == str(len(payload))
        assert upstream.last.content == payload

    def test_chunked_upload_forwarded_chunked(self, client, upstream):
        r = client.put(
            "/proxy",
            params={"_proxyTargetUrl": TARGET},
            content=iter([b"part1-", b"part2"]),
        )

        assert r.status_code == 200
        assert upstream.last.headers["transfer-encoding"] == "chunked"
        assert "content-length" not in upstream.last.headers
        assert upstream.last.content == b"part1-part2"

    def test_large_response_streamed(self, client, upstream):
        chunks = [bytes([i % 256]) * 65536 for i in range(64)]
        upstream.respond = lambda request: upstream_response(200, chunks=chunks)

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.content == b"".join(chunks)

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    def test_methods_forwarded(self, client, upstream, method):
        r = client.request(method, "/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 200
        assert upstream.last.method == method

    def test_head_keeps_content_length(self, client, upstream):
        upstream.respond = lambda request: upstream_response(
            200, headers=[("Content-Length", "1234"), ("Content-Type", "image/png")]
        )

        r = client.head("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 200
        assert upstream.last.method == "HEAD"
        assert r.headers["content-length"] == "1234"

    def test_unlisted_method_rejected(self, client, upstream):
        r = client.request("TRACE", "/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 405
        assert upstream.requests == []

    def test_upstream_status_passed_through(self, client, upstream):
        upstream.respond = lambda request: upstream_response(418, body=b"teapot")

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 418
        assert r.text == "teapot"


class TestCookies:
    def test_multiple_set_cookie_kept_separate(self, client, upstream):
        upstream.respond = lambda request: upstream_response(
            200,
            headers=[
                ("Set-Cookie", "a=1; Domain=upstream.example; Path=/"),
                ("Set-Cookie", "b=2; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Domain=upstream.example"),
            ],
        )

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.headers.get_list("set-cookie") == [
            "a=1; Path=/",
            "b=2; Expires=Wed, 21 Oct 2026 07:28:00 GMT",
        ]

    def test_preserve_cookie_domain_forwards_unchanged(self, client, upstream):
        upstream.respond = lambda request: upstream_response(
            200, headers=[("Set-Cookie", "id=1; Domain=example.com")]
        )

        r = client.get(
            "/proxy", params={"_proxyTargetUrl": TARGET, "_preserveCookieDomain": ""}
        )

        assert r.headers.get_list("set-cookie") == ["id=1; Domain=example.com"]


class TestUpstreamFailures:
    def test_connect_failure_is_bad_gateway(self, client, upstream):
        def fail(request):
            raise httpx.ConnectError("[Errno -2] Name or service not known")

        upstream.respond = fail

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 502
        assert r.headers["content-type"].startswith("text/plain")
        assert r.text == "[Errno -2] Name or service not known"

    def test_timeout_is_bad_gateway(self, client, upstream):
        def fail(request):
            raise httpx.ReadTimeout("The read operation timed out")

        upstream.respond = fail

        r = client.post("/proxy", params={"_proxyTargetUrl": TARGET}, content=b"x")

        assert r.status_code == 502
        assert r.text

    def test_unexpected_failure_is_internal_error(self, client, upstream):
        def fail(request):
            raise ValueError("cannot handle this")

        upstream.respond = fail

        r = client.get("/proxy", params={"_proxyTargetUrl": TARGET})

        assert r.status_code == 500
        assert r.text == "cannot handle this"
