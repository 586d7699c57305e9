"""Outbound connection provider shared by all proxied exchanges."""

from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Optional

import httpx
from fastapi import Request

from cors_proxy.vars import (
    PROXY_CONNECT_TIMEOUT,
    PROXY_MAX_CONNECTIONS,
    PROXY_TIMEOUT,
    PROXY_VERIFY_TLS,
)

# httpx adds these to every request unless told otherwise
_CLIENT_DEFAULT_HEADERS = ("Accept", "Accept-Encoding", "Connection", "User-Agent")


def create_http_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the pooled client used to reach proxy targets.

    Redirects are returned to the caller instead of followed, and the cookie
    jar refuses every cookie so nothing leaks between callers. Bodies are read
    raw by the forwarder, so nothing is decompressed either.
    """
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(PROXY_TIMEOUT, connect=PROXY_CONNECT_TIMEOUT),
        limits=httpx.Limits(max_connections=PROXY_MAX_CONNECTIONS),
        follow_redirects=False,
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        verify=PROXY_VERIFY_TLS,
        transport=transport,
    )
    # Outbound requests carry only the caller's headers
    for name in _CLIENT_DEFAULT_HEADERS:
        del client.headers[name]
    return client


def get_http_client(request: Request) -> httpx.AsyncClient:
    """FastAPI dependency returning the client created in the app lifespan."""
    return request.app.state.http_client
