"""Target URL resolution for the forwarding proxy.

The caller names the upstream per request through the ``_proxyTargetUrl``
query parameter. Everything the proxy needs from the query string is parsed
once into a :class:`ProxyOptions` so the rest of the pipeline never reads the
raw query again.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import unquote_plus

import httpx
from fastapi import Request

from .errors import InvalidTargetError, MissingTargetError

TARGET_URL_PARAM = "_proxyTargetUrl"
PRESERVE_COOKIE_DOMAIN_PARAM = "_preserveCookieDomain"

# Query parameters consumed by the proxy and never sent upstream
CONTROL_PARAMS = frozenset({TARGET_URL_PARAM, PRESERVE_COOKIE_DOMAIN_PARAM})

ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class TargetDescriptor:
    """An absolute http(s) URL as supplied by the caller."""

    url: str
    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: str
    host_header: str

    def with_query_segments(self, segments: List[str]) -> str:
        """Append raw ``key=value`` segments to the target's own query string."""
        if not segments:
            return self.url
        base, hash_mark, fragment = self.url.partition("#")
        if "?" not in base:
            base += "?"
        elif not base.endswith(("?", "&")):
            base += "&"
        return base + "&".join(segments) + hash_mark + fragment


@dataclass(frozen=True)
class ProxyOptions:
    target: TargetDescriptor
    preserve_cookie_domain: bool = False
    forwarded_query: List[str] = field(default_factory=list)

    @property
    def outbound_url(self) -> str:
        return self.target.with_query_segments(self.forwarded_query)


def resolve_target(raw: Optional[str]) -> TargetDescriptor:
    """
    Validate the caller-supplied target and describe it.

    Raises MissingTargetError when the value is absent or blank and
    InvalidTargetError when it is not an absolute http/https URL. The URL text
    itself is kept verbatim.
    """
    if raw is None or not raw.strip():
        raise MissingTargetError(f"Missing {TARGET_URL_PARAM}")

    value = raw.strip()
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, ValueError, TypeError) as e:
        raise InvalidTargetError(f"Invalid {TARGET_URL_PARAM}: {e}") from e

    if url.scheme not in ALLOWED_SCHEMES or not url.host:
        raise InvalidTargetError(
            f"Invalid {TARGET_URL_PARAM}: expected an absolute http or https URL, "
            f"got {value!r}"
        )

    return TargetDescriptor(
        url=value,
        scheme=url.scheme,
        host=url.host,
        port=url.port,
        path=url.path,
        query=url.query.decode("ascii", errors="replace"),
        # httpx drops the port when it is the scheme default
        host_header=url.netloc.decode("ascii"),
    )


def forwarded_query_segments(raw_query: str) -> List[str]:
    """Raw query segments of the inbound request that are not proxy controls."""
    segments = []
    for segment in raw_query.split("&"):
        if not segment:
            continue
        name = unquote_plus(segment.partition("=")[0])
        if name in CONTROL_PARAMS:
            continue
        segments.append(segment)
    return segments


def parse_proxy_options(request: Request) -> ProxyOptions:
    """Derive the per-exchange proxy configuration from the inbound query."""
    params = request.query_params
    targets = params.getlist(TARGET_URL_PARAM)
    target = resolve_target(targets[0] if targets else None)
    return ProxyOptions(
        target=target,
        preserve_cookie_domain=PRESERVE_COOKIE_DOMAIN_PARAM in params,
        forwarded_query=forwarded_query_segments(request.url.query),
    )
