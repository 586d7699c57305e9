"""Header classification for both legs of a proxied exchange.

Headers are handled as ordered lists of ``(name, value)`` pairs so repeated
names (``Set-Cookie`` in particular) survive as separate occurrences.
"""

from typing import Iterable, List, Optional, Set, Tuple

from .cookies import remove_cookie_domain
from .target import TargetDescriptor

HeaderList = List[Tuple[str, str]]

# Hop-by-hop headers that should NOT be forwarded (RFC 9110 section 7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Message framing is recomputed by the transport on each leg
FRAMING_HEADERS = frozenset({"content-length", "transfer-encoding"})

TRAILER_HEADER_PREFIX = "X-Trailer-"


def decode_raw_headers(raw: Iterable[Tuple[bytes, bytes]]) -> HeaderList:
    """Decode raw header pairs as latin-1, which round-trips every byte."""
    return [(name.decode("latin-1"), value.decode("latin-1")) for name, value in raw]


def encode_headers(headers: HeaderList) -> List[Tuple[bytes, bytes]]:
    return [(name.encode("latin-1"), value.encode("latin-1")) for name, value in headers]


def get_header(headers: HeaderList, name: str) -> Optional[str]:
    """First value of a header, matched case-insensitively."""
    name = name.lower()
    for key, value in headers:
        if key.lower() == name:
            return value
    return None


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


def connection_tokens(headers: HeaderList) -> Set[str]:
    """Header names listed in any Connection header, lowercased."""
    tokens = set()
    for name, value in headers:
        if name.lower() != "connection":
            continue
        for token in value.split(","):
            token = token.strip().lower()
            if token:
                tokens.add(token)
    return tokens


def strip_hop_by_hop(headers: HeaderList, also_exclude: Iterable[str] = ()) -> HeaderList:
    """
    Remove hop-by-hop headers, the headers named by Connection, and any extra
    names given. Order and repeated values of the remaining headers are kept.
    """
    excluded = (
        HOP_BY_HOP_HEADERS
        | connection_tokens(headers)
        | {name.lower() for name in also_exclude}
    )
    return [(name, value) for name, value in headers if name.lower() not in excluded]


def prepare_request_headers(headers: HeaderList, target: TargetDescriptor) -> HeaderList:
    """
    Prepare inbound headers for forwarding to the target.
    Host is replaced by the target's authority.
    """
    forwarded = strip_hop_by_hop(headers, also_exclude={"host"} | FRAMING_HEADERS)
    forwarded.append(("Host", target.host_header))
    return forwarded


def prepare_response_headers(
    headers: HeaderList, preserve_cookie_domain: bool = False
) -> HeaderList:
    """
    Prepare upstream response headers for the caller.

    Every Set-Cookie occurrence is kept as its own header and loses its Domain
    attribute unless ``preserve_cookie_domain`` is set. Content-Length is
    re-emitted when the upstream declared a valid one.
    """
    prepared = []
    for name, value in strip_hop_by_hop(headers, also_exclude=FRAMING_HEADERS):
        if name.lower() == "set-cookie" and not preserve_cookie_domain:
            value = remove_cookie_domain(value)
        prepared.append((name, value))

    content_length = parse_content_length(get_header(headers, "content-length"))
    if content_length is not None and get_header(headers, "transfer-encoding") is None:
        prepared.append(("Content-Length", str(content_length)))
    return prepared


def surface_trailers(trailers: Optional[HeaderList]) -> HeaderList:
    """
    Represent trailing headers as ordinary response headers.

    Each trailer becomes ``X-Trailer-<Name>`` and a ``Trailer`` header lists
    the original names. The serving layer cannot emit real trailers, so this
    only preserves the metadata.
    """
    if not trailers:
        return []
    surfaced = []
    names = []
    for name, value in trailers:
        surfaced.append((f"{TRAILER_HEADER_PREFIX}{name}", value))
        if name not in names:
            names.append(name)
    surfaced.append(("Trailer", ", ".join(names)))
    return surfaced
