"""Test doubles for the upstream side of a proxied exchange."""

import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from starlette.requests import Request


class ChunkStream(httpx.AsyncByteStream):
    """Upstream body delivered in several chunks."""

    def __init__(self, chunks: Iterable[bytes]):
        self.chunks = list(chunks)

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


def upstream_response(
    status_code: int = 200,
    headers: Optional[List[Tuple[str, str]]] = None,
    body: bytes = b"",
    chunks: Optional[List[bytes]] = None,
    extensions: Optional[Dict] = None,
) -> httpx.Response:
    """An unread upstream response, as a real transport would return it."""
    stream = ChunkStream(chunks) if chunks is not None else httpx.ByteStream(body)
    return httpx.Response(
        status_code, headers=headers or [], stream=stream, extensions=extensions or {}
    )


class FakeUpstream:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.respond = lambda request: upstream_response(200, body=b"ok")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def build_request(
    method: str = "GET",
    query: str = "",
    headers: Optional[List[Tuple[str, str]]] = None,
    body_chunks: Optional[List[bytes]] = None,
    path: str = "/proxy",
    disconnect: bool = False,
    disconnect_when: Optional[asyncio.Event] = None,
) -> Request:
    """
    A Starlette request driven by a scripted ASGI receive channel.

    With ``disconnect`` the caller disconnects right after its body. With
    ``disconnect_when`` the disconnect is delivered once the event is set.
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or [])
        ],
        "client": ("127.0.0.1", 51000),
        "server": ("proxy.local", 80),
    }
    chunks = body_chunks or [b""]
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]
    if disconnect:
        messages.append({"type": "http.disconnect"})

    async def receive():
        if messages:
            return messages.pop(0)
        if disconnect_when is not None:
            await disconnect_when.wait()
            return {"type": "http.disconnect"}
        await asyncio.Event().wait()

    return Request(scope, receive)
