"""
The forwarding pipeline: validate the target, build the outbound request,
send it, and relay the upstream response back to the caller.

Bodies are streamed in both directions. The inbound body is handed to httpx as
an async iterator and the upstream body is read raw, chunk by chunk, into a
StreamingResponse.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from cors_proxy.utils import mask_url_credentials
from cors_proxy.utils.exception_logging import (
    find_exception_in_exception_groups,
    format_exception_message,
    log_exception_with_details,
)
from cors_proxy.utils.traced_requests import traced_request

from .errors import ProxyError, UnexpectedProxyError, UpstreamTransportError
from .headers import (
    HeaderList,
    decode_raw_headers,
    encode_headers,
    get_header,
    parse_content_length,
    prepare_request_headers,
    prepare_response_headers,
    surface_trailers,
)
from .target import ProxyOptions, parse_proxy_options

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

# Status reported when the caller went away before the upstream answered
CLIENT_CLOSED_REQUEST = 499


def should_attach_body(method: str, headers: HeaderList) -> bool:
    """A body is sent for a positive Content-Length, any Transfer-Encoding,
    or any method other than GET and HEAD."""
    content_length = parse_content_length(get_header(headers, "content-length"))
    if content_length is not None and content_length > 0:
        return True
    if get_header(headers, "transfer-encoding") is not None:
        return True
    return method.upper() not in BODYLESS_METHODS


async def _stream_inbound_body(
    request: Request, body_finished: Optional[asyncio.Event] = None
) -> AsyncIterator[bytes]:
    async for chunk in request.stream():
        yield chunk
    if body_finished is not None:
        body_finished.set()


def build_outbound_request(
    client: httpx.AsyncClient,
    request: Request,
    options: ProxyOptions,
    attach_body: Optional[bool] = None,
    body_finished: Optional[asyncio.Event] = None,
) -> httpx.Request:
    """
    Translate the inbound request into a request for the target.

    ``body_finished`` is set once the inbound body has been read to the end.
    """
    inbound_headers = decode_raw_headers(request.headers.raw)
    headers = prepare_request_headers(inbound_headers, options.target)

    if attach_body is None:
        attach_body = should_attach_body(request.method, inbound_headers)

    content = None
    if attach_body:
        content_length = parse_content_length(
            get_header(inbound_headers, "content-length")
        )
        # With an explicit length httpx sends a sized body instead of chunks
        if content_length is not None:
            headers.append(("Content-Length", str(content_length)))
        content = _stream_inbound_body(request, body_finished)

    return client.build_request(
        method=request.method,
        url=options.outbound_url,
        headers=encode_headers(headers),
        content=content,
    )


async def _wait_for_disconnect(
    request: Request, body_finished: Optional[asyncio.Event] = None
) -> None:
    # The body stream owns the channel until the whole body has been read
    if body_finished is not None:
        await body_finished.wait()
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def send_outbound(
    client: httpx.AsyncClient,
    outbound: httpx.Request,
    request: Request,
    watch_disconnect: bool = False,
    body_finished: Optional[asyncio.Event] = None,
) -> httpx.Response:
    """
    Send the outbound request and return as soon as the response head arrives.

    With ``watch_disconnect`` the caller's ASGI channel is watched while
    waiting, and the outbound call is cancelled if the caller disconnects.
    When a body is streamed, pass the ``body_finished`` event given to
    build_outbound_request: the channel is only read once the body has been
    consumed. Raises ClientDisconnect in that case.
    """
    if not watch_disconnect:
        return await client.send(outbound, stream=True)

    send_task = asyncio.ensure_future(client.send(outbound, stream=True))
    disconnect_task = asyncio.ensure_future(_wait_for_disconnect(request, body_finished))
    try:
        done, _ = await asyncio.wait(
            {send_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        send_task.cancel()
        disconnect_task.cancel()
        raise

    if send_task in done:
        disconnect_task.cancel()
        return send_task.result()

    send_task.cancel()
    await asyncio.wait({send_task})
    if not send_task.cancelled() and send_task.exception() is None:
        await send_task.result().aclose()
    disconnect_task.result()
    raise ClientDisconnect()


def _trailers_of(upstream: httpx.Response) -> HeaderList:
    trailers = upstream.extensions.get("trailers") or []
    return [
        (
            name.decode("latin-1") if isinstance(name, bytes) else name,
            value.decode("latin-1") if isinstance(value, bytes) else value,
        )
        for name, value in trailers
    ]


async def stream_upstream_body(
    upstream: httpx.Response, target_url: str
) -> AsyncIterator[bytes]:
    """Yield the upstream body exactly as received, without decoding."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.TransportError as e:
        log_exception_with_details(
            logger,
            f"[Proxy] Upstream body interrupted for {mask_url_credentials(target_url)}",
            e,
            logging.WARNING,
        )
        raise


def relay_response(
    upstream: httpx.Response, options: ProxyOptions
) -> StreamingResponse:
    """
    Build the caller's response from the upstream response head.
    The upstream response is closed once the body has been relayed.
    """
    headers = prepare_response_headers(
        decode_raw_headers(upstream.headers.raw),
        preserve_cookie_domain=options.preserve_cookie_domain,
    )
    headers.extend(surface_trailers(_trailers_of(upstream)))

    response = StreamingResponse(
        stream_upstream_body(upstream, options.outbound_url),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    for name, value in headers:
        response.headers.append(name, value)
    return response


def _map_failure(exc: BaseException, target_url: str, span) -> ProxyError:
    if isinstance(exc, ProxyError):
        return exc

    masked_url = mask_url_credentials(target_url)
    transport_error = find_exception_in_exception_groups(exc, httpx.TransportError)
    if transport_error is not None:
        span.set_attribute("proxy.error", type(transport_error).__name__)
        logger.warning(
            f"[Proxy] Transport failure for {masked_url}: "
            f"{type(transport_error).__name__}: {format_exception_message(transport_error)}"
        )
        return UpstreamTransportError(format_exception_message(transport_error))

    span.set_attribute("proxy.error", "unexpected")
    log_exception_with_details(logger, f"[Proxy] Unexpected failure for {masked_url}", exc)
    return UnexpectedProxyError(format_exception_message(exc))


async def forward_request(request: Request, client: httpx.AsyncClient) -> Response:
    """
    Forward the inbound request to the target named in its query string.

    Raises MissingTargetError or InvalidTargetError before anything is sent,
    UpstreamTransportError when the target cannot be reached, and
    UnexpectedProxyError for any other failure before the response head is
    relayed.
    """
    options = parse_proxy_options(request)
    target_url = options.outbound_url
    inbound_headers = decode_raw_headers(request.headers.raw)
    attach_body = should_attach_body(request.method, inbound_headers)

    with traced_request(
        tracer,
        "proxy_request",
        request.method,
        target_url,
        f"[Proxy] {request.method} {request.url.path} -> {mask_url_credentials(target_url)}",
        extra_attrs={"proxy.request_body": attach_body},
    ) as span:
        body_finished = asyncio.Event() if attach_body else None
        try:
            outbound = build_outbound_request(
                client, request, options, attach_body, body_finished
            )
            upstream = await send_outbound(
                client,
                outbound,
                request,
                watch_disconnect=True,
                body_finished=body_finished,
            )
        except ClientDisconnect:
            span.set_attribute("proxy.error", "client_disconnected")
            logger.info(
                f"[Proxy] Caller disconnected before {mask_url_credentials(target_url)} answered"
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except Exception as e:
            raise _map_failure(e, target_url, span) from e

        span.set_attribute("proxy.status_code", upstream.status_code)
        logger.debug(f"[Proxy] Upstream answered {upstream.status_code}")

        try:
            return relay_response(upstream, options)
        except Exception as e:
            await upstream.aclose()
            raise _map_failure(e, target_url, span) from e
