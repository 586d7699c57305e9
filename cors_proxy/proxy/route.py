import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from cors_proxy.vars import PROXY_ALLOWED_METHODS, PROXY_BASE_PATH

from .client import get_http_client
from .errors import ProxyError
from .forwarder import forward_request

router = APIRouter(prefix=PROXY_BASE_PATH)
logger = logging.getLogger("uvicorn.error")


async def proxy_all(
    request: Request,
    path: str = "",
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Catch-all route that forwards the request to ``_proxyTargetUrl``."""
    try:
        return await forward_request(request, client)
    except ProxyError as e:
        logger.info(f"[Proxy] {request.method} {request.url.path} failed with {e.status_code}: {e.message}")
        return PlainTextResponse(e.message, status_code=e.status_code)


router.add_api_route("/{path:path}", proxy_all, methods=PROXY_ALLOWED_METHODS)
if PROXY_BASE_PATH:
    router.add_api_route("", proxy_all, methods=PROXY_ALLOWED_METHODS)
