import httpx
import pytest
from fastapi import FastAPI

from cors_proxy.proxy.client import create_http_client, get_http_client
from cors_proxy.proxy.route import router
from cors_proxy.utils_tests.upstream_mock import FakeUpstream, build_request


@pytest.fixture
def make_request():
    return build_request


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def http_client(upstream):
    return create_http_client(transport=httpx.MockTransport(upstream))


@pytest.fixture
def proxy_app(http_client):
    """An app exposing only the proxy route, wired to the fake upstream."""
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.dependency_overrides[get_http_client] = lambda: http_client
    return test_app
