"""
Shared fixtures for the proxy tests.

Backends are faked with httpx.MockTransport. The verifying and the
non-verifying client each get their own fake, so a test can tell which
client carried a request.
"""

from typing import Callable, List, Optional

import httpx
import pytest
from starlette.testclient import TestClient

from knative_run_proxy.config import ProxyConfig, reset_config
from knative_run_proxy.forwarder import RequestForwarder
from knative_run_proxy.server import create_app

RESOURCE_HOST = "run.example.test"
DISCOVERY_HOST = "10.0.0.1"


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in small chunks, like one read off a socket."""

    def __init__(self, content: bytes, chunk_size: int = 4) -> None:
        self.content = content
        self.chunk_size = chunk_size

    async def __aiter__(self):
        for start in range(0, len(self.content), self.chunk_size):
            yield self.content[start:start + self.chunk_size]


class FakeBackend:
    """Records requests and answers with a canned or computed response."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: Optional[list] = None,
        responder: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = headers or []
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responder is not None:
            return self.responder(request)
        headers = [*self.headers, ("Content-Length", str(len(self.content)))]
        return httpx.Response(self.status_code, headers=headers, stream=ChunkedStream(self.content))

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "backend received no request"
        return self.requests[-1]


@pytest.fixture
def config():
    """Configuration pointing at the fake hosts."""
    return ProxyConfig(resource_backend=RESOURCE_HOST, discovery_backend=DISCOVERY_HOST)


@pytest.fixture
def resource_backend():
    return FakeBackend()


@pytest.fixture
def discovery_backend():
    return FakeBackend()


@pytest.fixture
def forwarder(resource_backend, discovery_backend):
    return RequestForwarder(
        transport=httpx.MockTransport(resource_backend),
        insecure_transport=httpx.MockTransport(discovery_backend),
    )


@pytest.fixture
def app(config, forwarder):
    return create_app(config, forwarder=forwarder)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def clean_config():
    """Keep the module-level config from leaking between tests."""
    reset_config()
    yield
    reset_config()
