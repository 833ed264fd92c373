"""
ASGI application impersonating a Kubernetes API server for kubectl.

Discovery calls are answered locally, namespaced resource calls go to
the Cloud Run API, and schema calls go to a cluster endpoint that still
serves the Knative OpenAPI documents.

Usage:
    # Via CLI (TLS, localhost:6443)
    knative-run-proxy

    # Point kubectl at it
    kubectl --server https://localhost:6443 get ksvc
"""

import contextlib
import logging
from typing import AsyncIterator, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from knative_run_proxy.config import ProxyConfig
from knative_run_proxy.discovery import api_handler, apis_handler, fallback_handler
from knative_run_proxy.forwarder import RequestForwarder
from knative_run_proxy.routing import BackendRouter

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ProxyServer:
    """Ties backend selection to request forwarding.

    Holds no per-request state; every call to proxy_request picks its
    own target and runs independently of concurrent calls.
    """

    def __init__(
        self,
        config: ProxyConfig,
        router: Optional[BackendRouter] = None,
        forwarder: Optional[RequestForwarder] = None,
    ) -> None:
        """Initialize the proxy server.

        Args:
            config: Proxy configuration
            router: Backend router (built from config if not given)
            forwarder: Request forwarder (built from config if not given)
        """
        self.config = config
        self.router = router or BackendRouter.from_config(config)
        self.forwarder = forwarder or RequestForwarder(timeout=config.upstream_timeout)

    async def proxy_request(self, request: Request) -> Response:
        """Forward a request to the backend its path selects.

        Args:
            request: The incoming request

        Returns:
            Response from the backend (DELETE bodies translated)
        """
        target = self.router.select(request.url.path)
        return await self.forwarder.forward(request, target)

    async def close(self) -> None:
        await self.forwarder.close()


def create_app(
    config: Optional[ProxyConfig] = None,
    router: Optional[BackendRouter] = None,
    forwarder: Optional[RequestForwarder] = None,
) -> Starlette:
    """Create the ASGI application.

    Args:
        config: Proxy configuration (defaults to ProxyConfig())
        router: Optional router override
        forwarder: Optional forwarder override

    Returns:
        Starlette ASGI application
    """
    proxy = ProxyServer(config or ProxyConfig(), router=router, forwarder=forwarder)

    routes = [
        Route("/api", api_handler, methods=["GET"]),
        Route("/apis", apis_handler, methods=["GET"]),
        Route("/apis/{path:path}", proxy.proxy_request, methods=PROXY_METHODS),
        # Schema endpoints, used by kubectl edit/explain
        Route("/openapi", proxy.proxy_request, methods=PROXY_METHODS),
        Route("/openapi/{path:path}", proxy.proxy_request, methods=PROXY_METHODS),
        Route("/swagger-2.0.0.pb-v1", proxy.proxy_request, methods=PROXY_METHODS),
        # Catch-all, so unknown paths get an empty 404
        Route("/{path:path}", fallback_handler, methods=PROXY_METHODS),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await proxy.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.proxy = proxy
    return app
