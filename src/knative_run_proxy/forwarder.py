"""
Outbound request construction and response relay.

The forwarder rebuilds an inbound Starlette request against a
BackendTarget, sends it with the client matching the target's
verification policy, and relays the backend response. Bodies are
streamed through untouched, except for DELETE responses, which are
replaced by a Status envelope (see translator).

Failure modes:
    - building or sending the outbound request fails: 500, empty body
    - the body stream breaks midway: status and headers are already on
      the wire, so the error is only logged and the body is cut short
"""

import logging
from typing import AsyncIterator, Iterable, Optional

import httpx
from starlette.background import BackgroundTask
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from knative_run_proxy.routing import BackendTarget
from knative_run_proxy.translator import failure_body, success_envelope

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset({b"connection", b"keep-alive", b"transfer-encoding"})

# Backend headers that would misdescribe a translated envelope body
ENVELOPE_HEADERS = frozenset({b"content-length", b"content-encoding", b"content-type"})


def target_url(request: Request, target: BackendTarget) -> str:
    """Inbound path and query string re-rooted on the target host."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    url = f"{target.base_url}{path}"
    query = request.url.query
    return f"{url}?{query}" if query else url


def outbound_headers(inbound: Headers, target: BackendTarget) -> httpx.Headers:
    """Copy inbound headers in order, pinning host and accept-encoding."""
    headers = httpx.Headers(inbound.raw)
    headers["host"] = target.host
    # The body may need to be parsed or relayed verbatim, so no compression
    headers["accept-encoding"] = "identity"
    return headers


def has_body(headers: Headers) -> bool:
    return "content-length" in headers or "transfer-encoding" in headers


def copy_response_headers(
    source: httpx.Headers,
    response: Response,
    skip: Iterable[bytes] = HOP_BY_HOP_HEADERS,
) -> None:
    """Append backend headers to a Starlette response, keeping duplicates."""
    skip = frozenset(skip)
    for key, value in source.raw:
        name = key.lower()
        if name in skip:
            continue
        response.raw_headers.append((name, value))


class RequestForwarder:
    """Sends rebuilt requests to backends and relays their responses."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        insecure_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the forwarder.

        Args:
            timeout: Outbound timeout in seconds, None for no timeout
            transport: Transport for the verifying client (tests inject one)
            insecure_transport: Transport for the non-verifying client
        """
        self.verified_client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )
        self.insecure_client = httpx.AsyncClient(
            verify=False,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=insecure_transport,
        )

    def client_for(self, target: BackendTarget) -> httpx.AsyncClient:
        """Pick the client honoring the target's verification policy."""
        return self.verified_client if target.verify_peer else self.insecure_client

    def build_request(
        self,
        client: httpx.AsyncClient,
        request: Request,
        target: BackendTarget,
    ) -> httpx.Request:
        """Rebuild the inbound request for the target.

        Method and body stream are kept as-is; the body is only attached
        when the inbound request declares one.
        """
        content = request.stream() if has_body(request.headers) else None
        return client.build_request(
            method=request.method,
            url=target_url(request, target),
            headers=outbound_headers(request.headers, target),
            content=content,
        )

    async def forward(self, request: Request, target: BackendTarget) -> Response:
        """Proxy a request to the target backend.

        Args:
            request: The incoming request
            target: Backend chosen for the request path

        Returns:
            Response relaying the backend status and headers
        """
        client = self.client_for(target)

        try:
            outbound = self.build_request(client, request, target)
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            logger.warning(f"Failed to create request for proxying {request.url.path}: {e}")
            return Response(status_code=500)

        logger.info(f"Proxying request to {outbound.url}")

        try:
            upstream = await client.send(outbound, stream=True)
        except httpx.RequestError as e:
            logger.warning(f"Proxy request to {outbound.url} failed: {e}")
            return Response(status_code=500)

        logger.info(f"Proxying complete for {outbound.url} code={upstream.status_code}")

        if request.method == "DELETE":
            return await self._translate_delete(upstream)
        return self._relay(upstream)

    def _relay(self, upstream: httpx.Response) -> StreamingResponse:
        """Stream the backend body through byte-for-byte."""
        response = StreamingResponse(
            self._copy_body(upstream),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        copy_response_headers(upstream.headers, response)
        return response

    async def _copy_body(self, upstream: httpx.Response) -> AsyncIterator[bytes]:
        # Transports may hand back a response whose body is already in memory
        if upstream.is_stream_consumed:
            yield upstream.content
            return
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            # Headers are committed; all that is left is to end the body
            logger.warning(f"Failed to copy proxied response body from {upstream.url}: {e}")

    async def _translate_delete(self, upstream: httpx.Response) -> Response:
        """Replace a DELETE response body with a Status envelope.

        A 200 gets the fixed success envelope without the backend body
        being read. Anything else is buffered and turned into a Failure
        envelope. If that read fails, the client gets the backend status
        and headers with no body.
        """
        status_code = upstream.status_code
        body: Optional[bytes]
        try:
            if status_code == 200:
                body = success_envelope()
            else:
                original = await upstream.aread()
                logger.debug(f"Original delete response from {upstream.url}: {original!r}")
                body = failure_body(status_code, original)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to read original delete response body: {e}")
            body = None
        finally:
            await upstream.aclose()

        if body is None:
            response = Response(status_code=status_code)
        else:
            response = Response(
                content=body,
                status_code=status_code,
                media_type="application/json",
            )
        copy_response_headers(upstream.headers, response, skip=HOP_BY_HOP_HEADERS | ENVELOPE_HEADERS)
        return response

    async def close(self) -> None:
        """Close both outbound clients."""
        await self.verified_client.aclose()
        await self.insecure_client.aclose()
