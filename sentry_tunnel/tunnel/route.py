import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from fastapi.routing import APIRoute
from opentelemetry import trace
from prometheus_client import Counter
from starlette.requests import ClientDisconnect
from starlette.routing import Match

from sentry_tunnel.vars import TUNNEL_PATH
from sentry_tunnel.utils import mask_dsn
from sentry_tunnel.utils.exception_logging import log_exception_with_details

from .envelope import parse_destination, parse_header
from .errors import EnvelopeRejected, MethodNotAllowed, RelayFailure, TunnelError
from .policy import TunnelPolicy, get_policy


class AnyMethodRoute(APIRoute):
    """
    Route that hands requests with any HTTP method, including ones such as
    TRACE or PROPFIND, to its endpoint. Non-POST requests then get the
    tunnel's plain-text 405 instead of the framework's JSON one.
    """

    def matches(self, scope):
        match, child_scope = super().matches(scope)
        # PARTIAL only ever means "path matched, method did not"
        if match == Match.PARTIAL:
            match = Match.FULL
        return match, child_scope

    async def handle(self, scope, receive, send):
        await self.app(scope, receive, send)


router = APIRouter(route_class=AnyMethodRoute)
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

ENVELOPES = Counter(
    "sentry_tunnel_envelopes_total",
    "Envelopes received by the tunnel, by outcome",
    ["outcome"],
)


def get_upstream_client(request: Request) -> Optional[httpx.AsyncClient]:
    """Shared connection pool created in the application lifespan."""
    return getattr(request.app.state, "upstream_client", None)


def has_body(request: Request) -> bool:
    """An HTTP/1.x request only carries a body when it declares one."""
    headers = request.headers
    return "content-length" in headers or "transfer-encoding" in headers


async def read_envelope(request: Request) -> bytes:
    if request.method != "POST":
        raise MethodNotAllowed()

    if not has_body(request):
        raise EnvelopeRejected("Request body is missing", reason="body")

    try:
        return await request.body()
    except ClientDisconnect:
        logger.warning("[Tunnel] Client disconnected while sending the envelope")
        raise RelayFailure("Failed to read request body", reason="body_read")


async def stream_upstream_body(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """
    Copy the upstream body to the caller. The status line is already on the
    wire by now, so failures can only be logged.
    """
    try:
        async for chunk in upstream.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        log_exception_with_details(logger, "[Tunnel] Error copying response body:", e)
    finally:
        try:
            await upstream.aclose()
        except httpx.HTTPError as e:
            log_exception_with_details(logger, "[Tunnel] Error closing body:", e)


async def forward_envelope(
    request: Request,
    policy: TunnelPolicy,
    client: Optional[httpx.AsyncClient],
) -> Response:
    """
    Validate an envelope and relay it to the Sentry instance named by its DSN.

    Checks run in a fixed order and the first failing one decides the
    response: method, body presence, JSON header, DSN, host allow-list,
    project allow-list. Only then is the upstream contacted, with the whole
    original body.
    """
    body = await read_envelope(request)
    header = parse_header(body)
    destination = parse_destination(header.dsn)
    policy.check(destination)

    upstream_url = destination.envelope_url
    span = trace.get_current_span()
    span.set_attribute("tunnel.sentry_host", destination.host)
    span.set_attribute("tunnel.project_id", destination.project_id)
    span.set_attribute("tunnel.envelope_bytes", len(body))

    logger.debug(
        f"[Tunnel] Relaying {len(body)} bytes for {mask_dsn(header.dsn)} -> {upstream_url}"
    )

    if client is None:
        logger.error("[Tunnel] Upstream HTTP client is not initialized")
        raise RelayFailure("Failed to create upstream request", reason="upstream_request")

    try:
        upstream_request = client.build_request(
            "POST",
            upstream_url,
            content=body,
            timeout=httpx.Timeout(policy.upstream_timeout),
        )
    except httpx.InvalidURL as e:
        log_exception_with_details(logger, "[Tunnel] Failed to create upstream request:", e)
        raise RelayFailure("Failed to create upstream request", reason="upstream_request")

    try:
        upstream = await client.send(upstream_request, stream=True, follow_redirects=True)
    except httpx.HTTPError as e:
        log_exception_with_details(logger, "[Tunnel] Error tunneling to Sentry:", e)
        raise RelayFailure("Error tunneling to Sentry", reason="upstream_transport")

    span.set_attribute("tunnel.status_code", upstream.status_code)
    ENVELOPES.labels(outcome="relayed").inc()

    return StreamingResponse(
        stream_upstream_body(upstream),
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
    )


@router.api_route(TUNNEL_PATH, methods=["POST"])
async def tunnel(
    request: Request,
    policy: TunnelPolicy = Depends(get_policy),
    client: Optional[httpx.AsyncClient] = Depends(get_upstream_client),
):
    """Sentry tunnel endpoint; see forward_envelope."""
    with tracer.start_as_current_span("tunnel_request") as span:
        span.set_attribute("tunnel.method", request.method)
        try:
            return await forward_envelope(request, policy, client)
        except TunnelError as e:
            span.set_attribute("tunnel.rejected", e.reason)
            ENVELOPES.labels(outcome=e.reason).inc()
            if e.status_code < 500:
                logger.debug(f"[Tunnel] Rejected envelope ({e.reason}): {e.message}")
            return PlainTextResponse(e.message, status_code=e.status_code)
