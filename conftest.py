# Ensure tests import modules from this service directory first, so
# `import sentry_tunnel.*` works without installing the package.
import logging
import os
import sys

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from sentry_tunnel.tunnel.policy import TunnelPolicy, get_policy  # noqa: E402
from sentry_tunnel.tunnel.route import get_upstream_client, router  # noqa: E402


class RecordingUpstream:
    """Stand-in Sentry ingest endpoint for httpx.MockTransport."""

    def __init__(self, status_code=200, content=b"OK", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code, content=self.content, headers=self.headers
        )


@pytest.fixture
def upstream():
    return RecordingUpstream()


@pytest.fixture
def make_client(upstream):
    """Build a TestClient around the tunnel router with injected policy and upstream."""

    def _make(policy=None, handler=None, upstream_client=None):
        app = FastAPI()
        app.include_router(router)
        if upstream_client is None:
            upstream_client = httpx.AsyncClient(
                transport=httpx.MockTransport(handler or upstream)
            )
        app.dependency_overrides[get_policy] = lambda: policy or TunnelPolicy()
        app.dependency_overrides[get_upstream_client] = lambda: upstream_client
        return TestClient(app)

    return _make


@pytest.fixture
def tunnel_log(caplog):
    """caplog that also works once uvicorn has stopped propagation of its loggers."""
    logger = logging.getLogger("uvicorn.error")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="uvicorn.error")
    yield caplog
    logger.removeHandler(caplog.handler)
