import os
from typing import Optional


def _parse_list(raw: str) -> Optional[list]:
    """
    Split a comma separated setting. Unset or empty gives None; a value made
    only of separators and blanks gives an empty list, not None.
    """
    if not raw:
        return None
    return [entry.strip() for entry in raw.split(",") if entry.strip()]


SERVICE_NAME = os.getenv("SERVICE_NAME", "sentry-tunnel")
TUNNEL_PATH = os.environ.get("TUNNEL_PATH", "") or "/tunnel"
HOST = os.environ.get("HOST", "") or "0.0.0.0"
PORT = int(os.environ.get("PORT", "") or "8090")
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

# Upstream policy; unset means unrestricted
SENTRY_HOST = os.getenv("SENTRY_HOST", "")
SENTRY_PROJECT_IDS = _parse_list(os.getenv("SENTRY_PROJECT_IDS", ""))

TUNNEL_UPSTREAM_TIMEOUT = float(os.getenv("TUNNEL_UPSTREAM_TIMEOUT", "30"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
