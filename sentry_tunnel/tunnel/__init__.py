"""
Sentry Tunnel

Relays Sentry envelopes posted by browsers and apps to the Sentry instance
named in the envelope's DSN, after checking that instance and project against
the configured allow-lists:
- First-line routing header parsing (``{"dsn": ...}``)
- Host and project id allow-lists
- Byte-for-byte relay of the request body
- Streamed pass-through of the upstream status and body
"""

from .route import router

__all__ = ["router"]
