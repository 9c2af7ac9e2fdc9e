"""
Parsing of the routing header that Sentry SDKs put on the first line of an
envelope, and of the DSN it carries.

An envelope looks like::

    {"dsn":"https://<public key>@o1.ingest.sentry.io/42","sent_at":"..."}
    {"type":"event"}
    {...event payload...}

Only the first line is inspected; the body itself is relayed untouched.
"""

import json
import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import EnvelopeRejected

INVALID_DSN = "Invalid DSN format"

# Characters allowed in a DSN host; non-ASCII passes through for IDNs
_HOST_CHARS = re.compile(r"[A-Za-z0-9\-._~!$&'()*+,;=:\[\]<>\"%\x80-\U0010ffff]*")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

_JSON_TYPE_NAMES = {
    list: "array",
    str: "string",
    int: "number",
    float: "number",
    bool: "boolean",
}


class EnvelopeHeader(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dsn: str = ""


@dataclass(frozen=True)
class Destination:
    """Where an envelope wants to go, as parsed from its DSN."""

    scheme: str
    # network location without user info, port included
    host: str
    # host without port, used when naming the host back to the caller
    hostname: str
    project_id: str

    @property
    def envelope_url(self) -> str:
        return f"{self.scheme}://{self.host}/api/{self.project_id}/envelope/"


def first_line(body: bytes) -> bytes:
    return body.split(b"\n", 1)[0]


def parse_header(body: bytes) -> EnvelopeHeader:
    """Parse the JSON routing header from the first line of ``body``."""
    try:
        raw = json.loads(first_line(body))
    except ValueError as e:
        # JSONDecodeError, or UnicodeDecodeError for undecodable bytes
        raise EnvelopeRejected(f"Invalid JSON header: {e}", reason="header")

    if raw is None:
        return EnvelopeHeader()
    if not isinstance(raw, dict):
        type_name = _JSON_TYPE_NAMES.get(type(raw), type(raw).__name__)
        raise EnvelopeRejected(
            f"Invalid JSON header: expected an object, got {type_name}",
            reason="header",
        )

    try:
        return EnvelopeHeader.model_validate(raw)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise EnvelopeRejected(
            f"Invalid JSON header: {field}: {error['msg']}", reason="header"
        )


def parse_destination(dsn: str) -> Destination:
    """
    Parse a DSN (``scheme://[key@]host[:port]/project``) into a Destination.

    Raises EnvelopeRejected with ``Invalid DSN format`` when the DSN cannot be
    parsed, when the host holds characters a URL host may not, when a
    percent-escape is malformed, or when either the host or the project id is
    empty.
    """
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in dsn):
        raise EnvelopeRejected(INVALID_DSN, reason="dsn")

    try:
        parts = urlsplit(dsn)
        # urlsplit only validates the port lazily
        parts.port
    except ValueError:
        raise EnvelopeRejected(INVALID_DSN, reason="dsn")

    if _BAD_ESCAPE.search(parts.netloc + parts.path + parts.fragment):
        raise EnvelopeRejected(INVALID_DSN, reason="dsn")

    host = parts.netloc.rpartition("@")[2]
    if not host or not _HOST_CHARS.fullmatch(host):
        raise EnvelopeRejected(INVALID_DSN, reason="dsn")

    project_id = unquote(parts.path).strip("/")
    if not project_id:
        raise EnvelopeRejected(INVALID_DSN, reason="dsn")

    return Destination(
        scheme=parts.scheme,
        host=host,
        hostname=parts.hostname or host,
        project_id=project_id,
    )
