from typing import Optional
from urllib.parse import urlsplit


def mask_token(text: str, token: Optional[str]) -> str:
    return text.replace(token, f"{token[:4]}****") if token else text


def mask_dsn(dsn: str) -> str:
    """Hide most of the public key of a DSN before it ends up in a log line."""
    try:
        key = urlsplit(dsn).username
    except ValueError:
        return dsn
    return mask_token(dsn, key)
