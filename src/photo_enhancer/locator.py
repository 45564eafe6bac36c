from __future__ import annotations

import re
from enum import Enum

SANDBOX_PREFIX = "sandbox:"

_HTTPS_RE = re.compile(r"^https://")
_HTTP_RE = re.compile(r"^http://")
_INLINE_RE = re.compile(r"^data:image/[A-Za-z0-9.+-]+;base64,", re.IGNORECASE)
# /mnt/data/x.png, file:///tmp/x.png, C:\Users\x.png, ~/x.png
_LOCAL_RE = re.compile(r"^(?:file://|/|~/|[A-Za-z]:[\\/])")


class LocatorKind(str, Enum):
    HTTPS_URL = "https-url"
    HTTP_URL = "http-url"
    INLINE = "inline-encoded"
    LOCAL_PATH = "local-staged-path"
    UNSUPPORTED = "unsupported"

    @property
    def remote(self) -> bool:
        return self in (LocatorKind.HTTPS_URL, LocatorKind.HTTP_URL)


def strip_sandbox_prefix(locator: str) -> str:
    if locator[: len(SANDBOX_PREFIX)].lower() == SANDBOX_PREFIX:
        return locator[len(SANDBOX_PREFIX):]
    return locator


def classify(locator: str) -> LocatorKind:
    """Map any string to exactly one :class:`LocatorKind`; first rule wins."""
    value = (locator or "").strip()
    if not value:
        return LocatorKind.UNSUPPORTED
    if _HTTPS_RE.match(value):
        return LocatorKind.HTTPS_URL
    if _HTTP_RE.match(value):
        return LocatorKind.HTTP_URL
    if _INLINE_RE.match(value):
        return LocatorKind.INLINE
    if _LOCAL_RE.match(strip_sandbox_prefix(value)):
        return LocatorKind.LOCAL_PATH
    return LocatorKind.UNSUPPORTED


def is_https_url(value: object) -> bool:
    return isinstance(value, str) and bool(_HTTPS_RE.match(value))


def shorten(locator: str, limit: int = 80) -> str:
    """Log-safe form of a locator; inline payloads are never echoed."""
    if _INLINE_RE.match(locator):
        head = locator.split(",", 1)[0]
        return f"{head},<{len(locator) - len(head) - 1} chars>"
    return locator if len(locator) <= limit else locator[:limit] + "…"
