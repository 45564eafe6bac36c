"""Decoder for ``data:image/<subtype>;base64,<payload>`` locators.

Payloads that travel through chat transcripts arrive line-wrapped, with the
URL-safe alphabet, percent-escaped, or with their padding stripped.  All of
that is repaired here; a payload whose length cannot be padded back to a
multiple of four is truncated and is refused.
"""
from __future__ import annotations

import base64
import binascii
import re
from urllib.parse import unquote

from .errors import InvalidEncodingError, PayloadTooLargeError, TruncatedPayloadError
from .media import normalize_media_type
from .models import DecodedMedia

_MARKER_RE = re.compile(r"^data:image/([A-Za-z0-9.+-]+);base64,(.*)$", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")
_ALPHABET_RE = re.compile(r"[A-Za-z0-9+/]+")
_URLSAFE = str.maketrans("-_", "+/")


def max_encoded_length(max_bytes: int) -> int:
    return 4 * ((max_bytes + 2) // 3)


def normalize_payload(payload: str) -> str:
    """Return *payload* in the standard alphabet with correct padding."""
    if "%" in payload:
        payload = unquote(payload)
    payload = _WHITESPACE_RE.sub("", payload).translate(_URLSAFE).rstrip("=")
    if not payload:
        raise InvalidEncodingError("inline image payload is empty")
    if not _ALPHABET_RE.fullmatch(payload):
        raise InvalidEncodingError("inline image payload contains characters outside the base64 alphabet")
    remainder = len(payload) % 4
    if remainder == 1:
        raise TruncatedPayloadError(
            "inline image payload is truncated (length is one past a multiple of four); "
            "resend the complete data URL"
        )
    return payload + "=" * ((4 - remainder) % 4)


def decode_data_url(value: str, max_bytes: int) -> DecodedMedia:
    match = _MARKER_RE.match(value.strip())
    if not match:
        raise InvalidEncodingError("expected data:image/<type>;base64,<payload>")
    subtype, payload = match.groups()

    # rough cut on the raw text first, whitespace and escapes only inflate it
    limit = max_encoded_length(max_bytes)
    if len(payload) > 2 * limit:
        raise PayloadTooLargeError(f"inline image exceeds {max_bytes} bytes")
    normalized = normalize_payload(payload)
    if len(normalized) > limit:
        raise PayloadTooLargeError(f"inline image exceeds {max_bytes} bytes")

    try:
        data = base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidEncodingError(f"inline image payload could not be decoded: {exc}") from exc
    if not data:
        raise InvalidEncodingError("inline image payload decoded to zero bytes")
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"inline image exceeds {max_bytes} bytes")
    media_type = normalize_media_type(f"image/{subtype}")
    return DecodedMedia(media_type=media_type, data=data)
