"""Minimal ``multipart/form-data`` reader for the upload endpoint.

The body is walked once with a byte cursor through three states::

    SEEKING_BOUNDARY -> READING_HEADERS -> READING_BODY -> SEEKING_BOUNDARY ...

Parts are yielded in order; :func:`extract_file_field` picks the first one
whose field name is exactly ``file``.  Nested multiparts and streaming are
not supported.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from .errors import MultipartError
from .media import GENERIC_MEDIA_TYPE, normalize_media_type
from .models import UploadedFile

CRLF = b"\r\n"

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]{1,70})"|([^\s;"]{1,70}))', re.IGNORECASE)
_NAME_RE = re.compile(r'(?:^|;)\s*name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'(?:^|;)\s*filename="([^"]*)"', re.IGNORECASE)


class _State(Enum):
    SEEKING_BOUNDARY = "seeking-boundary"
    READING_HEADERS = "reading-headers"
    READING_BODY = "reading-body"
    DONE = "done"


@dataclass(slots=True)
class Part:
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def disposition(self) -> str:
        return self.headers.get("content-disposition", "")

    @property
    def name(self) -> str | None:
        match = _NAME_RE.search(self.disposition)
        return match.group(1) if match else None

    @property
    def filename(self) -> str:
        match = _FILENAME_RE.search(self.disposition)
        return match.group(1) if match else ""

    @property
    def media_type(self) -> str:
        return normalize_media_type(self.headers.get("content-type")) or GENERIC_MEDIA_TYPE


def parse_boundary(content_type: str | None) -> bytes:
    if not content_type or normalize_media_type(content_type) != "multipart/form-data":
        raise MultipartError("expected a multipart/form-data request")
    match = _BOUNDARY_RE.search(content_type)
    if not match:
        raise MultipartError("multipart/form-data request has no boundary")
    return (match.group(1) or match.group(2)).encode("latin-1")


def _parse_headers(block: bytes) -> dict[str, str]:
    headers: dict[str, str] = {}
    for line in block.decode("utf-8", errors="replace").split("\r\n"):
        name, sep, value = line.partition(":")
        if sep and name.strip():
            headers[name.strip().lower()] = value.strip()
    return headers


def iter_parts(body: bytes, boundary: bytes) -> Iterator[Part]:
    delimiter = b"--" + boundary
    # every delimiter after the first is preceded by the previous part's CRLF
    next_delimiter = CRLF + delimiter
    state = _State.SEEKING_BOUNDARY
    pos = 0
    part = Part()

    while state is not _State.DONE:
        if state is _State.SEEKING_BOUNDARY:
            idx = body.find(delimiter, pos)
            if idx < 0:
                state = _State.DONE
                continue
            pos = idx + len(delimiter)
            if body.startswith(b"--", pos):
                state = _State.DONE
                continue
            line_end = body.find(CRLF, pos)
            if line_end < 0:
                state = _State.DONE
                continue
            # transport padding after the delimiter is ignored
            pos = line_end + len(CRLF)
            part = Part()
            state = _State.READING_HEADERS

        elif state is _State.READING_HEADERS:
            part_end = body.find(next_delimiter, pos)
            if body.startswith(CRLF, pos):
                header_end, body_start = pos, pos + len(CRLF)
            else:
                header_end = body.find(CRLF + CRLF, pos)
                body_start = header_end + 2 * len(CRLF)
            if header_end < 0 or (part_end >= 0 and header_end > part_end):
                # no blank line before the next delimiter: skip the part
                pos = part_end if part_end >= 0 else len(body)
                state = _State.SEEKING_BOUNDARY
                continue
            part.headers = _parse_headers(body[pos:header_end])
            pos = body_start
            state = _State.READING_BODY

        elif state is _State.READING_BODY:
            part_end = body.find(next_delimiter, pos)
            if part_end < 0:
                # unterminated final part
                state = _State.DONE
                continue
            part.content = body[pos:part_end]
            yield part
            pos = part_end + len(CRLF)
            state = _State.SEEKING_BOUNDARY


def extract_file_field(body: bytes, content_type: str | None, field_name: str = "file") -> UploadedFile:
    boundary = parse_boundary(content_type)
    for part in iter_parts(body, boundary):
        if part.name != field_name:
            continue
        return UploadedFile(filename=part.filename, media_type=part.media_type, content=part.content)
    raise MultipartError(f"no {field_name!r} field found in multipart body")
