from __future__ import annotations

import asyncio
import logging

import httpx

from .config import IngestPolicy, ServerConfig
from .errors import (
    InvalidEncodingError,
    LocalPathUnreachableError,
    NotAnImageError,
    PayloadTooLargeError,
    UnsupportedInputError,
)
from .fetch import RemoteFetcher
from .inline import decode_data_url
from .locator import LocatorKind, classify, shorten, strip_sandbox_prefix
from .media import (
    hint_extension,
    is_image_type,
    media_type_for_extension,
    normalize_media_type,
    sniff_media_type,
)
from .models import DecodedMedia, StoredArtifact, UploadedFile
from .store import ContentStore

log = logging.getLogger("photo-enhancer.ingest")

_ACCEPTED_FORMS = {
    IngestPolicy.HTTPS_PASSTHROUGH: "a public https:// image URL",
    IngestPolicy.REHOST_REMOTE: "a public http(s):// image URL",
    IngestPolicy.REHOST_ALL: "a public http(s):// image URL or a data:image/...;base64 URL",
}


class MediaIngestor:
    """Turn any locator into a URL this server serves (or, for
    ``https_passthrough``, the caller's own https URL).

    Everything is validated before the single store write, so a failed
    ingestion leaves nothing behind.
    """

    def __init__(self, config: ServerConfig, store: ContentStore, fetcher: RemoteFetcher) -> None:
        self.config = config
        self.store = store
        self.fetcher = fetcher

    @property
    def accepted_forms(self) -> str:
        return _ACCEPTED_FORMS[self.config.ingest_policy]

    async def ingest(self, locator: str | None) -> str:
        value = (locator or "").strip()
        if not value:
            raise UnsupportedInputError(f"missing input: provide {self.accepted_forms}")

        kind = classify(value)
        policy = self.config.ingest_policy
        if kind is LocatorKind.LOCAL_PATH:
            raise LocalPathUnreachableError(
                f"{strip_sandbox_prefix(value)!r} is a path in the caller's environment and cannot be "
                f"read by this remote server; provide {self.accepted_forms} instead"
            )
        if kind is LocatorKind.UNSUPPORTED:
            raise UnsupportedInputError(f"unsupported image locator {shorten(value)!r}; provide {self.accepted_forms}")
        if kind.remote:
            self._check_remote_url(value)
        if kind is LocatorKind.HTTPS_URL and not policy.rehosts_remote:
            return value
        if kind is LocatorKind.HTTP_URL and not policy.rehosts_remote:
            raise UnsupportedInputError(f"plain http URLs are not accepted; provide {self.accepted_forms}")
        if kind is LocatorKind.INLINE and not policy.accepts_inline:
            raise UnsupportedInputError(f"inline data URLs are not accepted; provide {self.accepted_forms}")

        if kind.remote:
            media = await self.fetcher.fetch(value)
        else:
            media = decode_data_url(value, self.config.max_bytes)
        artifact = await self.stage(media, source=kind.value)
        return artifact.public_url

    def _check_remote_url(self, value: str) -> None:
        try:
            host = httpx.URL(value).host
        except (httpx.InvalidURL, ValueError) as exc:
            raise UnsupportedInputError(
                f"malformed image URL {shorten(value)!r} ({exc}); provide {self.accepted_forms}"
            ) from exc
        if not host:
            raise UnsupportedInputError(f"image URL {shorten(value)!r} has no host; provide {self.accepted_forms}")

    async def ingest_upload(self, upload: UploadedFile) -> StoredArtifact:
        media_type = normalize_media_type(upload.media_type)
        if media_type not in self.config.allowed_media_types:
            raise NotAnImageError(
                f"unsupported upload type {media_type or 'missing'}; "
                f"allowed: {', '.join(self.config.allowed_media_types)}"
            )
        media = DecodedMedia(media_type=media_type, data=upload.content, name_hint=upload.filename)
        return await self.stage(media, source="upload")

    def validate(self, media: DecodedMedia) -> DecodedMedia:
        if not media.data:
            raise InvalidEncodingError("image is empty")
        if media.size > self.config.max_bytes:
            raise PayloadTooLargeError(f"image is {media.size} bytes, limit is {self.config.max_bytes}")

        media_type = normalize_media_type(media.media_type)
        if self.config.verify_images:
            sniffed = sniff_media_type(media.data)
            if sniffed is None:
                raise NotAnImageError(f"content declared as {media_type or 'unknown'} is not a readable image")
            media_type = sniffed
        if not is_image_type(media_type) or media_type not in self.config.allowed_media_types:
            raise NotAnImageError(
                f"unsupported image type {media_type or 'missing'}; "
                f"allowed: {', '.join(self.config.allowed_media_types)}"
            )

        name_hint = media.name_hint
        ext = hint_extension(name_hint)
        if ext and media_type_for_extension(ext) != media_type:
            name_hint = ""
        return DecodedMedia(media_type=media_type, data=media.data, name_hint=name_hint)

    async def stage(self, media: DecodedMedia, source: str = "") -> StoredArtifact:
        media = self.validate(media)
        loop = asyncio.get_running_loop()
        artifact = await loop.run_in_executor(
            None, self.store.store, media.data, media.media_type, media.name_hint
        )
        log.info("ingested %s from %s as %s", artifact.name, source or "unknown", artifact.public_url)
        return artifact
