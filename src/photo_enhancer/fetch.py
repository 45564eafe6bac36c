from __future__ import annotations

import logging
from urllib.parse import urlsplit

import httpx

from .errors import NotAnImageError, PayloadTooLargeError, RemoteFetchError, excerpt
from .locator import shorten
from .media import is_image_type, normalize_media_type
from .models import DecodedMedia

log = logging.getLogger("photo-enhancer.fetch")

_FETCH_HEADERS = {
    "User-Agent": "photo-enhancer/1.0",
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
}


class RemoteFetcher:
    """Download one image over HTTP(S).  A failed fetch is final: no retries."""

    def __init__(
        self,
        max_bytes: int,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=_FETCH_HEADERS,
            transport=self._transport,
        )

    async def fetch(self, url: str) -> DecodedMedia:
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        body = await response.aread()
                        raise RemoteFetchError(
                            f"fetching {shorten(url)} failed with HTTP {response.status_code}",
                            status_code=response.status_code,
                            excerpt=excerpt(body.decode("utf-8", errors="replace")),
                        )
                    media_type = normalize_media_type(response.headers.get("content-type"))
                    if not is_image_type(media_type):
                        raise NotAnImageError(
                            f"{shorten(url)} is not an image (content-type: {media_type or 'missing'})",
                            status_code=response.status_code,
                        )
                    data = await self._read_bounded(response, url)
        except httpx.HTTPError as exc:
            raise RemoteFetchError(f"fetching {shorten(url)} failed: {exc}") from exc
        except (httpx.InvalidURL, ValueError) as exc:
            # raised while building the request, before anything is sent
            raise RemoteFetchError(f"cannot fetch {shorten(url)}: {exc}") from exc

        log.info("fetched %s type=%s bytes=%d", shorten(url), media_type, len(data))
        return DecodedMedia(media_type=media_type, data=data, name_hint=urlsplit(url).path)

    async def _read_bounded(self, response: httpx.Response, url: str) -> bytes:
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_bytes:
            raise PayloadTooLargeError(
                f"{shorten(url)} is {int(declared)} bytes, limit is {self.max_bytes}",
                status_code=response.status_code,
            )
        chunks: list[bytes] = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > self.max_bytes:
                raise PayloadTooLargeError(
                    f"{shorten(url)} exceeds the {self.max_bytes} byte limit",
                    status_code=response.status_code,
                )
            chunks.append(chunk)
        return b"".join(chunks)
