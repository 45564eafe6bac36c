from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from .errors import BackendHTTPError, BackendProtocolError, BackendReportedError, excerpt
from .locator import is_https_url, shorten
from .models import EnhancementResult

log = logging.getLogger("photo-enhancer.backend")


def _https_or_empty(value: Any) -> str:
    return value.strip() if is_https_url(value) else ""


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("detail") or json.dumps(error))
    return str(error)


class EnhancementClient:
    """One synchronous POST ``{"image_url": ...}`` to the enhancement proxy.

    Expected reply: ``{"data": {"status", "original_url", "enhanced_url"}}``
    or ``{"error": ...}``.  When both keys are present the error wins.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            raise BackendHTTPError(f"enhancement backend timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise BackendHTTPError(f"enhancement backend unreachable: {exc}") from exc

    async def enhance(self, image_url: str) -> EnhancementResult:
        response = await self._post({"image_url": image_url})
        text = response.text
        if not response.is_success:
            raise BackendHTTPError(
                f"Proxy HTTP error: {response.status_code} {excerpt(text)}",
                status_code=response.status_code,
                excerpt=excerpt(text),
            )
        try:
            body = json.loads(text)
        except ValueError as exc:
            raise BackendProtocolError(
                f"enhancement backend returned non-JSON body: {excerpt(text, 120)}",
                status_code=response.status_code,
                excerpt=excerpt(text),
            ) from exc
        if not isinstance(body, dict):
            raise BackendProtocolError("enhancement backend returned a non-object JSON body")
        if body.get("error"):
            raise BackendReportedError(_error_message(body["error"]), status_code=response.status_code)

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise BackendProtocolError("enhancement backend 'data' field is not an object")
        result = EnhancementResult(
            status=str(data.get("status") or "COMPLETED"),
            original_url=_https_or_empty(data.get("original_url")),
            enhanced_url=_https_or_empty(data.get("enhanced_url")),
        )
        log.info("backend %s for %s", result.status, shorten(image_url))
        return result
