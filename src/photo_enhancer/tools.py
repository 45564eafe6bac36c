"""The two tools exposed over MCP: ``stage_image`` and ``enhance_photo``.

Every failure below the tool boundary is an :class:`EnhancerError`; it is
turned into a ``status: ERROR`` reply here and never reaches the transport.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from .enhance import EnhancementClient
from .errors import EnhancerError
from .ingest import MediaIngestor
from .locator import is_https_url, shorten
from .models import EnhancementResult
from .widget import WidgetResource

log = logging.getLogger("photo-enhancer.tools")

STAGE_IMAGE = "stage_image"
ENHANCE_PHOTO = "enhance_photo"

_LOCATOR_HELP = (
    "This tool runs on a remote server and CANNOT read local paths such as /mnt/data/... ; "
    "if the user uploaded an image, pass a public URL (or an inline data URL when accepted). "
    "If multiple images are uploaded, use the most recent one."
)


def _text(s: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": s}]


def _reply(structured: dict[str, Any], message: str, *, is_error: bool = False) -> dict[str, Any]:
    return {
        "content": _text(message) if message else [],
        "structuredContent": structured,
        "isError": is_error,
    }


def _locator_arg(arguments: Any) -> str:
    if not isinstance(arguments, dict):
        return ""
    value = arguments.get("locator")
    if value is None:
        value = arguments.get("image_url")
    return value.strip() if isinstance(value, str) else ""


class PhotoTools:
    def __init__(
        self,
        ingestor: MediaIngestor,
        client: EnhancementClient,
        widget: WidgetResource | None = None,
    ) -> None:
        self.ingestor = ingestor
        self.client = client
        self.widget = widget

    def schemas(self) -> list[dict[str, Any]]:
        accepted = self.ingestor.accepted_forms
        locator_schema = {
            "type": "string",
            "description": f"Image to use: {accepted}. {_LOCATOR_HELP}",
        }
        enhance: dict[str, Any] = {
            "name": ENHANCE_PHOTO,
            "title": "Enhance Photo",
            "description": (
                "Enhance an image with the photo enhancement service. "
                f"Pass {accepted}; local sandbox paths are not readable by this server."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "locator": locator_schema,
                    "image_url": {"type": "string", "description": "Alias of 'locator'."},
                },
            },
        }
        if self.widget is not None:
            enhance["_meta"] = {
                "openai/outputTemplate": self.widget.uri,
                "openai/toolInvocation/invoking": "Enhancing photo",
                "openai/toolInvocation/invoked": "Enhanced photo",
            }
        stage = {
            "name": STAGE_IMAGE,
            "title": "Stage Image",
            "description": (
                "Copy an image onto this server and return a stable public URL for it. "
                f"Pass {accepted}."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {"locator": locator_schema},
                "required": ["locator"],
            },
        }
        return [stage, enhance]

    async def call(self, name: str, arguments: Any) -> dict[str, Any]:
        if name == STAGE_IMAGE:
            return await self.stage_image(_locator_arg(arguments))
        if name == ENHANCE_PHOTO:
            return await self.enhance_photo(_locator_arg(arguments))
        return _reply({"status": "ERROR", "message": f"Unknown tool: {name}"}, f"Unknown tool: {name}", is_error=True)

    async def stage_image(self, locator: str) -> dict[str, Any]:
        try:
            url = await self.ingestor.ingest(locator)
        except EnhancerError as exc:
            log.warning("stage_image rejected %s: %s %s", shorten(locator), exc.code, exc)
            return _reply({"status": "ERROR", "message": str(exc), "url": ""}, str(exc))
        message = f"Image staged at {url}"
        return _reply({"status": "COMPLETED", "message": message, "url": url}, message)

    async def enhance_photo(self, locator: str) -> dict[str, Any]:
        try:
            staged = await self.ingestor.ingest(locator)
        except EnhancerError as exc:
            log.warning("enhance_photo rejected %s: %s %s", shorten(locator), exc.code, exc)
            return self._enhance_reply(EnhancementResult(status="ERROR", message=str(exc)))

        # the backend only ever receives public https URLs
        if not is_https_url(staged):
            message = (
                f"staged image URL {shorten(staged)!r} is not a public https URL; "
                "set PUBLIC_BASE_URL to this server's public https address"
            )
            log.warning("enhance_photo not sent to backend: %s", message)
            return self._enhance_reply(EnhancementResult(status="ERROR", message=message))

        try:
            result = await self.client.enhance(staged)
        except EnhancerError as exc:
            log.warning("enhance_photo backend failure for %s: %s %s", shorten(staged), exc.code, exc)
            return self._enhance_reply(EnhancementResult(status="ERROR", original_url=staged, message=str(exc)))

        message = "Photo enhanced successfully." if result.completed else f"Photo enhance status: {result.status}"
        return self._enhance_reply(
            replace(result, original_url=result.original_url or staged, message=message)
        )

    def _enhance_reply(self, result: EnhancementResult) -> dict[str, Any]:
        reply = _reply(result.as_structured(), result.message)
        if self.widget is not None:
            reply["_meta"] = {"openai/outputTemplate": self.widget.uri}
        return reply
