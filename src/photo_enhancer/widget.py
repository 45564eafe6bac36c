from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import ServerConfig

log = logging.getLogger("photo-enhancer.widget")

WIDGET_URI = "ui://widget/photo-enhancer-v1.html"
WIDGET_NAME = "photo-enhancer-widget-v1"
WIDGET_MIME_TYPE = "text/html+skybridge"


@dataclass(frozen=True)
class WidgetResource:
    html: str
    domain: str = ""
    resource_domains: list[str] = field(default_factory=list)
    connect_domains: list[str] = field(default_factory=list)
    uri: str = WIDGET_URI

    def meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "openai/widgetPrefersBorder": True,
            "openai/widgetCSP": {
                "resource_domains": list(self.resource_domains),
                "connect_domains": list(self.connect_domains),
            },
        }
        if self.domain:
            meta["openai/widgetDomain"] = self.domain
        return meta

    def listing(self) -> dict[str, Any]:
        return {"uri": self.uri, "name": WIDGET_NAME, "mimeType": WIDGET_MIME_TYPE}

    def contents(self) -> dict[str, Any]:
        return {
            "contents": [
                {"uri": self.uri, "mimeType": WIDGET_MIME_TYPE, "text": self.html, "_meta": self.meta()},
            ]
        }


def load_widget(config: ServerConfig) -> WidgetResource | None:
    if not config.widget_html_path:
        return None
    path = Path(config.widget_html_path)
    try:
        html = path.read_text(encoding="utf-8")
    except OSError as exc:
        log.warning("widget template %s not loaded: %s", path, exc)
        return None
    # the server serves its own artifacts, so its origin is always allowed
    resource_domains = [config.base_url, *config.widget_resource_domains]
    connect_domains = [config.base_url, *config.widget_connect_domains]
    return WidgetResource(
        html=html,
        domain=config.widget_domain,
        resource_domains=list(dict.fromkeys(resource_domains)),
        connect_domains=list(dict.fromkeys(connect_domains)),
    )
