from __future__ import annotations

import os
import tempfile
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_BACKEND_URL = "https://hitpaw-enhancer.onrender.com/enhance-photo"
_DEFAULT_PORT = 8787

CONFIG_ENV = "PHOTO_ENHANCER_CONFIG"


class IngestPolicy(str, Enum):
    # https locators go to the backend untouched; everything else is refused
    HTTPS_PASSTHROUGH = "https_passthrough"
    # http(s) locators are fetched and re-hosted; inline payloads are refused
    REHOST_REMOTE = "rehost_remote"
    # remote and inline inputs are all re-hosted
    REHOST_ALL = "rehost_all"

    @property
    def accepts_inline(self) -> bool:
        return self is IngestPolicy.REHOST_ALL

    @property
    def rehosts_remote(self) -> bool:
        return self is not IngestPolicy.HTTPS_PASSTHROUGH


def _default_media_types() -> list[str]:
    return ["image/jpeg", "image/png", "image/webp", "image/gif"]


@dataclass(frozen=True)
class ServerConfig:
    backend_url: str = _DEFAULT_BACKEND_URL
    public_base_url: str = ""
    upload_dir: str = str(Path(tempfile.gettempdir()) / "photo-enhancer-uploads")
    max_bytes: int = 15 * 1024 * 1024
    ingest_policy: IngestPolicy = IngestPolicy.REHOST_ALL
    allowed_media_types: list[str] = field(default_factory=_default_media_types)
    verify_images: bool = True
    # seconds, per outbound call
    fetch_timeout: float = 20.0
    backend_timeout: float = 120.0
    host: str = "0.0.0.0"
    port: int = _DEFAULT_PORT
    log_level: str = "INFO"
    widget_html_path: str = ""
    widget_domain: str = ""
    widget_resource_domains: list[str] = field(default_factory=list)
    widget_connect_domains: list[str] = field(default_factory=list)

    @property
    def base_url(self) -> str:
        return self.public_base_url or f"http://localhost:{self.port}"

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ingest_policy"] = self.ingest_policy.value
        data["public_base_url"] = self.base_url
        return data


# environment variable -> config key
_ENV_KEYS = {
    "PHOTO_PROXY_URL": "backend_url",
    "PUBLIC_BASE_URL": "public_base_url",
    "UPLOAD_DIR": "upload_dir",
    "MAX_UPLOAD_BYTES": "max_bytes",
    "INGEST_POLICY": "ingest_policy",
    "VERIFY_IMAGES": "verify_images",
    "FETCH_TIMEOUT": "fetch_timeout",
    "BACKEND_TIMEOUT": "backend_timeout",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "WIDGET_HTML_PATH": "widget_html_path",
    "WIDGET_DOMAIN": "widget_domain",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    return default


def _as_number(value: Any, default: float, *, cast: type = float, minimum: float = 0) -> Any:
    try:
        number = cast(value)
    except (TypeError, ValueError):
        return default
    return number if number > minimum else default


def _as_str_list(value: Any, default: list[str]) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return list(default)
    return [str(v).strip() for v in value if str(v).strip()]


def _validate(cfg: Mapping[str, Any]) -> dict[str, Any]:
    defaults = asdict(ServerConfig())
    merged = {**defaults, **{k: v for k, v in cfg.items() if k in defaults}}

    for key in ("backend_url", "upload_dir", "host"):
        if not isinstance(merged[key], str) or not merged[key].strip():
            merged[key] = defaults[key]
        merged[key] = merged[key].strip()
    base = merged.get("public_base_url")
    merged["public_base_url"] = base.strip().rstrip("/") if isinstance(base, str) else ""

    merged["max_bytes"] = _as_number(merged["max_bytes"], defaults["max_bytes"], cast=int)
    merged["fetch_timeout"] = _as_number(merged["fetch_timeout"], defaults["fetch_timeout"])
    merged["backend_timeout"] = _as_number(merged["backend_timeout"], defaults["backend_timeout"])
    port = _as_number(merged["port"], defaults["port"], cast=int)
    merged["port"] = port if port < 65536 else defaults["port"]

    policy = merged["ingest_policy"]
    if not isinstance(policy, IngestPolicy):
        try:
            policy = IngestPolicy(str(policy).strip().lower())
        except ValueError:
            policy = defaults["ingest_policy"]
    merged["ingest_policy"] = policy
    merged["verify_images"] = _as_bool(merged["verify_images"], defaults["verify_images"])

    types = _as_str_list(merged["allowed_media_types"], defaults["allowed_media_types"])
    merged["allowed_media_types"] = [t.lower() for t in types if t.lower().startswith("image/")] or defaults["allowed_media_types"]

    level = str(merged["log_level"]).upper()
    merged["log_level"] = level if level in _LOG_LEVELS else defaults["log_level"]

    for key in ("widget_html_path", "widget_domain"):
        merged[key] = merged[key].strip() if isinstance(merged[key], str) else ""
    for key in ("widget_resource_domains", "widget_connect_domains"):
        merged[key] = _as_str_list(merged[key], [])
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return raw if isinstance(raw, dict) else {}


def load_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ServerConfig:
    env = os.environ if env is None else env
    raw: dict[str, Any] = {}
    path = path or env.get(CONFIG_ENV)
    if path and Path(path).is_file():
        raw.update(_read_yaml(Path(path)))
    for name, key in _ENV_KEYS.items():
        if env.get(name):
            raw[key] = env[name]
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return ServerConfig(**_validate(raw))
