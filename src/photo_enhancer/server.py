"""
photo-enhancer HTTP server.

  GET    /                banner
  GET    /health          health probe
  POST   /mcp             MCP JSON-RPC (streamable HTTP, JSON responses, stateless)
  POST   /upload          multipart upload, field "file" -> {ok, url, id}
  GET    /files/<name>    staged artifacts, <32 hex><ext>
"""
from __future__ import annotations

import json
import logging
import uuid

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from .config import ServerConfig, load_config
from .enhance import EnhancementClient
from .errors import ArtifactNotFoundError, EnhancerError, PayloadTooLargeError
from .fetch import RemoteFetcher
from .ingest import MediaIngestor
from .mcp import PARSE_ERROR, error_response, handle_rpc
from .multipart import extract_file_field
from .store import FILES_ROUTE, ContentStore
from .tools import PhotoTools
from .widget import load_widget

log = logging.getLogger("photo-enhancer")

# room for boundaries and part headers around the file itself
_MULTIPART_OVERHEAD = 64 * 1024
_IMMUTABLE = "public, max-age=31536000, immutable"


def _json(payload: dict, status_code: int = 200, headers: dict[str, str] | None = None) -> Response:
    return Response(
        content=json.dumps(payload),
        media_type="application/json",
        status_code=status_code,
        headers=headers,
    )


def create_app(
    config: ServerConfig | None = None,
    *,
    fetch_transport: httpx.AsyncBaseTransport | None = None,
    backend_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    config = config or load_config()
    store = ContentStore(config.upload_dir, config.base_url)
    store.ensure_dir()
    fetcher = RemoteFetcher(config.max_bytes, config.fetch_timeout, transport=fetch_transport)
    ingestor = MediaIngestor(config, store, fetcher)
    client = EnhancementClient(config.backend_url, config.backend_timeout, transport=backend_transport)
    tools = PhotoTools(ingestor, client, load_widget(config))

    app = FastAPI(title="photo-enhancer")
    app.state.config = config
    app.state.store = store
    app.state.tools = tools

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id"],
    )

    @app.exception_handler(EnhancerError)
    async def enhancer_error_handler(request: Request, exc: EnhancerError) -> JSONResponse:
        log.warning("%s %s rejected: %s %s", request.method, request.url.path, exc.code, exc)
        return JSONResponse(
            status_code=exc.http_status,
            content={"ok": False, "error": str(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("Unhandled error [%s %s]: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/")
    async def index() -> PlainTextResponse:
        return PlainTextResponse("Photo enhancer MCP server")

    @app.get("/health")
    async def health() -> dict:
        return {
            "ok": True,
            "tools": len(tools.schemas()),
            "policy": config.ingest_policy.value,
            "widget": tools.widget is not None,
        }

    @app.post("/mcp")
    async def mcp_post(request: Request) -> Response:
        body = await request.body()
        try:
            rpc = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _json(error_response(None, PARSE_ERROR, "Parse error"), status_code=400)

        extra_headers: dict[str, str] = {}
        if isinstance(rpc, dict) and rpc.get("method") == "initialize":
            extra_headers["Mcp-Session-Id"] = str(uuid.uuid4())

        response = await handle_rpc(rpc, tools)
        if response is None:
            return Response(content="", status_code=202, headers=extra_headers)
        return _json(response, headers=extra_headers)

    @app.api_route("/mcp", methods=["GET", "DELETE"])
    async def mcp_not_allowed() -> Response:
        return _json(
            error_response(None, -32000, "Method not allowed: this server keeps no sessions."),
            status_code=405,
            headers={"Allow": "POST"},
        )

    @app.post("/upload")
    async def upload(request: Request) -> JSONResponse:
        limit = config.max_bytes + _MULTIPART_OVERHEAD
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise PayloadTooLargeError(f"upload is {declared} bytes, limit is {config.max_bytes}")
        chunks: list[bytes] = []
        total = 0
        async for chunk in request.stream():
            total += len(chunk)
            if total > limit:
                raise PayloadTooLargeError(f"upload exceeds the {config.max_bytes} byte limit")
            chunks.append(chunk)
        upload_file = extract_file_field(b"".join(chunks), request.headers.get("content-type"))
        artifact = await ingestor.ingest_upload(upload_file)
        return JSONResponse({"ok": True, "url": artifact.public_url, "id": artifact.id})

    @app.get(FILES_ROUTE + "/{name}")
    async def get_file(name: str) -> Response:
        try:
            path, media_type = store.locate(name)
        except ArtifactNotFoundError:
            return PlainTextResponse("Not Found", status_code=404)
        return FileResponse(path, media_type=media_type, headers={"Cache-Control": _IMMUTABLE})

    log.info(
        "photo-enhancer ready: base=%s uploads=%s policy=%s backend=%s",
        config.base_url, config.upload_dir, config.ingest_policy.value, config.backend_url,
    )
    return app
