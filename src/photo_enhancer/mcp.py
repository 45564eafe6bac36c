"""JSON-RPC 2.0 dispatch for the MCP tool surface (stateless, JSON replies)."""
from __future__ import annotations

from typing import Any

from .tools import PhotoTools

SERVER_NAME = "photo-enhancer-app"
SERVER_VERSION = "1.0.0"

SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
DEFAULT_PROTOCOL_VERSION = "2025-03-26"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


def error_response(req_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


async def handle_rpc(req: Any, tools: PhotoTools) -> dict[str, Any] | None:
    """Process one JSON-RPC request; return the response, or None for notifications."""
    if not isinstance(req, dict):
        return error_response(None, INVALID_REQUEST, "Invalid Request")
    req_id = req.get("id")
    method = str(req.get("method") or "")
    params = req.get("params")
    if not isinstance(params, dict):
        params = {}

    def ok(result: Any) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    if method == "initialize":
        client_ver = params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION)
        agreed = client_ver if client_ver in SUPPORTED_PROTOCOL_VERSIONS else DEFAULT_PROTOCOL_VERSION
        capabilities: dict[str, Any] = {"tools": {}}
        if tools.widget is not None:
            capabilities["resources"] = {}
        return ok({
            "protocolVersion": agreed,
            "capabilities": capabilities,
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        })

    if method.startswith("notifications/") or method == "initialized":
        return None

    if method == "ping":
        return ok({})

    if method == "tools/list":
        return ok({"tools": tools.schemas()})

    if method == "tools/call":
        name = params.get("name")
        if not isinstance(name, str) or not name:
            return error_response(req_id, INVALID_PARAMS, "tools/call requires a tool 'name'")
        return ok(await tools.call(name, params.get("arguments") or {}))

    if method == "resources/list":
        listing = [tools.widget.listing()] if tools.widget is not None else []
        return ok({"resources": listing})

    if method == "resources/read":
        widget = tools.widget
        if widget is None or params.get("uri") != widget.uri:
            return error_response(req_id, INVALID_PARAMS, f"Unknown resource: {params.get('uri')}")
        return ok(widget.contents())

    if req_id is not None:
        return error_response(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")
    return None
