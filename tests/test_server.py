"""
End-to-end tests of the FastAPI app through httpx.ASGITransport.

Outbound traffic (remote image host, enhancement backend) goes to
httpx.MockTransport handlers; nothing leaves the process.
"""
from __future__ import annotations

import dataclasses
import json
import re
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from conftest import BASE_URL, data_url
from photo_enhancer.config import ServerConfig
from photo_enhancer.server import create_app

BOUNDARY = "testboundary123"


def _remote_images(jpeg_bytes: bytes):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/cat.jpg":
            return httpx.Response(200, content=jpeg_bytes, headers={"content-type": "image/jpeg"})
        if request.url.path == "/page.html":
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})
        return httpx.Response(404, text="not found")
    return handler


def _backend(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"data": {"status": "COMPLETED", "enhanced_url": "https://cdn.example/e.png"}})


def _client(config: ServerConfig, jpeg_bytes: bytes) -> httpx.AsyncClient:
    app = create_app(
        config,
        fetch_transport=httpx.MockTransport(_remote_images(jpeg_bytes)),
        backend_transport=httpx.MockTransport(_backend),
    )
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)


async def _rpc(client: httpx.AsyncClient, method: str, params: dict | None = None, req_id: int | None = 1) -> httpx.Response:
    payload: dict = {"jsonrpc": "2.0", "method": method, "params": params or {}}
    if req_id is not None:
        payload["id"] = req_id
    return await client.post("/mcp", json=payload)


async def _call(client: httpx.AsyncClient, name: str, arguments: dict) -> dict:
    r = await _rpc(client, "tools/call", {"name": name, "arguments": arguments})
    assert r.status_code == 200
    return r.json()["result"]


def _multipart(content: bytes, *, name: str = "file", filename: str = "cat.png", ctype: str = "image/png") -> bytes:
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
        f"Content-Type: {ctype}\r\n\r\n"
    ).encode() + content + f"\r\n--{BOUNDARY}--\r\n".encode()


_MP_HEADERS = {"content-type": f"multipart/form-data; boundary={BOUNDARY}"}


@pytest.mark.asyncio
async def test_index_and_health(config: ServerConfig, jpeg_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await client.get("/")
        assert r.status_code == 200
        assert "Photo enhancer" in r.text
        health = (await client.get("/health")).json()
        assert health == {"ok": True, "tools": 2, "policy": "rehost_all", "widget": False}


@pytest.mark.asyncio
async def test_stage_remote_image_then_download(config: ServerConfig, jpeg_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        result = await _call(client, "stage_image", {"locator": "https://example.com/cat.jpg"})
        structured = result["structuredContent"]
        assert structured["status"] == "COMPLETED"
        assert re.fullmatch(re.escape(BASE_URL) + r"/files/[0-9a-f]{32}\.jpg", structured["url"])

        r = await client.get(structured["url"])
        assert r.status_code == 200
        assert r.content == jpeg_bytes
        assert r.headers["content-type"] == "image/jpeg"
        assert "immutable" in r.headers["cache-control"]


@pytest.mark.asyncio
async def test_enhance_inline_image(config: ServerConfig, jpeg_bytes: bytes, png_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        result = await _call(client, "enhance_photo", {"locator": data_url(png_bytes)})
        structured = result["structuredContent"]
        assert structured["status"] == "COMPLETED"
        assert structured["enhancedUrl"] == "https://cdn.example/e.png"
        assert re.fullmatch(re.escape(BASE_URL) + r"/files/[0-9a-f]{32}\.png", structured["originalUrl"])
        assert result["content"] == [{"type": "text", "text": "Photo enhanced successfully."}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "locator",
    ["https://example.com/missing.jpg", "https://example.com/page.html", "/mnt/data/cat.png", ""],
)
async def test_failed_staging_is_an_error_reply(config: ServerConfig, jpeg_bytes: bytes, locator: str) -> None:
    async with _client(config, jpeg_bytes) as client:
        result = await _call(client, "stage_image", {"locator": locator})
    assert result["structuredContent"]["status"] == "ERROR"
    assert result["structuredContent"]["url"] == ""
    assert list(Path(config.upload_dir).iterdir()) == []


@pytest.mark.asyncio
async def test_mcp_initialize_and_list(config: ServerConfig, jpeg_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await _rpc(client, "initialize", {"protocolVersion": "2025-03-26"})
        assert r.status_code == 200
        assert r.headers.get("mcp-session-id")
        body = r.json()
        assert body["id"] == 1
        assert body["result"]["protocolVersion"] == "2025-03-26"
        assert body["result"]["serverInfo"]["name"] == "photo-enhancer-app"

        r = await _rpc(client, "notifications/initialized", req_id=None)
        assert r.status_code == 202

        tools = (await _rpc(client, "tools/list")).json()["result"]["tools"]
        assert {t["name"] for t in tools} == {"stage_image", "enhance_photo"}


@pytest.mark.asyncio
async def test_mcp_protocol_errors(config: ServerConfig, jpeg_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await client.post("/mcp", content=b"{not json", headers={"content-type": "application/json"})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == -32700

        r = await _rpc(client, "does/not/exist")
        assert r.json()["error"]["code"] == -32601

        r = await _rpc(client, "resources/read", {"uri": "ui://widget/nope.html"})
        assert r.json()["error"]["code"] == -32602

        r = await client.get("/mcp")
        assert r.status_code == 405


@pytest.mark.asyncio
async def test_widget_resource(config: ServerConfig, jpeg_bytes: bytes, tmp_path: Path) -> None:
    html = tmp_path / "widget.html"
    html.write_text("<div id='root'></div>", encoding="utf-8")
    config = dataclasses.replace(
        config,
        widget_html_path=str(html),
        widget_domain="https://widget.example",
        widget_resource_domains=["https://cdn.example"],
    )
    async with _client(config, jpeg_bytes) as client:
        listing = (await _rpc(client, "resources/list")).json()["result"]["resources"]
        assert listing[0]["uri"] == "ui://widget/photo-enhancer-v1.html"
        read = (await _rpc(client, "resources/read", {"uri": listing[0]["uri"]})).json()["result"]
        content = read["contents"][0]
        assert content["mimeType"] == "text/html+skybridge"
        assert content["text"] == "<div id='root'></div>"
        csp = content["_meta"]["openai/widgetCSP"]
        assert csp["resource_domains"] == [BASE_URL, "https://cdn.example"]
        assert content["_meta"]["openai/widgetDomain"] == "https://widget.example"


@pytest.mark.asyncio
async def test_upload_then_download(config: ServerConfig, jpeg_bytes: bytes, png_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await client.post("/upload", content=_multipart(png_bytes), headers=_MP_HEADERS)
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert re.fullmatch(r"[0-9a-f]{32}", body["id"])
        assert body["url"] == f"{BASE_URL}/files/{body['id']}.png"

        r = await client.get(f"/files/{body['id']}.png")
        assert r.content == png_bytes
        assert r.headers["content-type"] == "image/png"


@pytest.mark.asyncio
async def test_upload_rejections(config: ServerConfig, jpeg_bytes: bytes, png_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await client.post("/upload", content=_multipart(png_bytes), headers={"content-type": "application/json"})
        assert r.status_code == 400
        assert r.json()["ok"] is False

        r = await client.post("/upload", content=_multipart(png_bytes, name="image"), headers=_MP_HEADERS)
        assert r.status_code == 400
        assert "file" in r.json()["error"]

        r = await client.post("/upload", content=_multipart(b"MZ...", ctype="application/x-msdownload"), headers=_MP_HEADERS)
        assert r.status_code == 415

        r = await client.post("/upload", content=_multipart(b"not a png"), headers=_MP_HEADERS)
        assert r.status_code == 415
    assert list(Path(config.upload_dir).iterdir()) == []


@pytest.mark.asyncio
async def test_upload_too_large(config: ServerConfig, jpeg_bytes: bytes) -> None:
    config = dataclasses.replace(config, max_bytes=1024)
    async with _client(config, jpeg_bytes) as client:
        r = await client.post("/upload", content=_multipart(b"x" * 200_000), headers=_MP_HEADERS)
        assert r.status_code == 413
        assert r.json()["code"] == "PayloadTooLarge"


@pytest.mark.asyncio
async def test_chunked_upload_too_large(config: ServerConfig, jpeg_bytes: bytes) -> None:
    config = dataclasses.replace(config, max_bytes=1024)
    head = _multipart(b"")[: -len(f"\r\n--{BOUNDARY}--\r\n")]

    async def body():
        yield head
        for _ in range(20):
            yield b"x" * 8192
        yield f"\r\n--{BOUNDARY}--\r\n".encode()

    async with _client(config, jpeg_bytes) as client:
        r = await client.post("/upload", content=body(), headers=_MP_HEADERS)
        assert "content-length" not in r.request.headers
        assert r.status_code == 413
        assert r.json()["code"] == "PayloadTooLarge"
    assert list(Path(config.upload_dir).iterdir()) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("locator", ["https://", "http://[::1/a.png"])
async def test_malformed_url_gets_error_reply(config: ServerConfig, jpeg_bytes: bytes, locator: str) -> None:
    async with _client(config, jpeg_bytes) as client:
        for tool in ("stage_image", "enhance_photo"):
            r = await _rpc(client, "tools/call", {"name": tool, "arguments": {"locator": locator}})
            assert r.status_code == 200
            assert r.json()["result"]["structuredContent"]["status"] == "ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        "/files/..%2F..%2Fetc%2Fpasswd",
        "/files/0123456789abcdef0123456789abcdef.png",
        "/files/0123456789abcdef0123456789abcdef.exe",
        "/files/notes.txt",
    ],
)
async def test_files_not_found(config: ServerConfig, jpeg_bytes: bytes, path: str) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await client.get(path)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_mcp_response_is_plain_json(config: ServerConfig, jpeg_bytes: bytes) -> None:
    async with _client(config, jpeg_bytes) as client:
        r = await _rpc(client, "ping", req_id=42)
    assert r.headers["content-type"].startswith("application/json")
    assert json.loads(r.text) == {"jsonrpc": "2.0", "id": 42, "result": {}}
