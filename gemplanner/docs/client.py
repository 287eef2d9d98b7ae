"""JSON-RPC client for the Context7 documentation service.

Context7 speaks MCP over streamable HTTP: the same endpoint may answer a
POST with a plain JSON document or with a server-sent-event stream whose
last ``data:`` line carries the JSON-RPC envelope. Both shapes are accepted.

Usage:
    async with Context7Client() as docs:
        library_id = await docs.resolve_library_id("next.js")
        text = await docs.get_library_docs(library_id, topic="routing")
"""

from __future__ import annotations

import itertools
import json
import logging
import re
import time
from typing import Any

import httpx

from gemplanner.config import DEFAULT_CONTEXT7_URL, DEFAULT_HTTP_TIMEOUT
from gemplanner.errors import (
    DocumentationEmptyResult,
    DocumentationError,
    DocumentationHttpError,
    DocumentationParseError,
    DocumentationRpcError,
)

logger = logging.getLogger(__name__)

_LIBRARY_ID_LINE = re.compile(r"Context7-compatible library ID:\s*(\S+)")

_request_counter = itertools.count(1)


def _next_request_id() -> str:
    return f"{int(time.time() * 1000)}-{next(_request_counter)}"


def is_sse_body(body: str) -> bool:
    stripped = body.lstrip()
    return (
        stripped.startswith("event:")
        or stripped.startswith("data:")
        or "\nevent:" in body
        or "\ndata:" in body
    )


def decode_body(body: str) -> dict:
    """Decode a response body as JSON, or as SSE framing around JSON."""
    if is_sse_body(body):
        data_lines = [
            line[len("data:"):].strip()
            for line in body.splitlines()
            if line.startswith("data:")
        ]
        if not data_lines:
            raise DocumentationParseError(body)
        payload = data_lines[-1]
    else:
        payload = body

    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DocumentationParseError(body) from e
    if not isinstance(decoded, dict):
        raise DocumentationParseError(body)
    return decoded


def extract_library_id(text: str) -> str:
    """Pick the first advertised library id out of a resolve-library-id answer."""
    match = _LIBRARY_ID_LINE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


class Context7Client:
    """Thin JSON-RPC 2.0 client over HTTP POST."""

    def __init__(
        self,
        url: str = DEFAULT_CONTEXT7_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> Context7Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _rpc(self, method: str, params: dict | None = None) -> Any:
        body: dict[str, Any] = {"jsonrpc": "2.0", "id": _next_request_id(), "method": method}
        if params is not None:
            body["params"] = params

        try:
            response = await self._client.post(
                self.url,
                json=body,
                headers={"accept": "application/json, text/event-stream"},
            )
        except httpx.HTTPError as e:
            raise DocumentationError(f"Context7 request failed: {e}") from e

        text = response.text
        if not response.is_success:
            raise DocumentationHttpError(response.status_code, text)

        envelope = decode_body(text)
        error = envelope.get("error")
        if error:
            if isinstance(error, dict):
                raise DocumentationRpcError(str(error.get("message", error)), error.get("code"))
            raise DocumentationRpcError(str(error))
        return envelope.get("result")

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        result = await self._rpc("tools/call", {"name": name, "arguments": arguments})
        content = result.get("content") if isinstance(result, dict) else None
        text = ""
        if isinstance(content, list) and content and isinstance(content[0], dict):
            text = content[0].get("text") or ""
        if not text:
            raise DocumentationEmptyResult(name)
        return text

    async def list_tools(self) -> list[dict]:
        result = await self._rpc("tools/list", {})
        tools = result.get("tools") if isinstance(result, dict) else None
        return tools if isinstance(tools, list) else []

    async def resolve_library_id(self, library_name: str) -> str:
        text = await self.call_tool("resolve-library-id", {"libraryName": library_name})
        library_id = extract_library_id(text)
        logger.info(f"Resolved {library_name} -> {library_id}")
        return library_id

    async def get_library_docs(
        self, library_id: str, topic: str | None = None, tokens: int | None = None
    ) -> str:
        # Absent optionals are left out entirely; some backends reject nulls
        args: dict[str, Any] = {"context7CompatibleLibraryID": library_id}
        if topic:
            args["topic"] = topic
        if tokens:
            args["tokens"] = tokens
        return await self.call_tool("get-library-docs", args)
