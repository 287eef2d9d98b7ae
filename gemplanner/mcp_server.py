"""MCP server for gemplanner.

Exposes Gemini-backed implementation planning to AI coding agents via the
Model Context Protocol. Agents create a project context, generate plans
enriched with Context7 library docs, and render plans as checklists.

Usage:
    uv run gemplanner serve

Configure in Claude Code (~/.claude.json):
    {
      "mcpServers": {
        "gemplanner": {
          "command": "uv",
          "args": ["run", "--directory", "/path/to/gemplanner", "gemplanner", "serve"],
          "env": {"GEMINI_MODEL": "gemini-2.5-pro", "GEMINI_API_KEY": "..."}
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from gemplanner.activity import log_tool_call, resolve_log_path
from gemplanner.config import Config
from gemplanner.docs.client import Context7Client
from gemplanner.errors import DocumentationError, UsageError
from gemplanner.generator.invoker import GeminiInvoker
from gemplanner.planning.checklist import render_plan_checklist
from gemplanner.planning.libraries import LibraryResolver
from gemplanner.planning.models import LibrarySpec, PlanningContext
from gemplanner.planning.service import PlanningService
from gemplanner.planning.versions import NpmVersionResolver
from gemplanner.storage.context_store import ContextStore

logger = logging.getLogger(__name__)

SERVER_NAME = "gemini-cli-planning-server"


class ToolCallFailed(Exception):
    """Carries the JSON failure payload; the MCP layer turns it into an isError result."""


@dataclass
class PlannerApp:
    """Everything a tool call needs, constructed once at process start."""

    config: Config
    store: ContextStore
    generator: GeminiInvoker
    planner: PlanningService
    library_resolver: LibraryResolver
    docs_factory: Callable[[], Context7Client]
    log_path: Path | None = None

    @classmethod
    def from_config(cls, config: Config) -> PlannerApp:
        generator = GeminiInvoker.from_config(config)
        resolver_factory = None
        if config.resolve_versions:
            resolver_factory = lambda: NpmVersionResolver(registry_url=config.npm_registry_url)  # noqa: E731
        return cls(
            config=config,
            store=ContextStore(config.contexts_dir),
            generator=generator,
            planner=PlanningService(generator, model=config.gemini_model, resolver_factory=resolver_factory),
            library_resolver=LibraryResolver(generator),
            docs_factory=lambda: Context7Client(url=config.context7_url, timeout=config.http_timeout),
            log_path=resolve_log_path(config.contexts_dir),
        )


TOOLS = [
    types.Tool(
        name="test_gemini_connection",
        description="Test connection to the Gemini CLI by sending a canary prompt.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="test_context7_connection",
        description="Test connection to the Context7 documentation service and list its tools.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="create_project_context",
        description=(
            "Create a new project planning context. Returns a contextId to pass "
            "to generate_plan_with_gemini and render_plan_checklist."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "projectName": {"type": "string", "description": "Name of the project"},
                "requirements": {"type": "string", "description": "Project requirements"},
                "constraints": {"type": "string", "description": "Any constraints"},
            },
            "required": ["projectName", "requirements"],
        },
    ),
    types.Tool(
        name="render_plan_checklist",
        description=(
            "Render a stored plan as a plain-text checklist grouped by phase. "
            "Defaults to the most recent plan of the context."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "contextId": {"type": "string", "description": "Project context ID"},
                "planIndex": {
                    "type": "integer",
                    "minimum": 0,
                    "description": "Zero-based index into the planning history (default: latest)",
                },
            },
            "required": ["contextId"],
        },
    ),
    types.Tool(
        name="generate_plan_with_gemini",
        description=(
            "Generate a detailed implementation plan using the Gemini CLI, grounded in "
            "Context7 documentation for the given libraries. Pass either contextId, or "
            "projectName + requirements to create a new context. Pass libraries, or a "
            "librariesPrompt describing the stack to extract them from."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "contextId": {"type": "string", "description": "Existing project context ID"},
                "projectName": {"type": "string", "description": "Name for a new project context"},
                "requirements": {"type": "string", "description": "Requirements for a new project context"},
                "constraints": {"type": "string", "description": "Additional constraints to append"},
                "libraries": {
                    "type": "array",
                    "description": "Libraries to fetch reference docs for (a bare name or {name, topic, tokens})",
                    "items": {
                        "anyOf": [
                            {"type": "string"},
                            {
                                "type": "object",
                                "properties": {
                                    "name": {"type": "string"},
                                    "topic": {"type": "string"},
                                    "tokens": {"type": "number"},
                                },
                                "required": ["name"],
                            },
                        ],
                    },
                },
                "librariesPrompt": {
                    "type": "string",
                    "description": "Natural-language description of the stack, used when libraries is empty",
                },
            },
        },
    ),
]


def _dumps(payload: dict) -> str:
    return json.dumps(payload, indent=2, default=str)


def _str_arg(arguments: dict, key: str) -> str:
    value = arguments.get(key)
    return value.strip() if isinstance(value, str) else ""


def _coerce_libraries(value: Any) -> list[LibrarySpec]:
    if not isinstance(value, list):
        return []
    specs: list[LibrarySpec] = []
    for item in value:
        if isinstance(item, str):
            item = {"name": item}
        if isinstance(item, dict):
            spec = LibrarySpec.from_dict(item)
            if spec is not None:
                specs.append(spec)
    return specs


def join_constraints(existing: str | None, new: str, reference_docs: str) -> str:
    parts = [existing or "", new]
    if reference_docs:
        parts.append(f"REFERENCE DOCS:\n{reference_docs}")
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


async def fetch_reference_docs(docs: Context7Client, libraries: list[LibrarySpec]) -> str:
    """Fetch docs for each library in order and concatenate them under per-library headings."""
    blocks: list[str] = []
    for lib in libraries:
        # Already a Context7 id such as "/vercel/next.js"
        if lib.name.startswith("/"):
            library_id = lib.name
        else:
            library_id = await docs.resolve_library_id(lib.name)
        text = await docs.get_library_docs(library_id, lib.topic, lib.tokens)
        header = f"## {lib.name}" + (f" (topic: {lib.topic})" if lib.topic else "")
        blocks.append(f"{header}\n{text.strip()}")
    return "\n\n".join(blocks)


async def execute_tool(app: PlannerApp, name: str, arguments: dict | None) -> tuple[str, bool]:
    """Run a tool and return (text, is_error). Never raises."""
    arguments = arguments or {}
    start = time.time()
    error: str | None = None
    try:
        text = await _dispatch_tool(app, name, arguments)
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}")
        error = str(e)
        text = _dumps({"success": False, "error": error})
    duration_ms = int((time.time() - start) * 1000)
    log_tool_call(name, arguments, text, error, duration_ms, log_path=app.log_path)
    return text, error is not None


async def _dispatch_tool(app: PlannerApp, name: str, arguments: dict) -> str:
    """Route a tool call to the appropriate handler."""
    if name == "test_gemini_connection":
        return await _handle_test_gemini(app)
    elif name == "test_context7_connection":
        return await _handle_test_context7(app)
    elif name == "create_project_context":
        return await _handle_create_context(app, arguments)
    elif name == "render_plan_checklist":
        return await _handle_render_checklist(app, arguments)
    elif name == "generate_plan_with_gemini":
        return await _handle_generate_plan(app, arguments)
    else:
        raise UsageError(f"Unknown tool: {name}")


async def _handle_test_gemini(app: PlannerApp) -> str:
    connected = await app.generator.test_connection()
    return _dumps({
        "success": connected,
        "message": "Gemini CLI connection successful" if connected else "Gemini CLI connection failed",
        "config": {
            "model": app.config.gemini_model,
            "cliPath": app.config.gemini_cli_path,
            "hasApiKey": bool(app.config.gemini_api_key),
        },
    })


async def _handle_test_context7(app: PlannerApp) -> str:
    try:
        async with app.docs_factory() as docs:
            tools = await docs.list_tools()
            url = docs.url
    except DocumentationError as e:
        return _dumps({"success": False, "error": str(e)})
    return _dumps({
        "success": True,
        "url": url,
        "tools": [t.get("name", "") for t in tools if isinstance(t, dict)],
    })


async def _handle_create_context(app: PlannerApp, arguments: dict) -> str:
    project_name = _str_arg(arguments, "projectName")
    requirements = _str_arg(arguments, "requirements")
    if not project_name or not requirements:
        raise UsageError("create_project_context requires 'projectName' and 'requirements'")

    context = await app.store.create_context(
        project_name, requirements, _str_arg(arguments, "constraints") or None
    )
    return _dumps({
        "success": True,
        "contextId": context.id,
        "message": f"Created project context: {context.id}",
        "projectName": context.project_name,
    })


async def _handle_render_checklist(app: PlannerApp, arguments: dict) -> str:
    context_id = _str_arg(arguments, "contextId")
    if not context_id:
        raise UsageError("render_plan_checklist requires 'contextId'")
    plan_index = arguments.get("planIndex")
    if plan_index is not None and (isinstance(plan_index, bool) or not isinstance(plan_index, int)):
        raise UsageError("'planIndex' must be an integer")

    context = await app.store.require_context(context_id)
    session = context.planning_session(plan_index)
    return render_plan_checklist(session.output.plan)


async def _handle_generate_plan(app: PlannerApp, arguments: dict) -> str:
    context_id = _str_arg(arguments, "contextId")
    project_name = _str_arg(arguments, "projectName")
    requirements = _str_arg(arguments, "requirements")
    new_constraints = _str_arg(arguments, "constraints")
    libraries = _coerce_libraries(arguments.get("libraries"))
    libraries_prompt = _str_arg(arguments, "librariesPrompt")

    # Validate everything before the first generator call
    if not libraries and not libraries_prompt:
        raise UsageError("Provide a non-empty 'libraries' array or a 'librariesPrompt'")
    if context_id and (project_name or requirements):
        raise UsageError("Provide either 'contextId' or 'projectName' + 'requirements', not both")
    if not context_id and not (project_name and requirements):
        raise UsageError("Provide 'contextId', or both 'projectName' and 'requirements'")

    context: PlanningContext | None = None
    if context_id:
        context = await app.store.require_context(context_id)

    if not libraries:
        libraries = await app.library_resolver.resolve_from_prompt(libraries_prompt)

    if context is None:
        context = await app.store.create_context(project_name, requirements, new_constraints or None)
        new_constraints = ""

    async with app.docs_factory() as docs:
        reference_docs = await fetch_reference_docs(docs, libraries)

    constraints = join_constraints(context.constraints, new_constraints, reference_docs)
    context = await app.store.update_context(context.id, {"constraints": constraints})

    session = await app.planner.generate_plan(context.id, context.requirements, constraints, context)
    await app.store.add_planning_session(context.id, session)

    output = session.output
    return _dumps({
        "success": True,
        "contextId": context.id,
        "plan": output.plan.to_dict(),
        "reasoning": output.reasoning,
        "alternatives": output.alternatives,
        "risks": [asdict(r) for r in output.risks],
        "model": session.model,
        "message": "Plan generated successfully with Gemini CLI",
    })


def build_server(app: PlannerApp) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        text, is_error = await execute_tool(app, name, arguments)
        if is_error:
            raise ToolCallFailed(text)
        return [types.TextContent(type="text", text=text)]

    return server


async def main(config: Config | None = None) -> None:
    config = config or Config.load()
    app = PlannerApp.from_config(config)
    server = build_server(app)
    logger.info(f"Starting {SERVER_NAME} (model={config.gemini_model}, cli={config.gemini_cli_path})")
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )
