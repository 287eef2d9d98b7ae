"""Activity logging for MCP tool calls.

Logs every tool invocation to a JSONL file so operators can see which plans
were generated, for which context, and why a call failed. Each line is a
JSON object with timestamp, tool name, arguments, result preview, error and
duration.

The log file lives in the contexts directory by default.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

RESULT_PREVIEW_LIMIT = 500
LOG_FILE_NAME = "gemplanner-activity.jsonl"

# Tool results are pretty-printed JSON; created contexts only appear there
_CONTEXT_ID_IN_RESULT = re.compile(r'"contextId":\s*"([^"]+)"')


def resolve_log_path(contexts_dir: Path | None = None) -> Path:
    """Find the log file path, checking env var then defaulting into the contexts dir."""
    env_path = os.getenv("GEMPLANNER_LOG_PATH")
    if env_path:
        return Path(env_path)

    base = contexts_dir or Path(os.getenv("GEMPLANNER_CONTEXTS_DIR", "contexts"))
    return base / LOG_FILE_NAME


def log_tool_call(
    tool_name: str,
    arguments: dict,
    result_text: str,
    error: str | None,
    duration_ms: int,
    log_path: Path | None = None,
) -> None:
    """Append a tool call entry to the activity log. Never raises."""
    try:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "tool_name": tool_name,
            "arguments": arguments,
            "result_preview": result_text[:RESULT_PREVIEW_LIMIT] if result_text else "",
            "error": error,
            "duration_ms": duration_ms,
        }
        path = log_path or resolve_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except Exception as e:
        # Never crash the MCP server for logging
        logger.debug(f"Activity log write failed: {e}")


def entry_context_id(entry: dict) -> str | None:
    """The context a logged call touched: its contextId argument, or the id a create returned."""
    arguments = entry.get("arguments")
    if isinstance(arguments, dict) and isinstance(arguments.get("contextId"), str):
        return arguments["contextId"]
    match = _CONTEXT_ID_IN_RESULT.search(entry.get("result_preview") or "")
    return match.group(1) if match else None


def read_activity_log(
    limit: int = 20,
    tool_name: str | None = None,
    log_path: Path | None = None,
    context_id: str | None = None,
) -> list[dict]:
    """Read recent activity log entries, optionally for one tool or one context.

    Returns entries in reverse chronological order (most recent first).
    """
    path = log_path or resolve_log_path()
    if not path.exists():
        return []

    entries: list[dict] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue

        if tool_name and entry.get("tool_name") != tool_name:
            continue
        if context_id and entry_context_id(entry) != context_id:
            continue

        entries.append(entry)

    entries.reverse()
    return entries[:limit]
