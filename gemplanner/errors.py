"""Exception hierarchy for gemplanner.

Each collaborator (generator invoker, documentation client, library
resolver, context store) raises its own named condition and wraps the
lower-level error it caught as ``__cause__``.
"""

from __future__ import annotations

from typing import Any


class PlannerError(Exception):
    """Base exception for all gemplanner errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class UsageError(PlannerError):
    """Raised when tool arguments are missing or mutually exclusive."""


class GeneratorInvocationFailed(PlannerError):
    """Raised when the generator CLI cannot be spawned, exits non-zero, or overflows."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, {"exit_code": exit_code})
        self.cause = cause
        self.exit_code = exit_code
        self.stderr = stderr


class GeneratorTimeout(GeneratorInvocationFailed):
    """Raised when the generator CLI exceeds its wall-clock budget."""

    def __init__(self, timeout: float, cause: BaseException | None = None) -> None:
        super().__init__(f"Generator timed out after {timeout:g}s", cause=cause)
        self.timeout = timeout


class PlanParseFailed(PlannerError):
    """Raised when no JSON object can be recovered from generator output."""

    def __init__(self, raw_text: str) -> None:
        super().__init__(f"Failed to parse generator response as a JSON plan: {raw_text}")
        self.raw_text = raw_text


class LibraryExtractionFailed(PlannerError):
    """Raised when no JSON array of libraries can be recovered from generator output."""

    def __init__(self, raw_text: str, reason: str = "Failed to parse libraries from prompt") -> None:
        super().__init__(f"{reason}: {raw_text}")
        self.raw_text = raw_text


class DocumentationError(PlannerError):
    """Base for failures talking to the documentation service."""


class DocumentationHttpError(DocumentationError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Documentation service HTTP {status}: {body[:500]}")
        self.status = status
        self.body = body


class DocumentationRpcError(DocumentationError):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message, {"code": code})
        self.code = code


class DocumentationEmptyResult(DocumentationError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Documentation service returned empty content for {tool_name}")
        self.tool_name = tool_name


class DocumentationParseError(DocumentationError):
    def __init__(self, body: str) -> None:
        super().__init__(f"Documentation service response is not JSON or SSE-framed JSON: {body[:500]}")
        self.body = body


class ContextNotFound(PlannerError):
    def __init__(self, context_id: str) -> None:
        super().__init__(f"Context {context_id} not found")
        self.context_id = context_id


class PlanNotFound(PlannerError):
    def __init__(self, context_id: str, index: int | None) -> None:
        if index is None:
            message = f"Context {context_id} has no planning sessions"
        else:
            message = f"Planning session {index} not found in context {context_id}"
        super().__init__(message)
        self.context_id = context_id
        self.index = index
