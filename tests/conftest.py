"""Shared test fixtures for gemplanner."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Callable

import httpx
import pytest

from gemplanner.config import Config
from gemplanner.docs.client import Context7Client
from gemplanner.mcp_server import PlannerApp
from gemplanner.planning.libraries import LibraryResolver
from gemplanner.planning.models import (
    DetailedPlan,
    ExecutionSession,
    FeedbackItem,
    ImplementationStep,
    PlanningInput,
    PlanningOutput,
    PlanningSession,
)
from gemplanner.planning.service import PlanningService
from gemplanner.storage.context_store import ContextStore


class FakeGenerator:
    """Stands in for GeminiInvoker: returns queued replies and records prompts."""

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []
        self.connected = True

    async def invoke(self, prompt: str, env_overrides: dict | None = None) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("FakeGenerator ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def test_connection(self) -> bool:
        return self.connected


def rpc_text_response(text: str, request_id: str = "1") -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {"content": [{"type": "text", "text": text}]},
    }


def sse_body(payload: dict) -> str:
    return f"event: message\ndata: {json.dumps(payload)}\n\n"


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def store(tmp_path: Path) -> ContextStore:
    return ContextStore(tmp_path / "contexts")


@pytest.fixture
def sample_plan() -> DetailedPlan:
    return DetailedPlan(
        overview="simple todo",
        implementation_steps=[
            ImplementationStep(
                id="step-1",
                phase="setup",
                description="Scaffold the app",
                files_to_create=["package.json"],
            ),
        ],
    )


@pytest.fixture
def make_session(sample_plan: DetailedPlan) -> Callable[..., PlanningSession]:
    def _make(session_id: str = "gemini-plan-1", overview: str | None = None) -> PlanningSession:
        plan = sample_plan if overview is None else DetailedPlan(overview=overview)
        return PlanningSession(
            id=session_id,
            timestamp=datetime(2024, 6, 15, 10, 0, 0),
            model="gemini-test",
            input=PlanningInput(requirements="Build a todo app"),
            output=PlanningOutput(plan=plan, reasoning="because", alternatives=["cli"]),
        )

    return _make


@pytest.fixture
def make_execution() -> Callable[..., ExecutionSession]:
    def _make(success_rate: float, session_id: str = "exec-1") -> ExecutionSession:
        return ExecutionSession(
            id=session_id,
            timestamp=datetime(2024, 6, 16, 9, 0, 0),
            plan_id="gemini-plan-1",
            files_created=["src/app.ts"],
            success_rate=success_rate,
            completion_status="complete" if success_rate > 0.8 else "partial",
        )

    return _make


@pytest.fixture
def make_feedback() -> Callable[..., FeedbackItem]:
    def _make(content: str, phase: str = "planning", resolved: bool = False, item_id: str = "fb-1") -> FeedbackItem:
        return FeedbackItem(
            id=item_id,
            source="user",
            type="issue",
            phase=phase,
            content=content,
            priority="high",
            resolved=resolved,
            created_at=datetime(2024, 6, 15, 11, 0, 0),
        )

    return _make


@pytest.fixture
def docs_handler() -> dict:
    """Maps Context7 tool names to reply text; tests mutate it before calling."""
    return {
        "resolve-library-id": "- Title: React\n- Context7-compatible library ID: /facebook/react\n",
        "get-library-docs": "useState returns a stateful value.",
        "calls": [],
    }


@pytest.fixture
def app(tmp_path: Path, store: ContextStore, fake_generator: FakeGenerator, docs_handler: dict) -> PlannerApp:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        docs_handler["calls"].append(body)
        if body["method"] == "tools/list":
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "result": {"tools": [{"name": "resolve-library-id"}, {"name": "get-library-docs"}]},
            })
        name = body["params"]["name"]
        return httpx.Response(200, json=rpc_text_response(docs_handler[name], body["id"]))

    config = Config(gemini_model="gemini-test", contexts_dir=tmp_path / "contexts")
    return PlannerApp(
        config=config,
        store=store,
        generator=fake_generator,
        planner=PlanningService(fake_generator, model="gemini-test", resolver_factory=None),
        library_resolver=LibraryResolver(fake_generator),
        docs_factory=lambda: Context7Client(url="https://docs.test/mcp", transport=httpx.MockTransport(handler)),
        log_path=tmp_path / "activity.jsonl",
    )
