"""Durable store for PlanningContexts: one JSON file per context.

The store owns the canonical copy of every context. An in-memory
read-through cache serves repeated reads and is replaced after each
successful write. Every mutation rewrites the whole file.

Phase transitions happen as side effects of appends:
    create                   -> planning
    add_planning_session     -> executing
    add_execution_session    -> complete (success_rate > 0.8) or reviewing
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from gemplanner.errors import ContextNotFound
from gemplanner.planning.models import (
    COMPLETION_THRESHOLD,
    ExecutionSession,
    FeedbackItem,
    PlanningContext,
    PlanningSession,
)

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^a-z0-9._-]+")

# Partial-update keys accepted by update_context, keyed by their wire name
_UPDATABLE_FIELDS = {
    "projectName": "project_name",
    "requirements": "requirements",
    "constraints": "constraints",
    "currentPhase": "current_phase",
    "planningHistory": "planning_history",
    "executionHistory": "execution_history",
    "feedback": "feedback",
    "artifacts": "artifacts",
}


@dataclass
class ContextEvent:
    kind: str  # "created" | "updated"
    context_id: str
    context: PlanningContext
    updates: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ContextEvent], None]


def make_context_id(project_name: str, now_ms: int | None = None) -> str:
    slug = re.sub(r"\s+", "-", project_name.strip().lower())
    slug = _UNSAFE_ID_CHARS.sub("-", slug).strip("-.") or "project"
    return f"{slug}-{now_ms if now_ms is not None else int(time.time() * 1000)}"


class ContextStore:
    """File-backed context store with a write-through cache and change listeners.

    Construct once per process and pass it to whatever needs it.
    """

    def __init__(self, contexts_dir: Path) -> None:
        self._dir = Path(contexts_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, PlanningContext] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Listener] = []

    @property
    def contexts_dir(self) -> Path:
        return self._dir

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def create_context(
        self, project_name: str, requirements: str, constraints: str | None = None
    ) -> PlanningContext:
        context_id = make_context_id(project_name)
        while context_id in self._cache or self._path(context_id).exists():
            await asyncio.sleep(0.001)
            context_id = make_context_id(project_name)

        now = datetime.now()
        context = PlanningContext(
            id=context_id,
            project_name=project_name,
            requirements=requirements,
            constraints=constraints or None,
            current_phase="planning",
            created_at=now,
            updated_at=now,
        )
        async with self._lock(context_id):
            await self._save(context)
            self._cache[context_id] = context
        logger.info(f"Created context {context_id}")
        self._emit(ContextEvent(kind="created", context_id=context_id, context=context))
        return context

    async def get_context(self, context_id: str) -> PlanningContext | None:
        """Return the context, or None if it does not exist."""
        cached = self._cache.get(context_id)
        if cached is not None:
            return cached

        context = await self._load(context_id)
        if context is not None:
            self._cache[context_id] = context
        return context

    async def require_context(self, context_id: str) -> PlanningContext:
        context = await self.get_context(context_id)
        if context is None:
            raise ContextNotFound(context_id)
        return context

    async def update_context(self, context_id: str, updates: dict[str, Any]) -> PlanningContext:
        """Apply a partial update (wire-name keys, e.g. ``currentPhase``) and persist."""
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update context fields: {', '.join(sorted(unknown))}")
        async with self._lock(context_id):
            return await self._apply(context_id, lambda _: updates)

    async def add_planning_session(self, context_id: str, session: PlanningSession) -> PlanningContext:
        async with self._lock(context_id):
            return await self._apply(context_id, lambda ctx: {
                "planningHistory": [*ctx.planning_history, session],
                "currentPhase": "executing",
            })

    async def add_execution_session(self, context_id: str, session: ExecutionSession) -> PlanningContext:
        phase = "complete" if session.success_rate > COMPLETION_THRESHOLD else "reviewing"
        async with self._lock(context_id):
            return await self._apply(context_id, lambda ctx: {
                "executionHistory": [*ctx.execution_history, session],
                "currentPhase": phase,
            })

    async def add_feedback(self, context_id: str, feedback: FeedbackItem) -> PlanningContext:
        async with self._lock(context_id):
            return await self._apply(context_id, lambda ctx: {
                "feedback": [*ctx.feedback, feedback],
            })

    def list_contexts(self) -> list[str]:
        return sorted(p.stem for p in self._dir.glob("*.json"))

    async def _apply(
        self, context_id: str, build_updates: Callable[[PlanningContext], dict[str, Any]]
    ) -> PlanningContext:
        context = await self.require_context(context_id)
        updates = build_updates(context)
        changes = {_UPDATABLE_FIELDS[key]: value for key, value in updates.items()}
        updated = dataclasses.replace(context, **changes, updated_at=datetime.now())

        await self._save(updated)
        self._cache[context_id] = updated
        self._emit(ContextEvent(
            kind="updated", context_id=context_id, context=updated, updates=updates,
        ))
        return updated

    def _lock(self, context_id: str) -> asyncio.Lock:
        lock = self._locks.get(context_id)
        if lock is None:
            lock = self._locks[context_id] = asyncio.Lock()
        return lock

    def _path(self, context_id: str) -> Path:
        return self._dir / f"{context_id}.json"

    async def _load(self, context_id: str) -> PlanningContext | None:
        path = self._path(context_id)
        if path.parent != self._dir:
            return None
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt context file {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Corrupt context file {path}: root is {type(data).__name__}, expected object")
            return None
        return PlanningContext.from_dict(data)

    async def _save(self, context: PlanningContext) -> None:
        payload = json.dumps(context.to_dict(), indent=2)
        await asyncio.to_thread(self._write_atomic, self._path(context.id), payload)

    def _write_atomic(self, path: Path, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _emit(self, event: ContextEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Context listener failed for {event.kind} {event.context_id}")
