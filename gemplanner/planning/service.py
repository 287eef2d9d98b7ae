"""Planning service: requirements -> Gemini prompt -> validated PlanningSession.

Builds the planning prompt (including a recap of earlier attempts and
unresolved planning feedback), drives the generator, repairs its output
into a DetailedPlan, and pins npm dependency versions. The session is
returned unsaved; persisting it is the caller's job.
"""

from __future__ import annotations

import itertools
import logging
import time
from datetime import datetime
from typing import Callable

from gemplanner.errors import PlanParseFailed
from gemplanner.planning.libraries import TextGenerator
from gemplanner.planning.models import (
    PlanningContext,
    PlanningInput,
    PlanningOutput,
    PlanningSession,
)
from gemplanner.planning.parsing import extract_object
from gemplanner.planning.versions import NpmVersionResolver

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-pro"
DEFAULT_REASONING = "Plan generated using Gemini CLI"

PLAN_SCHEMA = """\
{
  "overview": "High-level project description and chosen approach",
  "architecture": [
    {
      "component": "component name",
      "purpose": "what this component does",
      "technologies": ["tech1", "tech2"],
      "interfaces": ["API endpoints", "data flows"],
      "dependencies": ["other components this depends on"]
    }
  ],
  "implementation_steps": [
    {
      "id": "step-1",
      "phase": "setup|foundation|core|features|integration|testing|deployment",
      "description": "Detailed description of what to implement",
      "files_to_create": ["src/components/App.js", "src/api/auth.js"],
      "files_to_modify": ["package.json", "README.md"],
      "dependencies": ["step-0"],
      "estimated_complexity": "low|medium|high",
      "estimated_time": "2 hours",
      "validation_criteria": ["tests pass", "feature works as expected"],
      "potential_issues": ["common problems that might arise"]
    }
  ],
  "file_structure": {
    "src/": {
      "components/": {},
      "services/": {},
      "utils/": {}
    },
    "tests/": {},
    "docs/": {}
  },
  "dependencies": [
    {
      "name": "react",
      "version": "^18.2.0",
      "purpose": "Frontend framework",
      "type": "runtime"
    }
  ],
  "data_models": [
    {"name": "User", "fields": [{"name": "email", "type": "string", "required": true}]}
  ],
  "routes": [
    {"path": "/api/users", "method": "GET", "description": "List users"}
  ],
  "components": [
    {"name": "UserList", "category": "page", "responsibilities": ["render users"]}
  ],
  "testing_strategy": "Detailed testing approach",
  "deployment_notes": "How to deploy this application",
  "reasoning": "Why you chose this approach",
  "alternatives": ["Alternative approach 1", "Alternative approach 2"],
  "risks": [
    {
      "risk": "description of potential risk",
      "probability": "low|medium|high",
      "impact": "low|medium|high",
      "mitigation": "how to prevent or handle this risk"
    }
  ]
}"""


_session_counter = itertools.count(1)


def _session_id() -> str:
    return f"gemini-plan-{int(time.time() * 1000)}-{next(_session_counter)}"


class PlanningService:
    """Produces PlanningSessions from requirements using the generator CLI."""

    def __init__(
        self,
        generator: TextGenerator,
        model: str = "",
        resolver_factory: Callable[[], NpmVersionResolver] | None = NpmVersionResolver,
    ) -> None:
        self._generator = generator
        self._model = model or DEFAULT_MODEL
        # A new resolver per plan keeps version caches from leaking across batches
        self._resolver_factory = resolver_factory

    async def generate_plan(
        self,
        context_id: str,
        requirements: str,
        constraints: str = "",
        context: PlanningContext | None = None,
    ) -> PlanningSession:
        prompt = build_planning_prompt(requirements, constraints, context)

        logger.info(f"Generating plan for {context_id} with {self._model}")
        response = await self._generator.invoke(prompt)
        data = parse_plan_response(response)

        output = PlanningOutput.from_generator(data, DEFAULT_REASONING)
        plan = output.plan
        if plan.dependencies and self._resolver_factory is not None:
            resolver = self._resolver_factory()
            plan.dependencies = await resolver.resolve_latest_versions(plan.dependencies)

        previous_feedback = (
            [f.content for f in context.unresolved_feedback("planning")] if context else []
        )

        return PlanningSession(
            id=_session_id(),
            timestamp=datetime.now(),
            model=self._model,
            input=PlanningInput(
                requirements=requirements,
                constraints=constraints,
                previous_feedback=previous_feedback,
            ),
            output=output,
        )


def parse_plan_response(response: str) -> dict:
    """Recover the plan object: direct parse, then fenced block, then widest brace span."""
    try:
        return extract_object(response)
    except ValueError as e:
        logger.error(f"Unparseable generator response ({len(response)} chars)")
        raise PlanParseFailed(response) from e


def _format_previous_attempts(context: PlanningContext) -> str:
    planning_feedback = ", ".join(f.content for f in context.unresolved_feedback("planning"))
    attempts = []
    for i, session in enumerate(context.planning_history, 1):
        plan = session.output.plan
        attempts.append(
            f"Attempt {i} ({session.model}):\n"
            f"Overview: {plan.overview}\n"
            f"Steps: {len(plan.implementation_steps)}\n"
            f"Issues from feedback: {planning_feedback or 'none'}"
        )
    return "\n\n".join(attempts)


def build_planning_prompt(
    requirements: str, constraints: str = "", context: PlanningContext | None = None
) -> str:
    parts = [
        "Create a comprehensive software implementation plan for the following project.",
        f"PROJECT REQUIREMENTS:\n{requirements}",
    ]
    if constraints:
        parts.append(f"CONSTRAINTS:\n{constraints}")

    if context is not None and context.planning_history:
        parts.append(f"PREVIOUS PLANNING ATTEMPTS:\n{_format_previous_attempts(context)}")
        parts.append(
            "Build on the previous attempts: keep what worked and address the feedback "
            "instead of repeating the same plan."
        )

    parts.append(f"Please provide a detailed implementation plan in the following JSON format:\n\n{PLAN_SCHEMA}")
    parts.append("IMPORTANT: Respond ONLY with valid JSON. No markdown formatting.")
    return "\n\n".join(parts)
