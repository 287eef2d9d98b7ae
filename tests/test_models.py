"""Tests for gemplanner.planning.models."""

from __future__ import annotations

import json

import pytest

from gemplanner.errors import PlanNotFound
from gemplanner.planning.models import (
    Dependency,
    DetailedPlan,
    ExecutionSession,
    ImplementationStep,
    LibrarySpec,
    PlanningContext,
    PlanningOutput,
)


class TestDetailedPlanFromDict:
    def test_missing_fields_default_to_empty(self):
        plan = DetailedPlan.from_dict({"overview": "x"})
        assert plan.overview == "x"
        assert plan.implementation_steps == []
        assert plan.architecture == []
        assert plan.dependencies == []
        assert plan.file_structure == {}
        assert plan.testing_strategy == ""

    def test_mistyped_fields_are_ignored(self):
        plan = DetailedPlan.from_dict({
            "overview": "x",
            "implementation_steps": "do everything",
            "file_structure": ["src"],
            "dependencies": [{"name": "react"}, "vue", {"name": "  "}],
        })
        assert plan.implementation_steps == []
        assert plan.file_structure == {}
        assert [d.name for d in plan.dependencies] == ["react"]

    def test_optional_sections(self):
        plan = DetailedPlan.from_dict({
            "data_models": [{"name": "User", "fields": [{"name": "email", "type": "string", "required": True}]}],
            "routes": [{"path": "/api/users", "method": "GET", "params": [{"name": "page", "type": "int"}]}],
            "components": [{"name": "UserList", "responsibilities": ["render"]}],
            "content_types": [{"name": "Post", "fields": []}],
        })
        assert plan.data_models[0].fields[0].required is True
        assert plan.routes[0].params[0].name == "page"
        assert plan.components[0].category is None
        assert plan.content_types[0].name == "Post"


class TestImplementationStep:
    def test_single_sentence_validation_criteria(self):
        step = ImplementationStep.from_dict({"id": "s1", "validation_criteria": "tests pass"})
        assert step.validation_criteria == ["tests pass"]

    def test_extra_fields(self):
        step = ImplementationStep.from_dict({
            "id": "s1",
            "estimated_time": "2 hours",
            "potential_issues": ["flaky network"],
            "dependencies": ["s0"],
        })
        assert step.estimated_time == "2 hours"
        assert step.potential_issues == ["flaky network"]
        assert step.dependencies == ["s0"]


class TestDependency:
    def test_to_dict_omits_missing_type(self):
        assert Dependency(name="react", version="^18.0.0").to_dict() == {
            "name": "react", "version": "^18.0.0", "purpose": "",
        }

    def test_to_dict_keeps_type(self):
        assert Dependency(name="vitest", type="dev").to_dict()["type"] == "dev"


class TestPlanningOutput:
    def test_from_generator_default_reasoning(self):
        output = PlanningOutput.from_generator({"overview": "x"}, "fallback")
        assert output.reasoning == "fallback"
        assert output.alternatives == []
        assert output.risks == []

    def test_from_generator_reads_flat_fields(self):
        output = PlanningOutput.from_generator({
            "overview": "x",
            "reasoning": "simple",
            "alternatives": ["cli"],
            "risks": [{"risk": "scope creep", "probability": "high"}],
        })
        assert output.plan.overview == "x"
        assert output.reasoning == "simple"
        assert output.risks[0].probability == "high"


class TestExecutionSession:
    def test_reads_legacy_output_key(self):
        session = ExecutionSession.from_dict({
            "id": "e1", "plan_id": "p1", "claude_code_output": "done", "success_rate": "0.5",
        })
        assert session.output == "done"
        assert session.success_rate == 0.5


class TestPlanningContext:
    def test_round_trip(self, make_session, make_execution, make_feedback):
        context = PlanningContext(
            id="demo-1",
            project_name="Demo",
            requirements="Build a todo app",
            constraints="no servers",
            current_phase="reviewing",
            planning_history=[make_session()],
            execution_history=[make_execution(0.5)],
            feedback=[make_feedback("too vague")],
        )
        wire = json.loads(json.dumps(context.to_dict()))
        assert wire["projectName"] == "Demo"
        assert wire["currentPhase"] == "reviewing"
        assert isinstance(wire["createdAt"], str)

        restored = PlanningContext.from_dict(wire)
        assert restored == context

    def test_constraints_omitted_when_absent(self):
        context = PlanningContext(id="demo-1", project_name="Demo", requirements="r")
        assert "constraints" not in context.to_dict()

    def test_unresolved_feedback_by_phase(self, make_feedback):
        context = PlanningContext(
            id="demo-1", project_name="Demo", requirements="r",
            feedback=[
                make_feedback("a", phase="planning", item_id="1"),
                make_feedback("b", phase="execution", item_id="2"),
                make_feedback("c", phase="planning", resolved=True, item_id="3"),
            ],
        )
        assert [f.content for f in context.unresolved_feedback()] == ["a", "b"]
        assert [f.content for f in context.unresolved_feedback("planning")] == ["a"]

    def test_planning_session_selection(self, make_session):
        context = PlanningContext(
            id="demo-1", project_name="Demo", requirements="r",
            planning_history=[make_session("p0", "first"), make_session("p1", "second")],
        )
        assert context.planning_session().id == "p1"
        assert context.planning_session(0).id == "p0"
        with pytest.raises(PlanNotFound):
            context.planning_session(2)
        with pytest.raises(PlanNotFound):
            context.planning_session(-1)

    def test_planning_session_empty_history(self):
        context = PlanningContext(id="demo-1", project_name="Demo", requirements="r")
        with pytest.raises(PlanNotFound, match="no planning sessions"):
            context.planning_session()


class TestLibrarySpec:
    def test_name_only(self):
        spec = LibrarySpec.from_dict({"name": " react "})
        assert spec == LibrarySpec(name="react")

    def test_blank_name_rejected(self):
        assert LibrarySpec.from_dict({"name": ""}) is None
        assert LibrarySpec.from_dict({"topic": "auth"}) is None

    def test_tokens_must_be_numeric(self):
        assert LibrarySpec.from_dict({"name": "a", "tokens": "5000"}).tokens is None
        assert LibrarySpec.from_dict({"name": "a", "tokens": True}).tokens is None
        assert LibrarySpec.from_dict({"name": "a", "tokens": 5000.0}).tokens == 5000
