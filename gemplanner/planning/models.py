"""Core data models for gemplanner.

Every model round-trips through ``to_dict()`` / ``from_dict()``. ``from_dict``
is tolerant: the generator follows the plan schema only approximately, so
each field falls back to its empty default when missing or mistyped rather
than rejecting the whole payload.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from gemplanner.errors import PlanNotFound

COMPLETION_THRESHOLD = 0.8


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_str(v) for v in value if isinstance(v, (str, int, float))]


def _dict_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now()


def _optional_str(value: Any) -> str | None:
    text = _str(value)
    return text or None


@dataclass
class ArchitecturalDecision:
    component: str = ""
    purpose: str = ""
    technologies: list[str] = field(default_factory=list)
    interfaces: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ArchitecturalDecision:
        return cls(
            component=_str(data.get("component")),
            purpose=_str(data.get("purpose")),
            technologies=_str_list(data.get("technologies")),
            interfaces=_str_list(data.get("interfaces")),
            dependencies=_str_list(data.get("dependencies")),
        )


@dataclass
class ImplementationStep:
    id: str = ""
    phase: str = ""  # setup|foundation|core|features|integration|testing|deployment, free text tolerated
    description: str = ""
    files_to_create: list[str] = field(default_factory=list)
    files_to_modify: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)  # other step ids
    estimated_complexity: str = ""  # "low" | "medium" | "high"
    validation_criteria: list[str] = field(default_factory=list)
    estimated_time: str = ""
    potential_issues: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ImplementationStep:
        criteria = data.get("validation_criteria")
        return cls(
            id=_str(data.get("id")),
            phase=_str(data.get("phase")),
            description=_str(data.get("description")),
            files_to_create=_str_list(data.get("files_to_create")),
            files_to_modify=_str_list(data.get("files_to_modify")),
            dependencies=_str_list(data.get("dependencies")),
            estimated_complexity=_str(data.get("estimated_complexity")),
            # Some generators answer with a single sentence instead of a list
            validation_criteria=[criteria] if isinstance(criteria, str) and criteria else _str_list(criteria),
            estimated_time=_str(data.get("estimated_time")),
            potential_issues=_str_list(data.get("potential_issues")),
        )


@dataclass
class Dependency:
    name: str = ""
    version: str = ""
    purpose: str = ""
    type: str | None = None  # "runtime" | "dev" | "peer"

    @classmethod
    def from_dict(cls, data: dict) -> Dependency:
        return cls(
            name=_str(data.get("name")).strip(),
            version=_str(data.get("version")),
            purpose=_str(data.get("purpose")),
            type=_optional_str(data.get("type")),
        )

    def to_dict(self) -> dict:
        d = {"name": self.name, "version": self.version, "purpose": self.purpose}
        if self.type:
            d["type"] = self.type
        return d


@dataclass
class Risk:
    risk: str = ""
    probability: str = ""  # "low" | "medium" | "high"
    impact: str = ""
    mitigation: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Risk:
        return cls(
            risk=_str(data.get("risk")),
            probability=_str(data.get("probability")),
            impact=_str(data.get("impact")),
            mitigation=_str(data.get("mitigation")),
        )


@dataclass
class DataModelField:
    name: str = ""
    type: str = ""
    required: bool | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> DataModelField:
        required = data.get("required")
        return cls(
            name=_str(data.get("name")),
            type=_str(data.get("type")),
            required=required if isinstance(required, bool) else None,
            description=_optional_str(data.get("description")),
        )


@dataclass
class DataModel:
    name: str = ""
    fields: list[DataModelField] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> DataModel:
        return cls(
            name=_str(data.get("name")),
            fields=[DataModelField.from_dict(f) for f in _dict_list(data.get("fields"))],
        )


@dataclass
class RouteParam:
    name: str = ""
    type: str = ""
    required: bool | None = None

    @classmethod
    def from_dict(cls, data: dict) -> RouteParam:
        required = data.get("required")
        return cls(
            name=_str(data.get("name")),
            type=_str(data.get("type")),
            required=required if isinstance(required, bool) else None,
        )


@dataclass
class RouteSpec:
    path: str = ""
    method: str | None = None
    description: str | None = None
    params: list[RouteParam] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> RouteSpec:
        return cls(
            path=_str(data.get("path")),
            method=_optional_str(data.get("method")),
            description=_optional_str(data.get("description")),
            params=[RouteParam.from_dict(p) for p in _dict_list(data.get("params"))],
        )


@dataclass
class ComponentSpec:
    name: str = ""
    category: str | None = None
    responsibilities: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ComponentSpec:
        return cls(
            name=_str(data.get("name")),
            category=_optional_str(data.get("category")),
            responsibilities=_str_list(data.get("responsibilities")),
        )


@dataclass
class ContentTypeSpec:
    name: str = ""
    fields: list[DataModelField] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ContentTypeSpec:
        return cls(
            name=_str(data.get("name")),
            fields=[DataModelField.from_dict(f) for f in _dict_list(data.get("fields"))],
        )


@dataclass
class DetailedPlan:
    overview: str = ""
    architecture: list[ArchitecturalDecision] = field(default_factory=list)
    implementation_steps: list[ImplementationStep] = field(default_factory=list)
    file_structure: dict = field(default_factory=dict)  # nested mapping, display only
    dependencies: list[Dependency] = field(default_factory=list)
    testing_strategy: str = ""
    deployment_notes: str = ""
    data_models: list[DataModel] = field(default_factory=list)
    routes: list[RouteSpec] = field(default_factory=list)
    components: list[ComponentSpec] = field(default_factory=list)
    content_types: list[ContentTypeSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> DetailedPlan:
        file_structure = data.get("file_structure")
        return cls(
            overview=_str(data.get("overview")),
            architecture=[ArchitecturalDecision.from_dict(a) for a in _dict_list(data.get("architecture"))],
            implementation_steps=[
                ImplementationStep.from_dict(s) for s in _dict_list(data.get("implementation_steps"))
            ],
            file_structure=file_structure if isinstance(file_structure, dict) else {},
            dependencies=[
                d for d in (Dependency.from_dict(x) for x in _dict_list(data.get("dependencies"))) if d.name
            ],
            testing_strategy=_str(data.get("testing_strategy")),
            deployment_notes=_str(data.get("deployment_notes")),
            data_models=[DataModel.from_dict(m) for m in _dict_list(data.get("data_models"))],
            routes=[RouteSpec.from_dict(r) for r in _dict_list(data.get("routes"))],
            components=[ComponentSpec.from_dict(c) for c in _dict_list(data.get("components"))],
            content_types=[ContentTypeSpec.from_dict(c) for c in _dict_list(data.get("content_types"))],
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        return d


@dataclass
class PlanningInput:
    """Snapshot of what the prompt was built from, captured at generation time."""

    requirements: str = ""
    constraints: str = ""
    previous_feedback: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> PlanningInput:
        return cls(
            requirements=_str(data.get("requirements")),
            constraints=_str(data.get("constraints")),
            previous_feedback=_str_list(data.get("previousFeedback", data.get("previous_feedback"))),
        )

    def to_dict(self) -> dict:
        return {
            "requirements": self.requirements,
            "constraints": self.constraints,
            "previousFeedback": list(self.previous_feedback),
        }


@dataclass
class PlanningOutput:
    plan: DetailedPlan = field(default_factory=DetailedPlan)
    reasoning: str = ""
    alternatives: list[str] = field(default_factory=list)
    risks: list[Risk] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> PlanningOutput:
        plan = data.get("plan")
        return cls(
            plan=DetailedPlan.from_dict(plan if isinstance(plan, dict) else {}),
            reasoning=_str(data.get("reasoning")),
            alternatives=_str_list(data.get("alternatives")),
            risks=[Risk.from_dict(r) for r in _dict_list(data.get("risks"))],
        )

    @classmethod
    def from_generator(cls, data: dict, default_reasoning: str = "") -> PlanningOutput:
        """Build from the flat object the generator returns (plan fields beside reasoning/risks)."""
        return cls(
            plan=DetailedPlan.from_dict(data),
            reasoning=_str(data.get("reasoning")) or default_reasoning,
            alternatives=_str_list(data.get("alternatives")),
            risks=[Risk.from_dict(r) for r in _dict_list(data.get("risks"))],
        )

    def to_dict(self) -> dict:
        return {
            "plan": self.plan.to_dict(),
            "reasoning": self.reasoning,
            "alternatives": list(self.alternatives),
            "risks": [asdict(r) for r in self.risks],
        }


@dataclass(frozen=True)
class PlanningSession:
    id: str
    timestamp: datetime
    model: str
    input: PlanningInput
    output: PlanningOutput
    quality_score: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> PlanningSession:
        raw_input = data.get("input")
        raw_output = data.get("output")
        score = data.get("quality_score")
        return cls(
            id=_str(data.get("id")),
            timestamp=_datetime(data.get("timestamp")),
            model=_str(data.get("model")),
            input=PlanningInput.from_dict(raw_input if isinstance(raw_input, dict) else {}),
            output=PlanningOutput.from_dict(raw_output if isinstance(raw_output, dict) else {}),
            quality_score=_float(score) if score is not None else None,
        )

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "model": self.model,
            "input": self.input.to_dict(),
            "output": self.output.to_dict(),
        }
        if self.quality_score is not None:
            d["quality_score"] = self.quality_score
        return d


@dataclass
class Issue:
    description: str = ""
    severity: str = ""  # "low" | "medium" | "high" | "critical"
    file: str | None = None
    line: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Issue:
        line = data.get("line")
        return cls(
            description=_str(data.get("description")),
            severity=_str(data.get("severity")),
            file=_optional_str(data.get("file")),
            line=line if isinstance(line, int) and not isinstance(line, bool) else None,
        )


@dataclass
class ExecutionSession:
    id: str
    timestamp: datetime
    plan_id: str
    output: str = ""  # raw transcript of the executing agent
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    success_rate: float = 0.0  # 0.0 - 1.0
    completion_status: str = ""  # "complete" | "partial" | "failed"

    @classmethod
    def from_dict(cls, data: dict) -> ExecutionSession:
        return cls(
            id=_str(data.get("id")),
            timestamp=_datetime(data.get("timestamp")),
            plan_id=_str(data.get("plan_id")),
            output=_str(data.get("output", data.get("claude_code_output"))),
            files_created=_str_list(data.get("files_created")),
            files_modified=_str_list(data.get("files_modified")),
            issues=[Issue.from_dict(i) for i in _dict_list(data.get("issues"))],
            success_rate=_float(data.get("success_rate")),
            completion_status=_str(data.get("completion_status")),
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


@dataclass
class FeedbackItem:
    id: str
    source: str  # "claude" | "planner" | "user" | "system"
    type: str  # "improvement" | "issue" | "suggestion" | "validation"
    phase: str  # "planning" | "execution"
    content: str
    priority: str = "medium"  # "low" | "medium" | "high" | "critical"
    resolved: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_dict(cls, data: dict) -> FeedbackItem:
        return cls(
            id=_str(data.get("id")),
            source=_str(data.get("source")),
            type=_str(data.get("type")),
            phase=_str(data.get("phase")),
            content=_str(data.get("content")),
            priority=_str(data.get("priority"), "medium"),
            resolved=_bool(data.get("resolved")),
            created_at=_datetime(data.get("created_at")),
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d


@dataclass
class CodeArtifact:
    id: str
    name: str
    content: str = ""
    type: str = "file"  # "file" | "directory" | "config"
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_dict(cls, data: dict) -> CodeArtifact:
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            content=_str(data.get("content")),
            type=_str(data.get("type"), "file"),
            created_at=_datetime(data.get("created_at")),
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d


@dataclass
class PlanningContext:
    id: str
    project_name: str
    requirements: str
    constraints: str | None = None
    current_phase: str = "planning"
    planning_history: list[PlanningSession] = field(default_factory=list)
    execution_history: list[ExecutionSession] = field(default_factory=list)
    feedback: list[FeedbackItem] = field(default_factory=list)
    artifacts: list[CodeArtifact] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def unresolved_feedback(self, phase: str | None = None) -> list[FeedbackItem]:
        return [
            f for f in self.feedback
            if not f.resolved and (phase is None or f.phase == phase)
        ]

    def planning_session(self, index: int | None = None) -> PlanningSession:
        """Return the session at zero-based ``index``, or the latest when index is None."""
        if not self.planning_history:
            raise PlanNotFound(self.id, None)
        if index is None:
            return self.planning_history[-1]
        if not 0 <= index < len(self.planning_history):
            raise PlanNotFound(self.id, index)
        return self.planning_history[index]

    @classmethod
    def from_dict(cls, data: dict) -> PlanningContext:
        constraints = data.get("constraints")
        return cls(
            id=_str(data.get("id")),
            project_name=_str(data.get("projectName")),
            requirements=_str(data.get("requirements")),
            constraints=constraints if isinstance(constraints, str) else None,
            current_phase=_str(data.get("currentPhase"), "planning"),
            planning_history=[PlanningSession.from_dict(p) for p in _dict_list(data.get("planningHistory"))],
            execution_history=[ExecutionSession.from_dict(e) for e in _dict_list(data.get("executionHistory"))],
            feedback=[FeedbackItem.from_dict(f) for f in _dict_list(data.get("feedback"))],
            artifacts=[CodeArtifact.from_dict(a) for a in _dict_list(data.get("artifacts"))],
            created_at=_datetime(data.get("createdAt")),
            updated_at=_datetime(data.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "projectName": self.project_name,
            "requirements": self.requirements,
            "currentPhase": self.current_phase,
            "planningHistory": [p.to_dict() for p in self.planning_history],
            "executionHistory": [e.to_dict() for e in self.execution_history],
            "feedback": [f.to_dict() for f in self.feedback],
            "artifacts": [a.to_dict() for a in self.artifacts],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.constraints is not None:
            d["constraints"] = self.constraints
        return d


@dataclass
class LibrarySpec:
    """A library to pull reference docs for. Transient, never persisted."""

    name: str
    topic: str | None = None
    tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> LibrarySpec | None:
        """Coerce one loosely-typed entry; returns None when it has no usable name."""
        name = _str(data.get("name")).strip()
        if not name:
            return None
        tokens = data.get("tokens")
        if isinstance(tokens, bool) or not isinstance(tokens, (int, float)):
            tokens = None
        return cls(
            name=name,
            topic=_optional_str(data.get("topic")),
            tokens=int(tokens) if tokens else None,
        )
