"""Renders a DetailedPlan as a plain-text checklist.

Sections appear in a fixed order and are omitted entirely when empty; each
section is followed by a blank line.
"""

from __future__ import annotations

from gemplanner.planning.models import DetailedPlan, ImplementationStep


def _render_list(items: list[str], indent: int = 0) -> str:
    pad = "  " * indent
    return "\n".join(f"{pad}- {item}" for item in items)


def _file_tree(structure: object, prefix: str = "") -> list[str]:
    lines: list[str] = []
    if not isinstance(structure, dict):
        return lines
    for key, child in structure.items():
        full = f"{prefix.rstrip('/')}/{key}" if prefix else str(key)
        lines.append(full)
        if isinstance(child, dict):
            lines.extend(_file_tree(child, full))
    return lines


def _group_by_phase(steps: list[ImplementationStep]) -> dict[str, list[ImplementationStep]]:
    grouped: dict[str, list[ImplementationStep]] = {}
    for step in steps:
        grouped.setdefault(step.phase or "unspecified", []).append(step)
    return grouped


def render_plan_checklist(plan: DetailedPlan) -> str:
    out: list[str] = []

    if plan.overview:
        out.append(f"Overview: {plan.overview}")
        out.append("")

    if plan.dependencies:
        out.append("Dependencies:")
        out.append(_render_list(
            [f"{d.name}{'@' + d.version if d.version else ''} — {d.purpose}" for d in plan.dependencies],
            1,
        ))
        out.append("")

    files = _file_tree(plan.file_structure)
    if files:
        out.append("File Structure:")
        out.append(_render_list(files, 1))
        out.append("")

    if plan.data_models:
        out.append("Data Models:")
        out.append(_render_list(
            [f"{m.name} ({', '.join(f'{f.name}:{f.type}' for f in m.fields)})" for m in plan.data_models],
            1,
        ))
        out.append("")

    if plan.routes:
        out.append("Routes:")
        out.append(_render_list(
            [
                f"{r.method or 'ANY'} {r.path}{' — ' + r.description if r.description else ''}"
                for r in plan.routes
            ],
            1,
        ))
        out.append("")

    if plan.components:
        out.append("Components:")
        out.append(_render_list(
            [f"{c.name}{f' [{c.category}]' if c.category else ''}" for c in plan.components],
            1,
        ))
        out.append("")

    if plan.implementation_steps:
        out.append("Implementation Steps:")
        for phase, steps in _group_by_phase(plan.implementation_steps).items():
            out.append(f"  {phase}:")
            for step in steps:
                out.append(f"  - [ ] {step.id} {step.description}")
                if step.files_to_create:
                    out.append(_render_list([f"create {f}" for f in step.files_to_create], 2))
                if step.files_to_modify:
                    out.append(_render_list([f"modify {f}" for f in step.files_to_modify], 2))
        out.append("")

    if plan.testing_strategy:
        out.append("Testing Strategy:")
        out.append(f"  - {plan.testing_strategy}")
        out.append("")

    if plan.deployment_notes:
        out.append("Deployment Notes:")
        out.append(f"  - {plan.deployment_notes}")
        out.append("")

    return "\n".join(out)
