"""CLI entry point for gemplanner."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

import typer
from rich import print as rprint
from rich.markup import escape

from gemplanner.activity import entry_context_id, read_activity_log, resolve_log_path
from gemplanner.config import Config
from gemplanner.errors import PlanNotFound
from gemplanner.generator.invoker import GeminiInvoker
from gemplanner.planning.checklist import render_plan_checklist
from gemplanner.planning.models import PlanningContext
from gemplanner.storage.context_store import ContextStore

app = typer.Typer(help="Gemini-backed implementation planning for AI coding agents.")


def _configure_logging(level: str) -> None:
    # stdout carries the MCP stream; logs go to stderr
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_context(context_id: str) -> PlanningContext:
    config = Config.load()
    store = ContextStore(config.contexts_dir)
    context = asyncio.run(store.get_context(context_id))
    if context is None:
        rprint(f"[red]Context {escape(context_id)} not found in {config.contexts_dir}[/red]")
        raise typer.Exit(1)
    return context


@app.command()
def serve() -> None:
    """Start the MCP server (called by Claude Code / Cursor automatically)."""
    config = Config.load()
    issues = config.validate()
    if issues:
        for issue in issues:
            typer.echo(f"Config error: {issue}", err=True)
        raise typer.Exit(1)

    _configure_logging(config.log_level)
    from gemplanner.mcp_server import main as mcp_main
    asyncio.run(mcp_main(config))


@app.command("test-connection")
def test_connection() -> None:
    """Send a canary prompt through the Gemini CLI and check the reply."""
    config = Config.load()
    _configure_logging(config.log_level)
    invoker = GeminiInvoker.from_config(config)

    rprint(f"Testing Gemini CLI connection ({config.gemini_cli_path}, model={config.gemini_model or 'default'})...")
    if asyncio.run(invoker.test_connection()):
        rprint("[green]Connection successful![/green]")
    else:
        rprint("[red]Connection failed[/red]")
        raise typer.Exit(1)


@app.command()
def view(context_id: str = typer.Argument(help="Project context ID")) -> None:
    """Show a project context: phase, planning and execution history, open feedback."""
    context = _load_context(context_id)

    rprint("[bold]Project Context Overview[/bold]")
    rprint(f"  ID:      {escape(context.id)}")
    rprint(f"  Project: {escape(context.project_name)}")
    rprint(f"  Phase:   {context.current_phase}")
    rprint(f"  Created: {context.created_at.isoformat()}")
    rprint(f"  Updated: {context.updated_at.isoformat()}")

    rprint("\n[bold]Planning History:[/bold]")
    for i, session in enumerate(context.planning_history, 1):
        rprint(f"  {i}. {session.timestamp.isoformat()} - {escape(session.model)}")
        rprint(f"     Steps: {len(session.output.plan.implementation_steps)}")

    rprint("\n[bold]Execution History:[/bold]")
    for i, execution in enumerate(context.execution_history, 1):
        rprint(f"  {i}. {execution.timestamp.isoformat()} - Success: {execution.success_rate:.0%}")
        rprint(
            f"     Files: {len(execution.files_created)} created, "
            f"{len(execution.files_modified)} modified"
        )
        rprint(f"     Issues: {len(execution.issues)}")

    unresolved = context.unresolved_feedback()
    rprint("\n[bold]Feedback:[/bold]")
    rprint(f"  Total: {len(context.feedback)}, Unresolved: {len(unresolved)}")
    for item in unresolved:
        rprint(f"  - \\[{item.priority}] {escape(item.content)}")


@app.command()
def checklist(
    context_id: str = typer.Argument(help="Project context ID"),
    index: Optional[int] = typer.Option(None, "--index", "-i", help="Zero-based plan index (default: latest)"),
) -> None:
    """Print a stored plan as a checklist."""
    context = _load_context(context_id)
    try:
        session = context.planning_session(index)
    except PlanNotFound as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    typer.echo(render_plan_checklist(session.output.plan))


@app.command()
def contexts() -> None:
    """List stored project contexts."""
    config = Config.load()
    store = ContextStore(config.contexts_dir)
    ids = store.list_contexts()
    if not ids:
        rprint(f"[yellow]No contexts in {config.contexts_dir}[/yellow]")
        return
    for context_id in ids:
        typer.echo(context_id)


@app.command()
def activity(
    limit: int = typer.Option(20, help="Number of entries to show"),
    tool: Optional[str] = typer.Option(None, help="Only show calls to this tool"),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Only show calls touching this context"),
) -> None:
    """Show recent MCP tool calls."""
    config = Config.load()
    entries = read_activity_log(
        limit=limit, tool_name=tool, log_path=resolve_log_path(config.contexts_dir), context_id=context
    )
    if not entries:
        rprint("[yellow]No tool calls logged yet.[/yellow]")
        return

    for entry in entries:
        status = "[red]error[/red]" if entry.get("error") else "[green]ok[/green]"
        context_id = entry_context_id(entry)
        rprint(
            f"{entry.get('timestamp', '')}  {escape(entry.get('tool_name', ''))}  "
            f"{status}  {entry.get('duration_ms', 0)}ms"
            + (f"  {escape(context_id)}" if context_id else "")
        )
        if entry.get("error"):
            rprint(f"    {escape(str(entry['error']))}")


if __name__ == "__main__":
    app()
