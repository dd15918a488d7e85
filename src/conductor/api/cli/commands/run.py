"""Run command - execute a task as a workflow and follow its progress."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm

from conductor.application.factory import ConductorFactory
from conductor.core.domain.errors import ConductorError
from conductor.core.domain.events import EventType, StreamEvent
from conductor.core.domain.models import ConfirmationRequest, Report
from conductor.infrastructure.logging import setup_logging

app = typer.Typer(help="Execute tasks")
console = Console()


def _print_event(workflow_id: str, event: StreamEvent, show_tokens: bool) -> None:
    data = event.data
    if event.type == EventType.TOKEN and show_tokens:
        console.print(data.get("content", ""), end="", highlight=False)
    elif event.type == EventType.REASONING:
        console.print(f"[dim]* {data.get('content', '')}[/dim]")
    elif event.type == EventType.TOOL_START:
        console.print(f"[cyan]> {data.get('tool')}[/cyan] [dim]{data.get('args')}[/dim]")
    elif event.type == EventType.TOOL_END:
        mark = "[green]ok[/green]" if data.get("success") else f"[red]failed[/red] {data.get('error')}"
        console.print(f"[cyan]< {data.get('tool')}[/cyan] {mark} [dim]({data.get('duration_ms')} ms)[/dim]")
    elif event.type == EventType.SUB_AGENT_START:
        console.print(f"[magenta]+ sub-agent {data.get('name')}[/magenta]: {data.get('task')}")
    elif event.type in (EventType.SUB_AGENT_COMPLETE, EventType.SUB_AGENT_ERROR):
        status = data.get("status", "error")
        console.print(f"[magenta]- sub-agent {data.get('sub_agent_id')}[/magenta] {status}")
    elif event.type == EventType.CONFIRMATION_RESOLVED:
        verdict = "[green]approved[/green]" if data.get("approved") else f"[red]{data.get('reason')}[/red]"
        console.print(f"[yellow]? confirmation[/yellow] {verdict}")
    elif event.type == EventType.ERROR:
        console.print(f"[red]! {data.get('message')}[/red]")


class ConsoleConfirmation:
    """Asks on the terminal before a delegation runs."""

    async def request(self, request: ConfirmationRequest) -> bool:
        preview = request.details.get("prompt_preview")
        body = request.message if not preview else f"{request.message}\n\n{preview}"
        console.print(
            Panel(body, title=f"[yellow]Confirm {request.operation}[/yellow]", subtitle=f"risk: {request.risk_level.value}")
        )
        return await asyncio.to_thread(Confirm.ask, "Allow this operation?", console=console, default=False)


async def _execute(
    task: str,
    agent: str,
    profile: str,
    config_dir: str,
    show_tokens: bool,
) -> Report:
    runtime = ConductorFactory(config_dir=config_dir).create_runtime(profile=profile)
    runtime.sub_agents.confirmations = ConsoleConfirmation()
    runtime.bus.subscribe(lambda wid, event: _print_event(wid, event, show_tokens))
    workflow_id = await runtime.workflows.start(agent, task)
    console.print(f"[dim]workflow {workflow_id} started[/dim]")
    try:
        return await runtime.workflows.wait(workflow_id)
    finally:
        await runtime.workflows.shutdown()


@app.command("task")
def run_task(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Task description"),
    agent: str = typer.Option("assistant", "--agent", "-a", help="Agent id"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile (overrides global --profile)"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print model tokens as they arrive"),
    debug: Optional[bool] = typer.Option(None, "--debug", help="Enable debug output (overrides global --debug)"),
):
    """Execute a task with an agent.

    Examples:
        conductor run task "What is 17 * 23?"

        conductor run task "Research and summarise X" --agent orchestrator --stream
    """
    global_opts = ctx.obj or {}
    profile = profile or global_opts.get("profile", "dev")
    debug = debug if debug is not None else global_opts.get("debug", False)
    config_dir = global_opts.get("config_dir", "configs")
    setup_logging(debug)

    console.print(Panel(task, title=f"[bold]{agent}[/bold]", subtitle=f"profile: {profile}"))

    try:
        report = asyncio.run(_execute(task, agent, profile, config_dir, stream))
    except (ConductorError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if stream:
        console.print()
    console.print(Markdown(report.content))
    if not report.succeeded:
        console.print(f"[red]Task {report.status.value}[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Task completed[/green]")
