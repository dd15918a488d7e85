"""Agent commands - inspect configured agents."""

import typer
from rich.console import Console
from rich.table import Table

from conductor.infrastructure.persistence.file_agent_registry import FileAgentRegistry

app = typer.Typer(help="Agent management")
console = Console()


@app.command("list")
def list_agents(ctx: typer.Context):
    """List configured permanent agents."""
    config_dir = (ctx.obj or {}).get("config_dir", "configs")
    agents = FileAgentRegistry(config_dir).list_agents()
    if not agents:
        console.print(f"[yellow]No agents found in {config_dir}/agents[/yellow]")
        return

    table = Table(title="Agents")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Primary")
    table.add_column("Delegates")
    table.add_column("Tools")
    for agent in agents:
        tools = "all" if agent.tool_allowlist is None else ", ".join(agent.tool_allowlist) or "none"
        table.add_row(
            agent.id,
            agent.name,
            "yes" if agent.is_primary else "no",
            "yes" if agent.delegates else "no",
            tools,
        )
    console.print(table)


@app.command("show")
def show_agent(ctx: typer.Context, agent_id: str = typer.Argument(..., help="Agent id")):
    """Show one agent definition."""
    config_dir = (ctx.obj or {}).get("config_dir", "configs")
    agent = FileAgentRegistry(config_dir).get_agent(agent_id)
    if agent is None:
        console.print(f"[red]Agent not found: {agent_id}[/red]")
        raise typer.Exit(code=1)
    for key, value in agent.to_dict().items():
        console.print(f"[bold]{key}[/bold]: {value}")
