#!/usr/bin/env python3
"""Agent Pipeline CLI.

Command-line interface for discovering agents, planning workflows, running
them and serving the orchestrator over HTTP.
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import PipelineSettings, load_settings_file
from .core.errors import CoverageError, PipelineAbortError
from .core.orchestrator import WorkflowOrchestrator
from .schemas import ExecutionLogEntry, ExecutionMode, WorkflowStep


# Initialize CLI and console
app = typer.Typer(help="Capability-matched orchestration of remote agents")
console = Console()


class PipelineCLI:
    """CLI state shared by all commands."""

    def __init__(self):
        """Initialize CLI with default components."""
        self.settings: PipelineSettings | None = None
        self.orchestrator: WorkflowOrchestrator | None = None

    def load_settings(self, config_path: Path | None) -> PipelineSettings:
        self.settings = load_settings_file(config_path)
        logging.basicConfig(
            level=self.settings.log_level,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
            force=True,
        )
        return self.settings

    def initialize_orchestrator(self) -> WorkflowOrchestrator:
        """Initialize the orchestrator if not already done."""
        if self.orchestrator is None:
            self.orchestrator = WorkflowOrchestrator(
                settings=self.settings or load_settings_file(None)
            )
        return self.orchestrator

    async def cleanup(self):
        """Cleanup resources."""
        if self.orchestrator:
            await self.orchestrator.close()
            self.orchestrator = None


# Global CLI instance
cli_instance = PipelineCLI()


def render_logs(logs: list[ExecutionLogEntry]) -> Table:
    """Render an execution log as a table."""
    table = Table(title="Execution Log", show_header=True, header_style="bold magenta")
    table.add_column("Step", style="cyan")
    table.add_column("Agent", style="yellow")
    table.add_column("Result")
    table.add_column("Attempts", justify="right")
    table.add_column("Duration (ms)", justify="right")
    table.add_column("Error", style="red")

    for entry in logs:
        table.add_row(
            entry.step_id,
            entry.agent_id,
            "[green]OK[/green]" if entry.success else "[red]FAILED[/red]",
            str(entry.attempts),
            f"{entry.duration_ms:.0f}",
            entry.error or "",
        )
    return table


@app.callback()
def main(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
):
    """Load configuration before running any command."""
    cli_instance.load_settings(config)


@app.command()
def discover(
    source: list[str] | None = typer.Option(
        None, "--source", "-s", help="Registry URL or file (repeatable)"
    ),
):
    """Load the registry, probe agents and list their capabilities."""

    async def _discover():
        try:
            orchestrator = cli_instance.initialize_orchestrator()
            with console.status("[bold green]Discovering agents..."):
                agents = await orchestrator.discover(source or None)

            table = Table(
                title="Discovered Agents", show_header=True, header_style="bold magenta"
            )
            table.add_column("Id", style="cyan")
            table.add_column("Name")
            table.add_column("Address", style="yellow")
            table.add_column("Capabilities", style="green")

            for agent in agents:
                table.add_row(
                    agent.id,
                    agent.display_name,
                    agent.address,
                    ", ".join(sorted(agent.capabilities)) or "-",
                )
            console.print(table)

        except CoverageError as e:
            console.print(f"[bold red]Discovery failed: {e}[/bold red]")
            raise typer.Exit(1) from e
        finally:
            await cli_instance.cleanup()

    asyncio.run(_discover())


@app.command()
def plan(goal: str = typer.Argument(..., help="Free-text description of the goal")):
    """Build a workflow plan for a goal from the discovered agents."""

    async def _plan():
        try:
            orchestrator = cli_instance.initialize_orchestrator()
            agents = await orchestrator.discover()
            goal_plan = orchestrator.plan(goal, agents)

            table = Table(title=f"Plan: {goal}", show_header=True)
            table.add_column("Role", style="cyan")
            table.add_column("Agent", style="yellow")
            table.add_column("Confidence", justify="right")
            for assignment in goal_plan.assignments:
                table.add_row(
                    assignment.step.step_id,
                    assignment.agent.id,
                    f"{assignment.confidence:.2f}",
                )
            console.print(table)

            for reason in goal_plan.match.reasons:
                console.print(f"  • {reason}")
            if goal_plan.match.unmatched_steps:
                console.print(
                    "[bold yellow]Unsatisfied roles: "
                    f"{', '.join(goal_plan.match.unmatched_step_ids)}[/bold yellow]"
                )

        except CoverageError as e:
            console.print(f"[bold red]Planning failed: {e}[/bold red]")
            raise typer.Exit(1) from e
        finally:
            await cli_instance.cleanup()

    asyncio.run(_plan())


@app.command()
def run(
    steps: list[str] | None = typer.Argument(
        None, help="Required capabilities, in order (default: configured workflow)"
    ),
    payload: str = typer.Option("{}", "--payload", "-p", help="Initial JSON payload"),
    parallel: bool = typer.Option(
        False, "--parallel", help="Run steps independently and concurrently"
    ),
    prefer: list[str] | None = typer.Option(
        None, "--prefer", help="Preferred agent id (repeatable)"
    ),
):
    """Discover, match, negotiate and execute a workflow."""
    try:
        initial_payload = json.loads(payload)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid --payload JSON: {e}[/bold red]")
        raise typer.Exit(2) from e

    async def _run():
        try:
            orchestrator = cli_instance.initialize_orchestrator()
            with console.status("[bold green]Running workflow..."):
                result = await orchestrator.run(
                    initial_payload,
                    steps=[WorkflowStep.parse(s) for s in steps] if steps else None,
                    mode=ExecutionMode.PARALLEL if parallel else None,
                    prefer_agent_ids=prefer or None,
                )

            console.print(render_logs(result.logs))
            console.print(
                Panel.fit(
                    json.dumps(result.final_output, indent=2, default=str),
                    title=f"Status: {result.status.upper()}",
                )
            )

        except PipelineAbortError as e:
            console.print(render_logs(e.logs))
            console.print(f"[bold red]Workflow aborted: {e}[/bold red]")
            raise typer.Exit(1) from e
        except CoverageError as e:
            console.print(f"[bold red]Workflow not covered: {e}[/bold red]")
            raise typer.Exit(1) from e
        finally:
            await cli_instance.cleanup()

    asyncio.run(_run())


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind host"),
    port: int | None = typer.Option(None, help="Bind port"),
):
    """Serve the orchestrator over HTTP."""
    import uvicorn

    from .api import create_app

    settings = cli_instance.settings or load_settings_file(None)
    uvicorn.run(
        create_app(settings),
        host=host or settings.service.host,
        port=port or settings.service.port,
    )


if __name__ == "__main__":
    app()
