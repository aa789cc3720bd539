import typer
from typing import Optional
from rich.console import Console
from rich.table import Table

from problemdesk.cli.api import call_api

maintenance_app = typer.Typer(help="Backfill, reconciliation and outbox")
console = Console()


@maintenance_app.command()
def backfill(
    limit: Optional[int] = typer.Option(None, help="Maximum number of problems to examine"),
):
    """
    Assign open problems that have no technician yet.
    """
    with console.status("[bold green]Assigning unassigned problems..."):
        report = call_api("POST", "/maintenance/backfill", console, params={"limit": limit})
    if report is None:
        raise typer.Exit(code=1)

    console.print(f"Examined: [cyan]{report['examined']}[/]")
    console.print(f"Assigned: [cyan]{len(report['assigned'])}[/]")
    console.print(f"Still unassigned: [cyan]{report['stillUnassigned']}[/]")
    for problem_id in report["assigned"]:
        console.print(f"  • {problem_id}")


@maintenance_app.command()
def reconcile():
    """
    Recompute technician availability from their active problems.
    """
    with console.status("[bold green]Reconciling technicians..."):
        report = call_api("POST", "/maintenance/reconcile", console)
    if report is None:
        raise typer.Exit(code=1)

    console.print(f"Technicians checked: [cyan]{report['technicians']}[/]")
    console.print(f"Stale assignments released: [cyan]{report['releasedAssignments']}[/]")
    console.print(f"Availability changed: [cyan]{report['availabilityChanged']}[/]")


@maintenance_app.command()
def outbox(
    status: Optional[str] = typer.Option(None, help="Filter by status (pending, sent, failed)"),
    limit: int = typer.Option(50, help="Maximum number of messages"),
):
    """
    Show outbound notifications and their delivery state.
    """
    data = call_api(
        "GET", "/maintenance/outbox", console, params={"status": status, "limit": limit}
    )
    if data is None:
        raise typer.Exit(code=1)

    counts = ", ".join(f"{name}: {count}" for name, count in data["countsByStatus"].items())
    console.print(f"[bold]Outbox[/] ({counts})")

    if not data["messages"]:
        console.print("[yellow]No messages.")
        return

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Kind")
    table.add_column("Key")
    table.add_column("Status")
    table.add_column("Attempts")
    table.add_column("Last error")

    for message in data["messages"]:
        table.add_row(
            message["kind"],
            message["idempotencyKey"],
            message["status"],
            str(message["attempts"]),
            message.get("lastError") or "-",
        )

    console.print(table)
