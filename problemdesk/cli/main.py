import typer
from typing import Any, Dict, List, Optional
from rich.console import Console
from rich.table import Table

from problemdesk.cli.api import call_api
from problemdesk.cli.commands.maintenance import maintenance_app

app = typer.Typer(help="CLI to report problems and follow their technician assignment")
console = Console()

app.add_typer(maintenance_app, name="maintenance", help="Backfill, reconciliation and outbox")


def _problems_table(problems: List[Dict[str, Any]]) -> Table:
    table = Table(show_header=True, header_style="bold green")
    table.add_column("ID")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Technician")
    table.add_column("Description")

    for problem in problems:
        table.add_row(
            problem["id"],
            problem["category"],
            problem["status"],
            problem.get("assignedTechnician") or "-",
            problem["description"],
        )
    return table


def _exit_on_error(result: Optional[Any]) -> Any:
    if result is None:
        raise typer.Exit(code=1)
    return result


@app.command()
def health():
    """
    Check that the problem service is up.
    """
    data = _exit_on_error(call_api("GET", "/health", console))
    console.print(f"[green]Service {data['status']}[/] at {data['timestamp']}")


@app.command()
def create(
    category: str = typer.Argument(..., help="Specialty needed (e.g. 'plumbing')"),
    description: str = typer.Argument(..., help="What is wrong"),
    reporter: Optional[str] = typer.Option(
        None, "--reporter", "-r", help="Id of who reports the problem (not used with --predefined)"
    ),
    title: Optional[str] = typer.Option(None, help="Short title"),
    predefined: bool = typer.Option(False, help="Add to the predefined catalog instead of reporting"),
):
    """
    Report a problem; it is assigned to the least-loaded technician.
    """
    payload = {"category": category, "description": description, "title": title}

    if predefined:
        data = _exit_on_error(call_api("POST", "/problems/predefined", console, json=payload))
        console.print(f"[green]Predefined problem created: [bold]{data['id']}[/]")
        return

    if not reporter:
        raise typer.BadParameter("required when reporting a problem", param_hint="'--reporter'")

    payload["reporterId"] = reporter
    with console.status("[bold green]Reporting problem..."):
        data = _exit_on_error(call_api("POST", "/problems", console, json=payload))

    console.print(f"[green]Problem created: [bold]{data['id']}[/]")
    console.print(f"Assigned to: [cyan]{data['assignedTo']}[/]")
    console.print(f"Workload before assignment: [cyan]{data['currentWorkload']}[/]")
    console.print(data["message"])


@app.command("list")
def list_problems(
    reporter: Optional[str] = typer.Option(None, "--reporter", "-r", help="Filter by reporter"),
    technician: Optional[str] = typer.Option(None, "--technician", "-t", help="Filter by technician id"),
    predefined: bool = typer.Option(False, help="List the predefined catalog"),
):
    """
    List problems.
    """
    if predefined:
        problems = call_api("GET", "/problems/predefined", console)
    else:
        problems = call_api(
            "GET",
            "/problems",
            console,
            params={"reporterId": reporter, "assignedTechnician": technician},
        )
    problems = _exit_on_error(problems)

    if not problems:
        console.print("[yellow]No problems found.")
        return

    console.print(_problems_table(problems))


@app.command()
def show(problem_id: str = typer.Argument(..., help="Problem id")):
    """
    Show a problem.
    """
    problem = _exit_on_error(call_api("GET", f"/problems/{problem_id}", console))

    console.print(f"\n[bold]Problem [cyan]{problem['id']}[/]")
    if problem.get("title"):
        console.print(f"Title: [cyan]{problem['title']}[/]")
    console.print(f"Description: [cyan]{problem['description']}[/]")
    console.print(f"Category: [cyan]{problem['category']}[/]")
    console.print(f"Status: [cyan]{problem['status']}[/]")
    console.print(f"Reporter: [cyan]{problem['reporterId']}[/]")
    console.print(f"Technician: [cyan]{problem.get('assignedTechnician') or '-'}[/]")
    if problem.get("solvedAt"):
        console.print(f"Solved at: [cyan]{problem['solvedAt']}[/]")


@app.command()
def status(
    problem_id: str = typer.Argument(..., help="Problem id"),
    new_status: str = typer.Argument(..., help="waiting, in_progress or solved"),
):
    """
    Change the status of a problem.
    """
    data = _exit_on_error(
        call_api("PUT", f"/problems/{problem_id}", console, json={"status": new_status})
    )
    console.print(f"[green]{data['message']}[/] ({data['status']})")
    if data["technicianUpdated"]:
        console.print("Technician released.")


@app.command()
def solve(problem_id: str = typer.Argument(..., help="Problem id")):
    """
    Mark a problem as solved, releasing its technician.
    """
    status(problem_id, "solved")


@app.command()
def reopen(problem_id: str = typer.Argument(..., help="Problem id")):
    """
    Reopen a solved problem.
    """
    data = _exit_on_error(call_api("POST", f"/problems/{problem_id}/reopen", console))
    console.print(f"[green]{data['message']}[/] ({data['status']})")


@app.command()
def delete(
    problem_id: str = typer.Argument(..., help="Problem id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """
    Delete a problem.
    """
    if not yes and not typer.confirm(f"Delete problem {problem_id}?"):
        raise typer.Abort()

    data = _exit_on_error(call_api("DELETE", f"/problems/{problem_id}", console))
    console.print(f"[green]{data['message']}")


def main():
    app()


if __name__ == "__main__":
    main()
