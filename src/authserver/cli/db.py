"""Database migration CLI commands (wrappers around Alembic)."""

import subprocess
import sys

import typer
from rich.console import Console

console = Console()
app = typer.Typer(help="Database management commands")


def _alembic(*args: str) -> int:
    result = subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        check=False,
        capture_output=False,
    )
    return result.returncode


@app.command("migrate")
def migrate(
    revision: str = typer.Argument("head", help="Target revision (default: head)"),
):
    """Run database migrations to the specified revision."""
    console.print(f"[dim]Running migrations to {revision}...[/dim]")
    if _alembic("upgrade", revision) != 0:
        console.print("[red]Migration failed![/red]")
        raise typer.Exit(1)
    console.print("[green]Migrations complete![/green]")


@app.command("rollback")
def rollback(
    revision: str = typer.Argument("-1", help="Target revision (default: -1 for one step back)"),
):
    """Rollback database migrations."""
    console.print(f"[dim]Rolling back to {revision}...[/dim]")
    if _alembic("downgrade", revision) != 0:
        console.print("[red]Rollback failed![/red]")
        raise typer.Exit(1)
    console.print("[green]Rollback complete![/green]")


@app.command("current")
def current():
    """Show current database revision."""
    _alembic("current")


@app.command("history")
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of revisions to show"),
):
    """Show migration history."""
    _alembic("history", f"-r-{limit}:")
