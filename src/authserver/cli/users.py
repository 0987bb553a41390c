"""Account administration CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from authserver.database import get_session_context
from authserver.models import Account
from authserver.services.accounts import resolve_account, unlock_account

console = Console()
app = typer.Typer(help="Account management commands")


def _yes_no(value: bool) -> str:
    return "[green]Yes[/green]" if value else "No"


@app.command("list")
def list_accounts(
    locked: bool = typer.Option(False, "--locked", help="Only show locked accounts"),
):
    """List accounts."""

    async def _list():
        async with get_session_context() as session:
            stmt = select(Account).order_by(Account.created_at)
            if locked:
                stmt = stmt.where(Account.locked.is_(True))  # type: ignore[attr-defined]
            result = await session.execute(stmt)
            accounts = result.scalars().all()

            table = Table(title="Accounts")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Phone", style="green")
            table.add_column("Verified")
            table.add_column("2FA", style="magenta")
            table.add_column("Locked", style="red")
            table.add_column("Failures", justify="right")
            table.add_column("Last Login", style="dim")

            for account in accounts:
                last_login = (
                    account.last_login_at.strftime("%Y-%m-%d %H:%M") if account.last_login_at else "-"
                )
                table.add_row(
                    account.id,
                    account.email or "-",
                    account.phone or "-",
                    _yes_no(account.channel_verified),
                    _yes_no(account.two_factor_enabled),
                    "[red]Yes[/red]" if account.locked else "No",
                    str(account.failed_attempts),
                    last_login,
                )

            console.print(table)

    asyncio.run(_list())


@app.command("unlock")
def unlock(identifier: str = typer.Argument(..., help="Account email or phone number")):
    """Clear an account's lockout and failure counter."""

    async def _unlock():
        async with get_session_context() as session:
            account = await resolve_account(session, identifier)
            if not account:
                console.print(f"[red]Error:[/red] Account {identifier} not found")
                raise typer.Exit(1)

            if not account.locked and account.failed_attempts == 0:
                console.print(f"[yellow]Warning:[/yellow] Account {identifier} is not locked")
                return

            await unlock_account(session, account)
            await session.commit()
            console.print(f"[green]Unlocked account:[/green] {identifier}")

    asyncio.run(_unlock())
