"""CLI commands using Typer."""

import typer

from authserver.cli.db import app as db_app
from authserver.cli.maintenance import app as maintenance_app
from authserver.cli.users import app as users_app

app = typer.Typer(name="authserver", help="AuthServer CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(maintenance_app, name="maintenance")


@app.command()
def version():
    """Show version information."""
    from authserver import __version__

    typer.echo(f"AuthServer v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the API server."""
    import uvicorn

    from authserver.logging import get_uvicorn_log_config

    uvicorn.run(
        "authserver.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


@app.command()
def worker(
    concurrency: int = typer.Option(2, help="Number of concurrent tasks"),
):
    """Run the background worker (token and rate-window sweeps)."""
    from authserver.worker import main

    typer.echo(f"Starting worker with concurrency={concurrency}")
    main(concurrency)


if __name__ == "__main__":
    app()
