"""Typer CLI root application with serve command."""

import typer

from servel_api.core.config import get_settings
from servel_api.core.logging import setup_logging

app = typer.Typer(name="servel-api", help="SERVEL election results sync service CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server (and the sync scheduler when SYNC_ENABLED)."""
    import uvicorn

    # One worker only: the scheduler lives in the application process
    uvicorn.run(
        "servel_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from servel_api.cli.db_cmd import db_app
    from servel_api.cli.sync_cmd import sync_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(sync_app, name="sync", help="Manual sync and phase inspection commands")


_register_subcommands()
