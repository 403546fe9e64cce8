"""CLI commands for manual syncs and phase inspection."""

import asyncio
from datetime import datetime
from typing import Annotated

import typer

sync_app = typer.Typer()


@sync_app.command("run")
def run(
    resource: Annotated[
        list[str] | None,
        typer.Option("--resource", "-r", help="Resource key to sync (repeatable); all scheduled when omitted"),
    ] = None,
    force: Annotated[bool, typer.Option("--force", help="Merge even when the iteration marker is unchanged")] = False,
) -> None:
    """Sync resources once, regardless of the election-day phase."""
    failed = asyncio.run(_run_impl(resource or None, force))
    if failed:
        raise typer.Exit(code=1)


async def _run_impl(keys: list[str] | None, force: bool) -> int:
    """Async implementation of the run command. Returns the number of failed resources."""
    from servel_api.core.config import get_settings
    from servel_api.core.database import dispose_engine, init_engine
    from servel_api.services.scheduler_service import SyncScheduler, UnknownResourceError

    settings = get_settings()
    scheduler = SyncScheduler(settings)
    init_engine(
        settings.database_url,
        echo=False,
        schema=settings.database_schema,
        concurrent_syncs=len(keys) if keys else len(scheduler.resources),
    )

    try:
        try:
            results = await scheduler.sync_now(keys, force=force)
        except UnknownResourceError as e:
            known = ", ".join(scheduler.resources)
            typer.echo(f"Unknown resource {e}. Known resources: {known}", err=True)
            return 1

        for result in results:
            counts = ", ".join(
                f"{name}: +{c.inserted} ~{c.modified} of {c.total}" for name, c in result.counts.items()
            )
            line = f"{result.key:<22} {result.status:<10} iteration={result.iteration or '-'}"
            if counts:
                line += f"  [{counts}]"
            if result.error:
                line += f"  error: {result.error}"
            typer.echo(line)
        return sum(1 for result in results if result.status == "failed")
    finally:
        await dispose_engine()


@sync_app.command("phase")
def phase(
    at: Annotated[
        str | None,
        typer.Option("--at", help="ISO timestamp to evaluate instead of now (naive = election timezone)"),
    ] = None,
) -> None:
    """Show the election-day phase and the resources a tick would sync."""
    from servel_api.core.config import get_settings
    from servel_api.services.scheduler_service import SyncScheduler

    settings = get_settings()
    when = datetime.fromisoformat(at) if at else None
    scheduler = SyncScheduler(settings, clock=(lambda: when) if when else None)
    current = scheduler.current_phase()

    typer.echo(f"Local time:  {scheduler.local_now().isoformat(timespec='seconds')} ({settings.election_timezone})")
    typer.echo(f"Phase:       {current}")
    typer.echo(
        f"Boundaries:  installation {settings.installation_start:%H:%M}, "
        f"voting {settings.voting_start:%H:%M}, tally {settings.tally_start:%H:%M}"
    )
    planned = [resource.key for resource in scheduler.planned_resources(current)]
    typer.echo(f"Would sync:  {', '.join(planned) if planned else '(nothing)'}")


@sync_app.command("resources")
def resources() -> None:
    """List registered resources with their last merged iteration marker."""
    asyncio.run(_resources_impl())


async def _resources_impl() -> None:
    """Async implementation of the resources command."""
    from servel_api.core.config import get_settings
    from servel_api.core.database import dispose_engine, get_session_factory, init_engine
    from servel_api.lib.servel import build_resources
    from servel_api.services import sync_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema, concurrent_syncs=0)

    try:
        factory = get_session_factory()
        async with factory() as session:
            states = {state.key: state for state in await sync_service.list_sync_states(session)}

        for resource in build_resources(settings).values():
            state = states.get(resource.key)
            synced = state.last_synced_at.isoformat(timespec="seconds") if state and state.last_synced_at else "never"
            marker = state.last_iteration if state and state.last_iteration else "-"
            flag = "" if resource.scheduled else " (manual)"
            typer.echo(f"{resource.key:<22} {resource.archive:<24} iteration={marker:<12} synced={synced}{flag}")
            if state and state.last_error:
                typer.echo(f"    last error: {state.last_error}")
    finally:
        await dispose_engine()
