"""EduVerse CLI — inspect tenants and watch live counters from a terminal.

Usage:
    eduverse roles                                   # Known role identifiers
    eduverse tenant greenfield-high                  # Resolve a school slug
    eduverse watch SCHOOL_ID --token $JWT            # Follow unread messages
    eduverse watch SCHOOL_ID -c unread_notifications --token $JWT
    eduverse relay                                   # Run the change relay
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Optional

import click

from eduverse import __version__
from eduverse.config import settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token(token: Optional[str]) -> str:
    """Resolve the access token from the flag or EDUVERSE_ACCESS_TOKEN."""
    value = token or os.environ.get("EDUVERSE_ACCESS_TOKEN")
    if not value:
        click.secho(
            "Error: --token required (or set EDUVERSE_ACCESS_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return value


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _phase_color(phase: str) -> str:
    return {"idle": "white", "loading": "yellow", "ready": "green"}.get(phase, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="eduverse")
def main():
    """EduVerse — live counters, tenants and roles for the school dashboard."""


@main.command()
def roles():
    """List the role identifiers the dashboard understands."""
    from eduverse.roles import ROLE_HIERARCHY

    for role in ROLE_HIERARCHY:
        click.echo(role.value)


@main.command()
@click.argument("slug")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result")
def tenant(slug: str, as_json: bool):
    """Resolve SLUG to a school."""
    state = asyncio.run(_tenant_impl(slug))
    if as_json:
        click.echo(_pretty_json(state.model_dump()))
        return
    if state.status != "ready":
        click.secho(f"Error: {state.error or 'School not found.'}", fg="red", err=True)
        sys.exit(1)
    click.secho(f"{state.school.name}", bold=True)
    click.echo(f"  id:   {state.school.id}")
    click.echo(f"  slug: {state.school.slug}")


async def _tenant_impl(slug: str):
    from eduverse.main import build_backend
    from eduverse.services.tenant_service import TenantService

    async with build_backend(settings) as backend:
        return await TenantService(backend).resolve(slug)


@main.command()
@click.argument("school_id")
@click.option("--counter", "-c", default="unread_messages", show_default=True,
              help="Counter name (unread_messages, unread_notifications, unread_parent_messages, pending_submissions)")
@click.option("--token", "-t", help="Access token (or set EDUVERSE_ACCESS_TOKEN)")
def watch(school_id: str, counter: str, token: Optional[str]):
    """Print a live counter for SCHOOL_ID until interrupted."""
    from eduverse.counters.sources import COUNTER_SOURCES

    if counter not in COUNTER_SOURCES:
        click.secho(f"Error: unknown counter {counter!r}", fg="red", err=True)
        sys.exit(1)
    try:
        asyncio.run(_watch_impl(school_id, counter, _token(token)))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


async def _watch_impl(school_id: str, counter_name: str, token: str):
    from eduverse.main import build_backend
    from eduverse.services.counter_service import CounterService

    def show(state):
        phase = state.phase.value
        click.secho(
            f"{counter_name}: {state.value}  [{phase}{', loading' if state.is_loading else ''}]",
            fg=_phase_color(phase),
        )

    async with build_backend(settings) as backend:
        counter = CounterService(backend.with_token(token)).live(counter_name, on_state=show)
        try:
            await counter.set_scope(school_id)
            if counter.user_id is None:
                click.secho("Token has no identity — nothing to watch.", fg="red", err=True)
                return
            click.echo("Watching for changes (Ctrl+C to stop)...")
            await asyncio.Event().wait()
        finally:
            await counter.close()


@main.command()
def relay():
    """Run the PG NOTIFY → Redis change relay in the foreground."""
    from eduverse.log import configure_logging
    from eduverse.relay.change_relay import RelayConfig, run_relay

    configure_logging(settings)
    config = RelayConfig.from_settings(settings)
    db_host = config.database_url.rsplit("@", 1)[-1]
    click.echo(f"Relaying {config.notify_channel} from {db_host} to {config.channel_prefix}:* (Ctrl+C to stop)")
    stats = asyncio.run(run_relay(config))
    click.echo(f"Relay stopped: {stats['relayed']} relayed, {stats['malformed']} malformed, {stats['errors']} errors")


if __name__ == "__main__":
    main()
