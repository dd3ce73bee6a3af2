"""Typer CLI for rolesync: wiring hub for command modules."""

from __future__ import annotations

from typing import Annotated

import typer

from rolesync.cli._helpers import console

app = typer.Typer(
    name="rolesync",
    help="Reconcile org and space role membership with what is defined in config.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        from rolesync import __version__

        console.print(f"rolesync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """rolesync: org and space role membership reconciliation."""
    from rolesync._log import setup_logging

    setup_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# Command registrations: plain functions from *_cmd modules
# ---------------------------------------------------------------------------

from rolesync.cli.config_cmd import validate  # noqa: E402
from rolesync.cli.sync_cmd import (  # noqa: E402
    cleanup_org_users,
    sync,
    update_org_users,
    update_space_users,
)

app.command()(validate)
app.command("update-org-users")(update_org_users)
app.command("update-space-users")(update_space_users)
app.command("cleanup-org-users")(cleanup_org_users)
app.command()(sync)


def app_entry() -> None:
    """Entry point for the CLI."""
    app()
