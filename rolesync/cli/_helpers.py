"""Shared CLI helpers: option types, config loading, error handling and report output."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from rolesync.config import Settings
    from rolesync.driver import RunReport
    from rolesync.loader import RolesyncConfig

console = Console()

SystemDomainOpt = Annotated[
    str | None, typer.Option("--system-domain", help="System domain (env: SYSTEM_DOMAIN)")
]
UserIdOpt = Annotated[
    str | None, typer.Option("--user-id", help="User id that has admin priv (env: USER_ID)")
]
PasswordOpt = Annotated[
    str | None,
    typer.Option("--password", help="Password for the admin user (env: PASSWORD)"),
]
ClientSecretOpt = Annotated[
    str | None,
    typer.Option("--client-secret", help="Secret for the admin client (env: CLIENT_SECRET)"),
]
ConfigDirOpt = Annotated[
    Path | None,
    typer.Option("--config-dir", help="Config directory, default ./config (env: CONFIG_DIR)"),
]
LdapPasswordOpt = Annotated[
    str | None,
    typer.Option("--ldap-password", help="LDAP password for binding (env: LDAP_PASSWORD)"),
]
DryRunOpt = Annotated[
    bool, typer.Option("--dry-run", "--peek", help="Log intended changes without applying them")
]


def fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def load_config_or_exit(config_dir: Path | None) -> RolesyncConfig:
    from rolesync.config import get_config_dir
    from rolesync.errors import ConfigurationError
    from rolesync.loader import load_config

    try:
        return load_config(get_config_dir(config_dir))
    except ConfigurationError as e:
        raise fail(str(e)) from None


def load_settings_or_exit(
    *,
    system_domain: str | None,
    user_id: str | None,
    password: str | None,
    client_secret: str | None,
    config_dir: Path | None,
    ldap_password: str | None,
) -> Settings:
    from rolesync.config import load_settings
    from rolesync.errors import ConfigurationError

    try:
        return load_settings(
            system_domain=system_domain,
            user_id=user_id,
            password=password,
            client_secret=client_secret,
            config_dir=config_dir,
            ldap_password=ldap_password,
        )
    except ConfigurationError as e:
        raise fail(str(e)) from None


def print_report(report: RunReport) -> None:
    """Render a per-binding summary table plus any skipped provisioning."""
    title = "Role sync (dry-run)" if report.dry_run else "Role sync"
    table = Table(title=title)
    table.add_column("Target", style="cyan")
    table.add_column("Role")
    table.add_column("Added", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Kept", justify="right")

    for result in report.results:
        table.add_row(
            escape(result.target.describe()),
            str(result.role),
            str(len(result.added)),
            str(len(result.removed)),
            str(len(result.unchanged)),
            str(len(result.extraneous_kept)),
        )
    if report.results:
        console.print(table)

    for org_name, username in report.removed_org_users:
        console.print(f"Removed [bold]{escape(username)}[/bold] from org {escape(org_name)}")

    for result, skipped in report.skipped:
        console.print(
            f"[yellow]Warning:[/yellow] skipped {escape(skipped.username)} for "
            f"{escape(result.target.describe())} ({result.role}): {escape(skipped.reason)}"
        )

    verb = "would add" if report.dry_run else "added"
    console.print(
        f"[green]Done:[/green] {verb} {report.added_count}, "
        f"{'would remove' if report.dry_run else 'removed'} {report.removed_count}"
    )
