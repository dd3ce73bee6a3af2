"""Config commands: validate."""

from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from rolesync.cli._helpers import ConfigDirOpt, console, load_config_or_exit
from rolesync.schema import RoleConfig


def _summarize(role: RoleConfig) -> str:
    if role.is_empty():
        return "[dim](none)[/dim]"
    parts = []
    if role.users:
        parts.append(f"users: {', '.join(role.users)}")
    if role.saml_users:
        parts.append(f"saml: {', '.join(role.saml_users)}")
    if role.ldap_users:
        parts.append(f"ldap users: {', '.join(role.ldap_users)}")
    groups = role.group_names()
    if groups:
        parts.append(f"ldap groups: {', '.join(groups)}")
    return escape("; ".join(parts))


def validate(config_dir: ConfigDirOpt = None) -> None:
    """Validate the config directory and show the configured role membership."""
    config = load_config_or_exit(config_dir)

    table = Table(title=f"Config: {config.config_dir}")
    table.add_column("Target", style="cyan")
    table.add_column("Role")
    table.add_column("Principals")
    table.add_column("Remove users")

    for org in config.orgs:
        for role, role_config in org.role_configs():
            table.add_row(
                escape(f"org {org.org}"),
                str(role),
                _summarize(role_config),
                "yes" if org.enable_remove_users else "no",
            )
        for space in config.spaces_for(org.org):
            for role, role_config in space.role_configs():
                table.add_row(
                    escape(f"org/space {space.org}/{space.space}"),
                    str(role),
                    _summarize(role_config),
                    "yes" if space.enable_remove_users else "no",
                )

    console.print(table)
    ldap_state = f"enabled ({escape(config.ldap.host)})" if config.ldap.enabled else "disabled"
    console.print(f"LDAP: {ldap_state}, origin: {escape(config.ldap.origin)}")
    console.print("[green]Valid[/green]")
