"""Sync commands: update-org-users, update-space-users, cleanup-org-users, sync."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from rolesync.cli._helpers import (
    ClientSecretOpt,
    ConfigDirOpt,
    DryRunOpt,
    LdapPasswordOpt,
    PasswordOpt,
    SystemDomainOpt,
    UserIdOpt,
    console,
    fail,
    load_config_or_exit,
    load_settings_or_exit,
    print_report,
)

if TYPE_CHECKING:
    from rolesync.driver import RunDriver, RunReport


def _run(
    action: Callable[[RunDriver], RunReport],
    *,
    system_domain: str | None,
    user_id: str | None,
    password: str | None,
    client_secret: str | None,
    config_dir: Path | None,
    ldap_password: str | None,
    dry_run: bool,
) -> None:
    from rolesync.driver import open_driver
    from rolesync.errors import RolesyncError

    settings = load_settings_or_exit(
        system_domain=system_domain,
        user_id=user_id,
        password=password,
        client_secret=client_secret,
        config_dir=config_dir,
        ldap_password=ldap_password,
    )
    config = load_config_or_exit(settings.config_dir)
    if dry_run:
        console.print("[dim]Dry-run: no changes will be applied.[/dim]")

    try:
        with open_driver(settings, config, dry_run=dry_run) as driver:
            report = action(driver)
    except RolesyncError as e:
        raise fail(str(e)) from None

    print_report(report)


def update_org_users(
    system_domain: SystemDomainOpt = None,
    user_id: UserIdOpt = None,
    password: PasswordOpt = None,
    client_secret: ClientSecretOpt = None,
    config_dir: ConfigDirOpt = None,
    ldap_password: LdapPasswordOpt = None,
    dry_run: DryRunOpt = False,
) -> None:
    """Update org billing managers, managers and auditors with what is defined in config."""
    _run(
        lambda driver: driver.update_org_users(),
        system_domain=system_domain,
        user_id=user_id,
        password=password,
        client_secret=client_secret,
        config_dir=config_dir,
        ldap_password=ldap_password,
        dry_run=dry_run,
    )


def update_space_users(
    system_domain: SystemDomainOpt = None,
    user_id: UserIdOpt = None,
    password: PasswordOpt = None,
    client_secret: ClientSecretOpt = None,
    config_dir: ConfigDirOpt = None,
    ldap_password: LdapPasswordOpt = None,
    dry_run: DryRunOpt = False,
) -> None:
    """Update space developers, managers and auditors with what is defined in config."""
    _run(
        lambda driver: driver.update_space_users(),
        system_domain=system_domain,
        user_id=user_id,
        password=password,
        client_secret=client_secret,
        config_dir=config_dir,
        ldap_password=ldap_password,
        dry_run=dry_run,
    )


def cleanup_org_users(
    system_domain: SystemDomainOpt = None,
    user_id: UserIdOpt = None,
    password: PasswordOpt = None,
    client_secret: ClientSecretOpt = None,
    config_dir: ConfigDirOpt = None,
    ldap_password: LdapPasswordOpt = None,
    dry_run: DryRunOpt = False,
) -> None:
    """Remove org users that hold no org or space role (opt-in per org)."""
    _run(
        lambda driver: driver.cleanup_org_users(),
        system_domain=system_domain,
        user_id=user_id,
        password=password,
        client_secret=client_secret,
        config_dir=config_dir,
        ldap_password=ldap_password,
        dry_run=dry_run,
    )


def sync(
    system_domain: SystemDomainOpt = None,
    user_id: UserIdOpt = None,
    password: PasswordOpt = None,
    client_secret: ClientSecretOpt = None,
    config_dir: ConfigDirOpt = None,
    ldap_password: LdapPasswordOpt = None,
    dry_run: DryRunOpt = False,
) -> None:
    """Update org users, then space users, then clean up org users."""
    _run(
        lambda driver: driver.run_all(),
        system_domain=system_domain,
        user_id=user_id,
        password=password,
        client_secret=client_secret,
        config_dir=config_dir,
        ldap_password=ldap_password,
        dry_run=dry_run,
    )
