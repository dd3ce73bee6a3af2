"""Run driver: iterate configured orgs and spaces and reconcile every role.

A driver instance is one run. The identity directory is loaded on first
use and shared read-only by every reconciliation in the run. All work is
sequential and fail-fast: the first fatal error aborts the run, already
applied mutations are not rolled back.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rolesync._log import get_logger
from rolesync.errors import RolesyncError
from rolesync.groups import GroupResolver
from rolesync.identity import (
    DirectorySource,
    IdentityDirectory,
    IdentityProvisioner,
    load_directory,
)
from rolesync.platform import OrgRef, PlatformClient, TargetKind, TargetResolver
from rolesync.reconciler import Reconciler, ReconcileResult, Skipped
from rolesync.roles import ORG_ROLES, SPACE_ROLES, Target, build_binding, operations_for

if TYPE_CHECKING:
    from rolesync.config import Settings
    from rolesync.loader import RolesyncConfig

logger = get_logger("driver")


@dataclass
class RunReport:
    dry_run: bool = False
    results: list[ReconcileResult] = field(default_factory=list)
    removed_org_users: list[tuple[str, str]] = field(default_factory=list)

    @property
    def skipped(self) -> list[tuple[ReconcileResult, Skipped]]:
        return [(r, s) for r in self.results for s in r.skipped]

    @property
    def added_count(self) -> int:
        return sum(len(r.added) for r in self.results)

    @property
    def removed_count(self) -> int:
        return sum(len(r.removed) for r in self.results) + len(self.removed_org_users)


class RunDriver:
    def __init__(
        self,
        config: RolesyncConfig,
        platform: PlatformClient,
        *,
        directory_source: DirectorySource,
        provisioner: IdentityProvisioner,
        resolver: GroupResolver,
        dry_run: bool = False,
    ) -> None:
        self._config = config
        self._platform = platform
        self._directory_source = directory_source
        self._provisioner = provisioner
        self._resolver = resolver
        self._dry_run = dry_run
        self._targets = TargetResolver(platform, dry_run=dry_run)
        self._directory: IdentityDirectory | None = None
        self._reconciler: Reconciler | None = None

    @property
    def directory(self) -> IdentityDirectory:
        if self._directory is None:
            self._directory = load_directory(self._directory_source)
        return self._directory

    @property
    def reconciler(self) -> Reconciler:
        """Shared by every binding of the run so a principal is provisioned at most once."""
        if self._reconciler is None:
            self._reconciler = Reconciler(
                self.directory,
                resolver=self._resolver,
                provisioner=self._provisioner,
                origin=self._config.ldap.origin,
            )
        return self._reconciler

    def _new_report(self, report: RunReport | None) -> RunReport:
        return report if report is not None else RunReport(dry_run=self._dry_run)

    def update_org_users(self, report: RunReport | None = None) -> RunReport:
        """Reconcile billing-manager, manager and auditor for every configured org."""
        report = self._new_report(report)
        reconciler = self.reconciler
        for org_config in self._config.orgs:
            target = Target.for_org(self._targets.find_org(org_config.org))
            for role, role_config in org_config.role_configs():
                binding = build_binding(
                    self._platform,
                    target,
                    role,
                    role_config.to_desired(org_config.enable_remove_users),
                    dry_run=self._dry_run,
                )
                report.results.append(reconciler.reconcile(binding))
        return report

    def update_space_users(self, report: RunReport | None = None) -> RunReport:
        """Reconcile developer, manager and auditor for every configured space."""
        report = self._new_report(report)
        reconciler = self.reconciler
        for space_config in self._config.spaces:
            try:
                space = self._targets.find_space(space_config.org, space_config.space)
            except RolesyncError as e:
                e.add_context(
                    f"Error finding space for org {space_config.org}, space {space_config.space}"
                )
                raise
            target = Target.for_space(space)
            for role, role_config in space_config.role_configs():
                binding = build_binding(
                    self._platform,
                    target,
                    role,
                    role_config.to_desired(space_config.enable_remove_users),
                    dry_run=self._dry_run,
                )
                report.results.append(reconciler.reconcile(binding))
        return report

    def cleanup_org_users(self, report: RunReport | None = None) -> RunReport:
        """Remove org members that hold no org role and no role in any of the org's spaces.

        Only orgs with ``enable_cleanup_org_users`` are touched.
        """
        report = self._new_report(report)
        for org_config in self._config.orgs:
            if not org_config.enable_cleanup_org_users:
                logger.debug(
                    "Org user cleanup is not enabled for %s. "
                    "Set enable_cleanup_org_users: true in org.yaml",
                    org_config.org,
                )
                continue
            org = self._targets.find_org(org_config.org)
            try:
                self._cleanup_org(org, report)
            except RolesyncError as e:
                e.add_context(f"Error cleaning up users for org {org.name}")
                raise
        return report

    def _cleanup_org(self, org: OrgRef, report: RunReport) -> None:
        org_users = self._platform.list_org_users(org.guid)
        users_in_roles = self._users_in_org_roles(org)
        logger.debug("Users in roles for org %s: %s", org.name, sorted(users_in_roles))

        for username in sorted(org_users):
            if username in users_in_roles:
                continue
            if self._dry_run:
                logger.info("[dry-run]: Removing User %s from org %s", username, org.name)
            else:
                logger.info("Removing User %s from org %s", username, org.name)
                self._platform.remove_org_user(org.guid, username)
            report.removed_org_users.append((org.name, username))

    def _users_in_org_roles(self, org: OrgRef) -> set[str]:
        """Union of every org-role holder and every space developer, manager and auditor."""
        users: set[str] = set()
        org_target = Target.for_org(org)
        for role in ORG_ROLES:
            users.update(operations_for(self._platform, org_target, role).list())

        for space in self._platform.list_spaces(org.guid):
            space_target = Target(
                kind=TargetKind.SPACE,
                name=space.name,
                guid=space.guid,
                org_name=org.name,
                org_guid=org.guid,
            )
            for role in SPACE_ROLES:
                users.update(operations_for(self._platform, space_target, role).list())
        return users

    def run_all(self) -> RunReport:
        """Org roles for every org, then space roles, then the org user cleanup."""
        report = self.update_org_users()
        self.update_space_users(report)
        self.cleanup_org_users(report)
        return report


@contextmanager
def open_driver(
    settings: Settings, config: RolesyncConfig, *, dry_run: bool = False
) -> Iterator[RunDriver]:
    """Authenticate against UAA, wire the platform clients and yield a driver.

    The LDAP connection (when enabled) is closed on exit.
    """
    from rolesync.auth import fetch_cf_token, fetch_uaa_token
    from rolesync.groups import LdapGroupResolver, NullGroupResolver
    from rolesync.identity import UaaClient
    from rolesync.platform import CloudControllerClient

    common = {"timeout": settings.timeout_seconds, "verify": settings.verify_tls}
    cf_token = fetch_cf_token(settings.uaa_url, settings.user_id, settings.password, **common)
    uaa_token = fetch_uaa_token(
        settings.uaa_url, settings.user_id, settings.client_secret, **common
    )

    platform = CloudControllerClient(settings.api_url, cf_token, **common)
    uaa = UaaClient(settings.uaa_url, uaa_token, dry_run=dry_run, **common)
    resolver: GroupResolver
    if config.ldap.enabled:
        resolver = LdapGroupResolver(config.ldap, settings.ldap_password)
    else:
        resolver = NullGroupResolver()

    try:
        yield RunDriver(
            config,
            platform,
            directory_source=uaa,
            provisioner=uaa,
            resolver=resolver,
            dry_run=dry_run,
        )
    finally:
        resolver.close()
