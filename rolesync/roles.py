"""Role operation bindings: one ``list / add / remove`` strategy per role kind.

Adding a user to any org or space role is a two-phase operation: the user
is first associated with the org, then with the role. In dry-run mode both
phases are logged and nothing is sent to the platform.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar, Protocol

from rolesync._log import get_logger
from rolesync.platform import OrgRef, PlatformClient, SpaceRef, TargetKind

logger = get_logger("roles")


class RoleKind(StrEnum):
    ORG_BILLING_MANAGER = "org-billing-manager"
    ORG_MANAGER = "org-manager"
    ORG_AUDITOR = "org-auditor"
    SPACE_DEVELOPER = "space-developer"
    SPACE_MANAGER = "space-manager"
    SPACE_AUDITOR = "space-auditor"


@dataclass(frozen=True)
class Target:
    kind: TargetKind
    name: str
    guid: str
    org_name: str
    org_guid: str
    placeholder: bool = False

    @classmethod
    def for_org(cls, org: OrgRef) -> Target:
        return cls(
            kind=TargetKind.ORG, name=org.name, guid=org.guid, org_name=org.name, org_guid=org.guid
        )

    @classmethod
    def for_space(cls, space: SpaceRef) -> Target:
        return cls(
            kind=TargetKind.SPACE,
            name=space.name,
            guid=space.guid,
            org_name=space.org_name,
            org_guid=space.org_guid,
            placeholder=space.placeholder,
        )

    def describe(self) -> str:
        if self.kind == TargetKind.ORG:
            return f"org {self.name}"
        return f"org/space {self.org_name}/{self.name}"


@dataclass
class DesiredMembership:
    internal_users: list[str] = field(default_factory=list)
    group_names: list[str] = field(default_factory=list)
    federated_users: list[str] = field(default_factory=list)
    ldap_users: list[str] = field(default_factory=list)
    remove_extraneous: bool = False


class RoleOperations(Protocol):
    def list(self) -> dict[str, str]: ...

    def add(self, username: str) -> None: ...

    def remove(self, username: str) -> None: ...


class PlatformRoleOperations(ABC):
    """Shared implementation; subclasses pick the target kind and role endpoint."""

    role: ClassVar[RoleKind]
    target_kind: ClassVar[TargetKind]
    role_path: ClassVar[str]
    label: ClassVar[str]

    def __init__(self, client: PlatformClient, target: Target, *, dry_run: bool = False) -> None:
        if target.kind != self.target_kind:
            raise ValueError(f"{type(self).__name__} cannot operate on a {target.kind} target")
        self._client = client
        self._target = target
        self._dry_run = dry_run

    def list(self) -> dict[str, str]:
        members = self._client.list_role_users(self.target_kind, self._target.guid, self.role_path)
        logger.debug(
            "RoleUsers for %s and role %s: %s", self._target.describe(), self.role, members
        )
        return members

    def _associate_org_user(self, username: str) -> None:
        if self._dry_run:
            logger.info("[dry-run]: associating %s with org %s", username, self._target.org_name)
            return
        logger.debug("associating %s with org %s", username, self._target.org_name)
        self._client.associate_org_user(self._target.org_guid, username)

    def add(self, username: str) -> None:
        self._associate_org_user(username)
        if self._dry_run:
            logger.info(
                "[dry-run]: adding %s to role %s for %s",
                username,
                self.label,
                self._target.describe(),
            )
            return
        logger.info("adding %s to role %s for %s", username, self.label, self._target.describe())
        self._client.associate_role(self.target_kind, self._target.guid, self.role_path, username)

    def remove(self, username: str) -> None:
        if self._dry_run:
            logger.info(
                "[dry-run]: removing user %s from %s with role %s",
                username,
                self._target.describe(),
                self.label,
            )
            return
        logger.info(
            "removing user %s from %s with role %s", username, self._target.describe(), self.label
        )
        self._client.remove_role(self.target_kind, self._target.guid, self.role_path, username)


class OrgBillingManagerOperations(PlatformRoleOperations):
    role = RoleKind.ORG_BILLING_MANAGER
    target_kind = TargetKind.ORG
    role_path = "billing_managers"
    label = "billing manager"


class OrgManagerOperations(PlatformRoleOperations):
    role = RoleKind.ORG_MANAGER
    target_kind = TargetKind.ORG
    role_path = "managers"
    label = "manager"


class OrgAuditorOperations(PlatformRoleOperations):
    role = RoleKind.ORG_AUDITOR
    target_kind = TargetKind.ORG
    role_path = "auditors"
    label = "auditor"


class SpaceDeveloperOperations(PlatformRoleOperations):
    role = RoleKind.SPACE_DEVELOPER
    target_kind = TargetKind.SPACE
    role_path = "developers"
    label = "developer"


class SpaceManagerOperations(PlatformRoleOperations):
    role = RoleKind.SPACE_MANAGER
    target_kind = TargetKind.SPACE
    role_path = "managers"
    label = "manager"


class SpaceAuditorOperations(PlatformRoleOperations):
    role = RoleKind.SPACE_AUDITOR
    target_kind = TargetKind.SPACE
    role_path = "auditors"
    label = "auditor"


OPERATIONS: dict[RoleKind, type[PlatformRoleOperations]] = {
    cls.role: cls
    for cls in (
        OrgBillingManagerOperations,
        OrgManagerOperations,
        OrgAuditorOperations,
        SpaceDeveloperOperations,
        SpaceManagerOperations,
        SpaceAuditorOperations,
    )
}

ORG_ROLES = (RoleKind.ORG_BILLING_MANAGER, RoleKind.ORG_MANAGER, RoleKind.ORG_AUDITOR)
SPACE_ROLES = (RoleKind.SPACE_DEVELOPER, RoleKind.SPACE_MANAGER, RoleKind.SPACE_AUDITOR)


@dataclass(frozen=True)
class RoleBinding:
    target: Target
    role: RoleKind
    desired: DesiredMembership
    operations: RoleOperations

    def describe(self) -> str:
        return f"{self.target.describe()}, role {self.role}"


def operations_for(
    client: PlatformClient, target: Target, role: RoleKind, *, dry_run: bool = False
) -> PlatformRoleOperations:
    return OPERATIONS[role](client, target, dry_run=dry_run)


def build_binding(
    client: PlatformClient,
    target: Target,
    role: RoleKind,
    desired: DesiredMembership,
    *,
    dry_run: bool = False,
) -> RoleBinding:
    return RoleBinding(
        target=target,
        role=role,
        desired=desired,
        operations=operations_for(client, target, role, dry_run=dry_run),
    )
