"""Role-membership reconciliation.

For one (target, role) binding the reconciler gathers the desired
principals from three sources (internal users, federated users, directory
groups), compares them with the role's current members and applies the
difference through the binding's ``add`` / ``remove`` operations::

    to_add     = desired - actual
    to_remove  = actual - desired      (only when removal is enabled)
    unchanged  = desired & actual

Usernames are compared by their lower-cased form everywhere.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from rolesync._log import get_logger
from rolesync.errors import ProvisioningError, RolesyncError, UnknownPrincipalError
from rolesync.groups import GroupResolver
from rolesync.identity import IdentityDirectory, IdentityProvisioner, IdentityRecord
from rolesync.platform import TargetKind
from rolesync.roles import RoleBinding, RoleKind, Target

logger = get_logger("reconciler")


@dataclass(frozen=True)
class Provisioned:
    username: str
    origin: str


@dataclass(frozen=True)
class Skipped:
    username: str
    reason: str


ProvisionOutcome = Provisioned | Skipped


@dataclass(frozen=True)
class MembershipPlan:
    to_add: list[str]
    to_remove: list[str]
    unchanged: list[str]
    extraneous: list[str]


def plan_membership(
    desired: Mapping[str, str],
    actual: Mapping[str, str],
    *,
    remove_extraneous: bool,
) -> MembershipPlan:
    """Compute the delta between *desired* and *actual* membership.

    *desired* maps lower-cased username to the name as configured (adds use
    the configured spelling, in configured order). *actual* is a role
    member set keyed by lower-cased username. ``extraneous`` is always
    reported; ``to_remove`` is empty unless *remove_extraneous* is set.
    """
    to_add = [name for key, name in desired.items() if key not in actual]
    unchanged = [name for key, name in desired.items() if key in actual]
    extraneous = sorted(key for key in actual if key not in desired)
    return MembershipPlan(
        to_add=to_add,
        to_remove=list(extraneous) if remove_extraneous else [],
        unchanged=unchanged,
        extraneous=extraneous,
    )


@dataclass
class ReconcileResult:
    target: Target
    role: RoleKind
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    extraneous_kept: list[str] = field(default_factory=list)
    provisioning: list[ProvisionOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> list[Skipped]:
        return [o for o in self.provisioning if isinstance(o, Skipped)]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class Reconciler:
    """Apply desired role membership for one binding at a time.

    *directory* is the run-wide identity snapshot; it is never mutated.
    Identities provisioned by earlier bindings are kept in a ledger that is
    layered over the snapshot, so a principal is created at most once per
    reconciler.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        *,
        resolver: GroupResolver,
        provisioner: IdentityProvisioner,
        origin: str,
    ) -> None:
        self._directory = directory
        self._resolver = resolver
        self._provisioner = provisioner
        self._origin = origin
        self._provisioned: dict[str, IdentityRecord] = {}

    def reconcile(self, binding: RoleBinding) -> ReconcileResult:
        try:
            return self._reconcile(binding)
        except RolesyncError as e:
            e.add_context(f"Error syncing users for {binding.describe()}")
            raise

    def _reconcile(self, binding: RoleBinding) -> ReconcileResult:
        result = ReconcileResult(target=binding.target, role=binding.role)
        directory = self._directory
        if self._provisioned:
            directory = directory.with_records(self._provisioned.values())
        wanted = binding.desired

        if binding.target.placeholder:
            logger.debug(
                "[dry-run]: %s does not exist yet, treating %s as empty",
                binding.target.describe(),
                binding.role,
            )
            actual: dict[str, str] = {}
        else:
            actual = binding.operations.list()

        desired: dict[str, str] = {}

        for username in wanted.internal_users:
            key = username.lower()
            if key not in directory:
                raise UnknownPrincipalError(key)
            desired.setdefault(key, username)

        for username in wanted.federated_users:
            record = IdentityRecord(username=username, identifier="", email=username)
            directory = self._ensure_identity(directory, record, self._origin, result)
            if username.lower() in directory:
                desired.setdefault(username.lower(), username)

        members: list[IdentityRecord] = []
        if wanted.group_names:
            members.extend(self._resolver.resolve_members(wanted.group_names))
        if wanted.ldap_users:
            members.extend(self._resolver.resolve_users(wanted.ldap_users))
        for record in members:
            directory = self._ensure_identity(directory, record, record.origin, result)
            if record.key in directory:
                desired.setdefault(record.key, record.username)

        plan = plan_membership(
            desired, actual, remove_extraneous=wanted.remove_extraneous
        )

        for username in plan.to_add:
            binding.operations.add(username)
        result.added = plan.to_add
        result.unchanged = plan.unchanged

        if wanted.remove_extraneous:
            for username in plan.to_remove:
                binding.operations.remove(username)
            result.removed = plan.to_remove
        else:
            result.extraneous_kept = plan.extraneous
            if binding.target.kind == TargetKind.ORG:
                logger.debug(
                    "Not removing users. Set enable_remove_users: true in org.yaml for org: %s",
                    binding.target.name,
                )
            else:
                logger.debug(
                    "Not removing users. Set enable_remove_users: true in space.yaml "
                    "for org/space: %s/%s",
                    binding.target.org_name,
                    binding.target.name,
                )

        return result

    def _ensure_identity(
        self,
        directory: IdentityDirectory,
        record: IdentityRecord,
        origin: str,
        result: ReconcileResult,
    ) -> IdentityDirectory:
        """Provision *record* if the directory lacks it; failures are recorded and skipped."""
        if record.key in directory:
            return directory
        logger.debug(
            "User %s doesn't exist in the identity directory, so creating user", record.username
        )
        try:
            created = self._provisioner.create_federated_identity(
                record.username, record.email or record.username, origin
            )
        except ProvisioningError as e:
            logger.error("%s", e)
            result.provisioning.append(Skipped(username=record.username, reason=str(e)))
            return directory
        result.provisioning.append(Provisioned(username=record.username, origin=origin))
        self._provisioned[created.key] = created
        return directory.with_record(created)
