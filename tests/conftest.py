"""Shared test fixtures and in-memory fakes for the platform, UAA and LDAP."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from rolesync.errors import GroupLookupError, ProvisioningError, RemoteOperationError
from rolesync.identity import IdentityDirectory, IdentityRecord
from rolesync.loader import RolesyncConfig
from rolesync.platform import OrgRef, SpaceRef, TargetKind
from rolesync.schema import LdapConfig, OrgConfig, SpaceConfig

_MUTATIONS = {"associate_role", "remove_role", "associate_org_user", "remove_org_user"}


class FakePlatform:
    """In-memory platform that records every call in order.

    Role membership is keyed by ``(kind, guid, role_path)``; associating or
    removing a user mutates it so follow-up reconciliations see the result.
    """

    def __init__(self) -> None:
        self.orgs: dict[str, OrgRef] = {}
        self.spaces: dict[str, list[SpaceRef]] = {}
        self.org_users: dict[str, dict[str, str]] = {}
        self.roles: dict[tuple[TargetKind, str, str], dict[str, str]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    # -- setup helpers -----------------------------------------------------

    def add_org(self, name: str, guid: str | None = None) -> OrgRef:
        org = OrgRef(name=name, guid=guid or f"{name}-guid")
        self.orgs[name] = org
        self.spaces.setdefault(org.guid, [])
        self.org_users.setdefault(org.guid, {})
        return org

    def add_space(self, org: OrgRef, name: str, guid: str | None = None) -> SpaceRef:
        space = SpaceRef(
            name=name, guid=guid or f"{org.name}-{name}-guid", org_name=org.name, org_guid=org.guid
        )
        self.spaces[org.guid].append(space)
        return space

    def set_members(
        self, kind: TargetKind, guid: str, role_path: str, usernames: Iterable[str]
    ) -> None:
        self.roles[(kind, guid, role_path)] = {u.lower(): f"{u.lower()}-guid" for u in usernames}

    def members(self, kind: TargetKind, guid: str, role_path: str) -> set[str]:
        return set(self.roles.get((kind, guid, role_path), {}))

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in _MUTATIONS]

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise RemoteOperationError(f"{op} failed: HTTP 500", status_code=500)

    # -- PlatformClient ----------------------------------------------------

    def find_org(self, name: str) -> OrgRef | None:
        self.calls.append(("find_org", name))
        self._check("find_org")
        return self.orgs.get(name)

    def list_spaces(self, org_guid: str) -> list[SpaceRef]:
        self.calls.append(("list_spaces", org_guid))
        self._check("list_spaces")
        return list(self.spaces.get(org_guid, []))

    def list_org_users(self, org_guid: str) -> dict[str, str]:
        self.calls.append(("list_org_users", org_guid))
        self._check("list_org_users")
        return dict(self.org_users.get(org_guid, {}))

    def list_role_users(self, kind: TargetKind, guid: str, role_path: str) -> dict[str, str]:
        self.calls.append(("list_role_users", kind, guid, role_path))
        self._check("list_role_users")
        return dict(self.roles.get((kind, guid, role_path), {}))

    def associate_role(self, kind: TargetKind, guid: str, role_path: str, username: str) -> None:
        self.calls.append(("associate_role", kind, guid, role_path, username))
        self._check("associate_role")
        self.roles.setdefault((kind, guid, role_path), {})[username.lower()] = f"{username}-guid"

    def remove_role(self, kind: TargetKind, guid: str, role_path: str, username: str) -> None:
        self.calls.append(("remove_role", kind, guid, role_path, username))
        self._check("remove_role")
        self.roles.get((kind, guid, role_path), {}).pop(username.lower(), None)

    def associate_org_user(self, org_guid: str, username: str) -> None:
        self.calls.append(("associate_org_user", org_guid, username))
        self._check("associate_org_user")
        self.org_users.setdefault(org_guid, {})[username.lower()] = f"{username}-guid"

    def remove_org_user(self, org_guid: str, username: str) -> None:
        self.calls.append(("remove_org_user", org_guid, username))
        self._check("remove_org_user")
        self.org_users.get(org_guid, {}).pop(username.lower(), None)


class FakeDirectorySource:
    def __init__(self, usernames: Iterable[str] = ()) -> None:
        self.records = [make_identity(u) for u in usernames]
        self.list_calls = 0

    def list_users(self) -> list[IdentityRecord]:
        self.list_calls += 1
        return list(self.records)


class FakeProvisioner:
    """Creates identities; a second create for the same username is rejected as UAA does."""

    def __init__(self, fail_for: Iterable[str] = ()) -> None:
        self.fail_for = {u.lower() for u in fail_for}
        self.created: list[tuple[str, str, str]] = []

    def create_federated_identity(self, username: str, email: str, origin: str) -> IdentityRecord:
        if username.lower() in self.fail_for:
            raise ProvisioningError(f"Unable to create user {username}: HTTP 409")
        if any(u.lower() == username.lower() for u, _, _ in self.created):
            raise ProvisioningError(
                f"Unable to create user {username}: HTTP 409 Username already in use"
            )
        self.created.append((username, email, origin))
        return IdentityRecord(
            username=username, identifier=f"{username}-uaa-guid", email=email, origin=origin
        )


class FakeResolver:
    def __init__(
        self,
        groups: dict[str, Sequence[str]] | None = None,
        users: Sequence[str] = (),
        origin: str = "ldap",
    ) -> None:
        self.groups = {k: list(v) for k, v in (groups or {}).items()}
        self.users = list(users)
        self.origin = origin
        self.closed = False

    def _record(self, username: str) -> IdentityRecord:
        return IdentityRecord(
            username=username,
            identifier=f"uid={username},ou=users,dc=example,dc=com",
            email=f"{username}@example.com",
            origin=self.origin,
        )

    def resolve_members(self, group_names: Sequence[str]) -> list[IdentityRecord]:
        records: list[IdentityRecord] = []
        for name in group_names:
            if name not in self.groups:
                raise GroupLookupError(f"LDAP group {name} not found")
            records.extend(self._record(u) for u in self.groups[name])
        return records

    def resolve_users(self, user_ids: Sequence[str]) -> list[IdentityRecord]:
        return [self._record(u) for u in user_ids if u in self.users]

    def close(self) -> None:
        self.closed = True


def make_identity(username: str, origin: str = "uaa") -> IdentityRecord:
    return IdentityRecord(
        username=username,
        identifier=f"{username.lower()}-uaa-guid",
        email=f"{username.lower()}@example.com",
        origin=origin,
    )


def make_directory(*usernames: str) -> IdentityDirectory:
    return IdentityDirectory(make_identity(u) for u in usernames)


def make_config(
    orgs: Iterable[OrgConfig] = (),
    spaces: Iterable[SpaceConfig] = (),
    *,
    ldap: LdapConfig | None = None,
    config_dir: Path = Path("config"),
) -> RolesyncConfig:
    return RolesyncConfig(
        config_dir=config_dir,
        ldap=ldap or LdapConfig(origin="saml-idp"),
        orgs=list(orgs),
        spaces=list(spaces),
    )


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()
