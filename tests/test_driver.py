"""Tests for the run driver."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from rolesync.config import Settings
from rolesync.driver import RunDriver, RunReport, open_driver
from rolesync.errors import NotFoundError, RemoteOperationError
from rolesync.groups import NullGroupResolver
from rolesync.platform import TargetKind
from rolesync.roles import ORG_ROLES, SPACE_ROLES
from rolesync.schema import LdapConfig, OrgConfig, RoleConfig, SpaceConfig
from tests.conftest import (
    FakeDirectorySource,
    FakePlatform,
    FakeProvisioner,
    FakeResolver,
    make_config,
)


def _driver(platform, config, *, dry_run=False, source=None) -> RunDriver:
    return RunDriver(
        config,
        platform,
        directory_source=source or FakeDirectorySource(["alice", "bob", "carol", "dave"]),
        provisioner=FakeProvisioner(),
        resolver=FakeResolver(groups={"space-devs": ["alice"]}),
        dry_run=dry_run,
    )


@pytest.fixture
def seeded(platform: FakePlatform) -> FakePlatform:
    org = platform.add_org("test-org")
    dev = platform.add_space(org, "dev")
    platform.set_members(TargetKind.SPACE, dev.guid, "developers", ["alice", "carol"])
    return platform


def _org(**kwargs) -> OrgConfig:
    return OrgConfig(org="test-org", **kwargs)


def _space(name: str = "dev", **kwargs) -> SpaceConfig:
    return SpaceConfig(org="test-org", space=name, **kwargs)


class TestUpdateOrgUsers:
    def test_reconciles_org_roles_in_order(self, seeded):
        config = make_config([_org(manager=RoleConfig(users=["bob"]))])
        report = _driver(seeded, config).update_org_users()

        assert [r.role for r in report.results] == list(ORG_ROLES)
        listed = [c[3] for c in seeded.calls if c[0] == "list_role_users"]
        assert listed == ["billing_managers", "managers", "auditors"]
        assert seeded.members(TargetKind.ORG, "test-org-guid", "managers") == {"bob"}

    def test_missing_org_is_fatal(self, seeded):
        config = make_config([OrgConfig(org="nope")])
        with pytest.raises(NotFoundError, match=r"org \[nope\] not found"):
            _driver(seeded, config).update_org_users()

    def test_missing_org_is_fatal_in_dry_run(self, seeded):
        config = make_config([OrgConfig(org="nope")])
        with pytest.raises(NotFoundError):
            _driver(seeded, config, dry_run=True).update_org_users()


class TestUpdateSpaceUsers:
    def test_reconciles_space_roles(self, seeded):
        config = make_config(
            spaces=[
                _space(
                    developer=RoleConfig(users=["bob"], ldap_groups=["space-devs"]),
                    enable_remove_users=True,
                )
            ]
        )
        report = _driver(seeded, config).update_space_users()

        assert [r.role for r in report.results] == list(SPACE_ROLES)
        developers = report.results[0]
        assert developers.added == ["bob"]
        assert developers.removed == ["carol"]
        assert seeded.members(TargetKind.SPACE, "test-org-dev-guid", "developers") == {
            "alice",
            "bob",
        }

    def test_missing_space_is_fatal(self, seeded):
        config = make_config(spaces=[_space("qa", developer=RoleConfig(users=["bob"]))])
        with pytest.raises(NotFoundError) as exc_info:
            _driver(seeded, config).update_space_users()
        assert str(exc_info.value) == (
            "Error finding space for org test-org, space qa: "
            "space [qa] not found in org [test-org]"
        )

    def test_missing_space_in_dry_run_uses_placeholder(self, seeded):
        config = make_config(
            spaces=[_space("qa", developer=RoleConfig(users=["bob"], ldap_groups=["space-devs"]))]
        )
        report = _driver(seeded, config, dry_run=True).update_space_users()

        developers = report.results[0]
        assert developers.target.placeholder
        assert developers.target.guid == "qa-dry-run-space-guid"
        assert developers.target.org_guid == "test-org-dry-run-org-guid"
        assert developers.added == ["bob", "alice"]
        assert seeded.mutations == []
        assert not [c for c in seeded.calls if c[0] == "list_role_users"]


class TestRunAll:
    def test_org_roles_complete_before_space_roles(self, seeded):
        config = make_config(
            [_org(manager=RoleConfig(users=["bob"]))],
            [_space(developer=RoleConfig(users=["bob"]))],
        )
        _driver(seeded, config).run_all()

        kinds = [c[1] for c in seeded.calls if c[0] == "list_role_users"]
        first_space = kinds.index(TargetKind.SPACE)
        assert all(k == TargetKind.ORG for k in kinds[:first_space])
        assert first_space == len(ORG_ROLES)

    def test_directory_loaded_once_per_run(self, seeded):
        source = FakeDirectorySource(["alice", "bob", "carol"])
        config = make_config(
            [_org(manager=RoleConfig(users=["bob"]), enable_cleanup_org_users=True)],
            [_space(developer=RoleConfig(users=["alice"]))],
        )
        _driver(seeded, config, source=source).run_all()
        assert source.list_calls == 1

    def test_first_error_aborts_run(self, seeded):
        config = make_config(
            [_org(), OrgConfig(org="missing")],
            [_space(developer=RoleConfig(users=["bob"]))],
        )
        with pytest.raises(NotFoundError):
            _driver(seeded, config).run_all()
        assert not [c for c in seeded.calls if c[0] == "list_spaces"]
        assert seeded.mutations == []

    def test_federated_user_in_org_and_space_roles(self, seeded):
        provisioner = FakeProvisioner()
        config = make_config(
            [_org(auditor=RoleConfig(saml_users=["jane@example.com"]))],
            [_space(developer=RoleConfig(saml_users=["jane@example.com"]))],
        )
        driver = RunDriver(
            config,
            seeded,
            directory_source=FakeDirectorySource(["alice"]),
            provisioner=provisioner,
            resolver=FakeResolver(),
        )
        report = driver.run_all()

        assert provisioner.created == [("jane@example.com", "jane@example.com", "saml-idp")]
        assert report.skipped == []
        assert "jane@example.com" in seeded.members(TargetKind.ORG, "test-org-guid", "auditors")
        assert "jane@example.com" in seeded.members(
            TargetKind.SPACE, "test-org-dev-guid", "developers"
        )


class TestCleanupOrgUsers:
    @pytest.fixture
    def org_with_members(self, seeded):
        org = seeded.orgs["test-org"]
        dev = seeded.spaces[org.guid][0]
        seeded.org_users[org.guid] = {u: f"{u}-guid" for u in ("alice", "bob", "carol", "dave")}
        seeded.set_members(TargetKind.ORG, org.guid, "managers", ["bob"])
        seeded.set_members(TargetKind.SPACE, dev.guid, "developers", ["carol"])
        seeded.set_members(TargetKind.SPACE, dev.guid, "auditors", ["alice"])
        return seeded

    def test_removes_users_without_roles(self, org_with_members):
        config = make_config([_org(enable_cleanup_org_users=True)])
        report = _driver(org_with_members, config).cleanup_org_users()

        assert report.removed_org_users == [("test-org", "dave")]
        assert org_with_members.mutations == [("remove_org_user", "test-org-guid", "dave")]

    def test_space_developers_are_kept(self, org_with_members):
        config = make_config([_org(enable_cleanup_org_users=True)])
        _driver(org_with_members, config).cleanup_org_users()
        assert "carol" in org_with_members.org_users["test-org-guid"]

    def test_not_enabled_skips_org(self, org_with_members):
        config = make_config([_org()])
        report = _driver(org_with_members, config).cleanup_org_users()
        assert report.removed_org_users == []
        assert not [c for c in org_with_members.calls if c[0] == "list_org_users"]

    def test_dry_run_only_reports(self, org_with_members):
        config = make_config([_org(enable_cleanup_org_users=True)])
        report = _driver(org_with_members, config, dry_run=True).cleanup_org_users()
        assert report.removed_org_users == [("test-org", "dave")]
        assert org_with_members.mutations == []

    def test_failure_carries_org_context(self, org_with_members):
        org_with_members.fail_on.add("list_spaces")
        config = make_config([_org(enable_cleanup_org_users=True)])
        with pytest.raises(RemoteOperationError, match="^Error cleaning up users for org test-org"):
            _driver(org_with_members, config).cleanup_org_users()


class TestRunReport:
    def test_counts(self, seeded):
        config = make_config(
            [_org(enable_cleanup_org_users=True)],
            [_space(developer=RoleConfig(users=["bob"]), enable_remove_users=True)],
        )
        seeded.org_users["test-org-guid"] = {"zed": "zed-guid"}
        report = _driver(seeded, config).run_all()

        assert report.added_count == 1
        # alice and carol from the dev space, zed from the org
        assert report.removed_count == 3
        assert report.skipped == []

    def test_skipped_collects_provisioning_failures(self, seeded):
        config = make_config(
            spaces=[_space(developer=RoleConfig(saml_users=["erin@example.com"]))]
        )
        driver = RunDriver(
            config,
            seeded,
            directory_source=FakeDirectorySource(),
            provisioner=FakeProvisioner(fail_for=["erin@example.com"]),
            resolver=FakeResolver(),
        )
        report = driver.update_space_users()
        assert [s.username for _, s in report.skipped] == ["erin@example.com"]

    def test_empty_report(self):
        report = RunReport()
        assert report.added_count == 0
        assert report.removed_count == 0


class TestOpenDriver:
    def _settings(self) -> Settings:
        return Settings(
            system_domain="sys.example.com", user_id="admin", password="pw", client_secret="s3"
        )

    def test_wires_clients_without_ldap(self):
        with (
            patch("rolesync.auth.fetch_cf_token", return_value="cf-token") as cf,
            patch("rolesync.auth.fetch_uaa_token", return_value="uaa-token") as uaa,
        ):
            with open_driver(self._settings(), make_config(), dry_run=True) as driver:
                assert isinstance(driver, RunDriver)
                assert isinstance(driver._resolver, NullGroupResolver)

        cf.assert_called_once()
        assert cf.call_args.args == ("https://uaa.sys.example.com", "admin", "pw")
        assert uaa.call_args.args == ("https://uaa.sys.example.com", "admin", "s3")

    def test_ldap_resolver_closed_on_exit(self):
        ldap = LdapConfig(
            enabled=True,
            host="ldap.example.com",
            user_search_base="ou=users,dc=example,dc=com",
            group_search_base="ou=groups,dc=example,dc=com",
        )
        resolver = MagicMock()
        with (
            patch("rolesync.auth.fetch_cf_token", return_value="cf-token"),
            patch("rolesync.auth.fetch_uaa_token", return_value="uaa-token"),
            patch("rolesync.groups.LdapGroupResolver", return_value=resolver) as resolver_cls,
        ):
            with pytest.raises(RuntimeError):
                with open_driver(self._settings(), make_config(ldap=ldap)):
                    raise RuntimeError("boom")

        resolver_cls.assert_called_once_with(ldap, "")
        resolver.close.assert_called_once()
