"""Pydantic models for the declarative org/space role configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from rolesync.roles import DesiredMembership, RoleKind


def _clean_names(values: list[str]) -> list[str]:
    cleaned: list[str] = []
    for value in values:
        value = value.strip()
        if not value:
            raise ValueError("principal names must not be blank")
        cleaned.append(value)
    return cleaned


class RoleConfig(BaseModel):
    """Desired principals for one role on one org or space."""

    users: list[str] = []
    ldap_users: list[str] = []
    saml_users: list[str] = []
    ldap_groups: list[str] = []
    ldap_group: str | None = None  # legacy single-group form, merged into ldap_groups

    @field_validator("users", "ldap_users", "saml_users", "ldap_groups")
    @classmethod
    def _strip(cls, values: list[str]) -> list[str]:
        return _clean_names(values)

    def group_names(self) -> list[str]:
        names = list(self.ldap_groups)
        if self.ldap_group and self.ldap_group.strip():
            names.insert(0, self.ldap_group.strip())
        seen: set[str] = set()
        unique: list[str] = []
        for name in names:
            if name.lower() not in seen:
                seen.add(name.lower())
                unique.append(name)
        return unique

    def is_empty(self) -> bool:
        return not (self.users or self.ldap_users or self.saml_users or self.group_names())

    def to_desired(self, remove_extraneous: bool) -> DesiredMembership:
        return DesiredMembership(
            internal_users=list(self.users),
            group_names=self.group_names(),
            federated_users=list(self.saml_users),
            ldap_users=list(self.ldap_users),
            remove_extraneous=remove_extraneous,
        )


class OrgConfig(BaseModel):
    org: str = Field(min_length=1)
    billing_manager: RoleConfig = RoleConfig()
    manager: RoleConfig = RoleConfig()
    auditor: RoleConfig = RoleConfig()
    enable_remove_users: bool = False
    enable_cleanup_org_users: bool = False

    def role_configs(self) -> list[tuple[RoleKind, RoleConfig]]:
        return [
            (RoleKind.ORG_BILLING_MANAGER, self.billing_manager),
            (RoleKind.ORG_MANAGER, self.manager),
            (RoleKind.ORG_AUDITOR, self.auditor),
        ]


class SpaceConfig(BaseModel):
    org: str = Field(min_length=1)
    space: str = Field(min_length=1)
    developer: RoleConfig = RoleConfig()
    manager: RoleConfig = RoleConfig()
    auditor: RoleConfig = RoleConfig()
    enable_remove_users: bool = False

    def role_configs(self) -> list[tuple[RoleKind, RoleConfig]]:
        return [
            (RoleKind.SPACE_DEVELOPER, self.developer),
            (RoleKind.SPACE_MANAGER, self.manager),
            (RoleKind.SPACE_AUDITOR, self.auditor),
        ]


class OrgList(BaseModel):
    orgs: list[str] = []

    @field_validator("orgs")
    @classmethod
    def _unique(cls, values: list[str]) -> list[str]:
        values = _clean_names(values)
        if len(set(values)) != len(values):
            raise ValueError("Duplicate org name in orgs list")
        return values


class SpaceList(BaseModel):
    spaces: list[str] = []

    @field_validator("spaces")
    @classmethod
    def _unique(cls, values: list[str]) -> list[str]:
        values = _clean_names(values)
        if len(set(values)) != len(values):
            raise ValueError("Duplicate space name in spaces list")
        return values


class LdapConfig(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = 389
    use_tls: bool = False
    bind_dn: str = ""
    user_search_base: str = ""
    user_name_attribute: str = "uid"
    user_mail_attribute: str = "mail"
    group_search_base: str = ""
    group_attribute: str = "member"
    origin: str = "ldap"

    @model_validator(mode="after")
    def _require_connection(self) -> LdapConfig:
        if not self.enabled:
            return self
        missing = [
            name
            for name in ("host", "user_search_base", "group_search_base")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"LDAP is enabled but {', '.join(missing)} is not set")
        return self
