"""Directory-group resolution: LDAP group names and user ids to identities."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from rolesync._log import get_logger
from rolesync.errors import ConfigurationError, GroupLookupError
from rolesync.identity import IdentityRecord
from rolesync.schema import LdapConfig

logger = get_logger("groups")

# success with no entries, noSuchObject
_EMPTY_RESULT_CODES = (0, 32)


class GroupResolver(Protocol):
    def resolve_members(self, group_names: Sequence[str]) -> list[IdentityRecord]: ...

    def resolve_users(self, user_ids: Sequence[str]) -> list[IdentityRecord]: ...

    def close(self) -> None: ...


class NullGroupResolver:
    """Resolver used when LDAP is disabled; any lookup is a config error."""

    def resolve_members(self, group_names: Sequence[str]) -> list[IdentityRecord]:
        if group_names:
            raise ConfigurationError(
                f"LDAP groups {list(group_names)} are configured but LDAP is not enabled"
            )
        return []

    def resolve_users(self, user_ids: Sequence[str]) -> list[IdentityRecord]:
        if user_ids:
            raise ConfigurationError(
                f"LDAP users {list(user_ids)} are configured but LDAP is not enabled"
            )
        return []

    def close(self) -> None:
        pass


def _is_dn(value: str) -> bool:
    return "=" in value and "," in value


def _first(values: Any) -> str:
    if isinstance(values, list):
        return str(values[0]) if values else ""
    return str(values) if values is not None else ""


class LdapGroupResolver:
    """Resolve LDAP groups and user ids with ``ldap3``.

    Group membership values may be full DNs (``member``/``uniqueMember``)
    or bare user ids (``memberUid``); both are looked up as user entries.
    Members are deduplicated case-insensitively, keeping first-seen order.
    """

    def __init__(
        self,
        config: LdapConfig,
        bind_password: str,
        *,
        connection: Any | None = None,
    ) -> None:
        self._config = config
        self._bind_password = bind_password
        self._conn = connection

    def _connection(self) -> Any:
        if self._conn is None:
            server = ldap3.Server(
                self._config.host,
                port=self._config.port,
                use_ssl=self._config.use_tls,
                get_info=ldap3.NONE,
            )
            try:
                self._conn = ldap3.Connection(
                    server,
                    user=self._config.bind_dn or None,
                    password=self._bind_password or None,
                    auto_bind=True,
                    receive_timeout=15,
                )
            except LDAPException as e:
                raise GroupLookupError(f"Cannot bind to LDAP {self._config.host}: {e}") from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.unbind()
            self._conn = None

    def _search(
        self, base: str, search_filter: str, attributes: list[str], *, scope: str = ldap3.SUBTREE
    ) -> list[tuple[str, dict[str, Any]]]:
        conn = self._connection()
        try:
            found = conn.search(base, search_filter, search_scope=scope, attributes=attributes)
        except LDAPException as e:
            raise GroupLookupError(f"LDAP search {search_filter} under {base} failed: {e}") from e
        if not found:
            outcome = conn.result or {}
            if outcome.get("result", 0) not in _EMPTY_RESULT_CODES:
                raise GroupLookupError(
                    f"LDAP search {search_filter} under {base} failed: "
                    f"{outcome.get('description')} ({outcome.get('result')})"
                )
            return []
        return [(entry.entry_dn, entry.entry_attributes_as_dict) for entry in conn.entries]

    def _user_attributes(self) -> list[str]:
        return [self._config.user_name_attribute, self._config.user_mail_attribute]

    def _record(self, dn: str, attrs: dict[str, Any]) -> IdentityRecord | None:
        username = _first(attrs.get(self._config.user_name_attribute))
        if not username:
            logger.warning(
                "LDAP entry %s has no %s attribute", dn, self._config.user_name_attribute
            )
            return None
        return IdentityRecord(
            username=username,
            identifier=dn,
            email=_first(attrs.get(self._config.user_mail_attribute)),
            origin=self._config.origin,
        )

    def _find_user_by_id(self, user_id: str) -> IdentityRecord | None:
        search_filter = f"({self._config.user_name_attribute}={escape_filter_chars(user_id)})"
        entries = self._search(
            self._config.user_search_base, search_filter, self._user_attributes()
        )
        if not entries:
            return None
        return self._record(*entries[0])

    def _find_user_by_dn(self, dn: str) -> IdentityRecord | None:
        entries = self._search(
            dn, "(objectClass=*)", self._user_attributes(), scope=ldap3.BASE
        )
        if not entries:
            return None
        return self._record(*entries[0])

    def _group_member_values(self, group_name: str) -> list[str]:
        search_filter = f"(cn={escape_filter_chars(group_name)})"
        entries = self._search(
            self._config.group_search_base, search_filter, [self._config.group_attribute]
        )
        if not entries:
            raise GroupLookupError(
                f"LDAP group {group_name} not found under {self._config.group_search_base}"
            )
        _, attrs = entries[0]
        values = attrs.get(self._config.group_attribute) or []
        return [str(v) for v in values]

    def resolve_members(self, group_names: Sequence[str]) -> list[IdentityRecord]:
        members: dict[str, IdentityRecord] = {}
        for group_name in group_names:
            values = self._group_member_values(group_name)
            logger.debug("LDAP group %s has %d member(s)", group_name, len(values))
            for value in values:
                if _is_dn(value):
                    record = self._find_user_by_dn(value)
                else:
                    record = self._find_user_by_id(value)
                if record is None:
                    logger.warning("Member %s of group %s not found in LDAP", value, group_name)
                    continue
                members.setdefault(record.key, record)
        return list(members.values())

    def resolve_users(self, user_ids: Sequence[str]) -> list[IdentityRecord]:
        users: dict[str, IdentityRecord] = {}
        for user_id in user_ids:
            record = self._find_user_by_id(user_id)
            if record is None:
                logger.warning("User entry %s not found in LDAP", user_id)
                continue
            users.setdefault(record.key, record)
        return list(users.values())
