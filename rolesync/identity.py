"""Identity directory: a point-in-time snapshot of the platform user store.

The snapshot is loaded once per run and shared read-only across every
reconciliation. Provisioning a federated identity never mutates it;
:meth:`IdentityDirectory.with_record` returns a private copy instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Protocol

import httpx

from rolesync._log import get_logger
from rolesync.errors import ProvisioningError, RemoteOperationError

logger = get_logger("identity")

_PAGE_SIZE = 500


@dataclass(frozen=True)
class IdentityRecord:
    username: str
    identifier: str
    email: str = ""
    origin: str = "uaa"

    @property
    def key(self) -> str:
        return self.username.lower()


class IdentityDirectory(Mapping[str, IdentityRecord]):
    """Read-only mapping of lower-cased username to :class:`IdentityRecord`."""

    def __init__(self, records: Iterable[IdentityRecord] = ()) -> None:
        self._records: dict[str, IdentityRecord] = {r.key: r for r in records}

    def __getitem__(self, username: str) -> IdentityRecord:
        return self._records[username.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def with_record(self, record: IdentityRecord) -> IdentityDirectory:
        return self.with_records([record])

    def with_records(self, records: Iterable[IdentityRecord]) -> IdentityDirectory:
        copy = IdentityDirectory()
        copy._records = {**self._records, **{r.key: r for r in records}}
        return copy


class DirectorySource(Protocol):
    def list_users(self) -> list[IdentityRecord]: ...


class IdentityProvisioner(Protocol):
    def create_federated_identity(
        self, username: str, email: str, origin: str
    ) -> IdentityRecord: ...


def load_directory(source: DirectorySource) -> IdentityDirectory:
    """Take a snapshot of every user known to *source*."""
    directory = IdentityDirectory(source.list_users())
    logger.debug("Loaded %d user(s) into the identity directory", len(directory))
    return directory


class UaaClient:
    """Minimal UAA SCIM client: list users and create external users."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        dry_run: bool = False,
        timeout: int = 30,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._dry_run = dry_run
        self._timeout = timeout
        self._verify = verify
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            headers={"Authorization": f"bearer {self._token}", "Accept": "application/json"},
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
        )

    def list_users(self) -> list[IdentityRecord]:
        records: list[IdentityRecord] = []
        start = 1
        try:
            with self._client() as client:
                while True:
                    resp = client.get(
                        "/Users",
                        params={
                            "attributes": "id,userName,emails,origin",
                            "startIndex": start,
                            "count": _PAGE_SIZE,
                        },
                    )
                    resp.raise_for_status()
                    data = resp.json()
                    resources = data.get("resources", [])
                    records.extend(_record_from_scim(r) for r in resources)
                    total = data.get("totalResults", 0)
                    start += len(resources)
                    if not resources or start > total:
                        break
        except httpx.HTTPStatusError as e:
            raise RemoteOperationError(
                f"Error listing UAA users: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"Error listing UAA users: {e}") from e
        except ValueError as e:
            raise RemoteOperationError(f"Error listing UAA users: non-JSON response: {e}") from e
        return records

    def create_federated_identity(self, username: str, email: str, origin: str) -> IdentityRecord:
        if self._dry_run:
            logger.info("[dry-run]: creating user %s with origin %s", username, origin)
            return IdentityRecord(
                username=username,
                identifier=f"{username}-dry-run-user-guid",
                email=email,
                origin=origin,
            )

        logger.info("creating user %s with origin %s", username, origin)
        payload = {
            "userName": username,
            "emails": [{"value": email, "primary": True}],
            "externalId": username,
            "origin": origin,
        }
        try:
            with self._client() as client:
                resp = client.post("/Users", json=payload)
                resp.raise_for_status()
                return _record_from_scim(resp.json())
        except httpx.HTTPStatusError as e:
            raise ProvisioningError(
                f"Unable to create user {username}: HTTP {e.response.status_code} "
                f"{e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ProvisioningError(f"Unable to create user {username}: {e}") from e
        except ValueError as e:
            raise ProvisioningError(
                f"Unable to create user {username}: non-JSON response: {e}"
            ) from e


def _record_from_scim(resource: dict) -> IdentityRecord:
    emails = resource.get("emails") or []
    email = emails[0].get("value", "") if emails else ""
    return IdentityRecord(
        username=resource["userName"],
        identifier=resource["id"],
        email=email,
        origin=resource.get("origin", "uaa"),
    )
