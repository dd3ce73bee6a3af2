"""Cloud Controller (v2) client and org/space target resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import httpx

from rolesync._log import get_logger
from rolesync.errors import NotFoundError, RemoteOperationError

logger = get_logger("platform")

DRY_RUN_SPACE_SUFFIX = "-dry-run-space-guid"
DRY_RUN_ORG_SUFFIX = "-dry-run-org-guid"


class TargetKind(StrEnum):
    ORG = "org"
    SPACE = "space"


@dataclass(frozen=True)
class OrgRef:
    name: str
    guid: str


@dataclass(frozen=True)
class SpaceRef:
    name: str
    guid: str
    org_name: str
    org_guid: str
    placeholder: bool = False


class PlatformClient(Protocol):
    """Operations the reconciliation engine needs from the platform API."""

    def find_org(self, name: str) -> OrgRef | None: ...

    def list_spaces(self, org_guid: str) -> list[SpaceRef]: ...

    def list_org_users(self, org_guid: str) -> dict[str, str]: ...

    def list_role_users(self, kind: TargetKind, guid: str, role_path: str) -> dict[str, str]: ...

    def associate_role(
        self, kind: TargetKind, guid: str, role_path: str, username: str
    ) -> None: ...

    def remove_role(self, kind: TargetKind, guid: str, role_path: str, username: str) -> None: ...

    def associate_org_user(self, org_guid: str, username: str) -> None: ...

    def remove_org_user(self, org_guid: str, username: str) -> None: ...


_COLLECTIONS = {TargetKind.ORG: "organizations", TargetKind.SPACE: "spaces"}


def users_to_member_set(resources: list[dict[str, Any]]) -> dict[str, str]:
    """Map lower-cased username to user guid; users without a username are skipped."""
    members: dict[str, str] = {}
    for resource in resources:
        username = resource.get("entity", {}).get("username")
        if not username:
            continue
        members[username.lower()] = resource["metadata"]["guid"]
    return members


class CloudControllerClient:
    """Blocking Cloud Controller v2 client. Every failure raises RemoteOperationError."""

    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        timeout: int = 30,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._verify = verify
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._api_url,
            headers={"Authorization": f"bearer {self._token}", "Accept": "application/json"},
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            with self._client() as client:
                resp = client.request(method, path, json=json, params=params)
                resp.raise_for_status()
                return resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            raise RemoteOperationError(
                f"{method} {path} failed: HTTP {e.response.status_code} {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise RemoteOperationError(f"{method} {path} returned a non-JSON body: {e}") from e

    def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        resources: list[dict[str, Any]] = []
        data = self._request("GET", path, params=params)
        resources.extend(data.get("resources", []))
        while data.get("next_url"):
            data = self._request("GET", data["next_url"])
            resources.extend(data.get("resources", []))
        return resources

    def find_org(self, name: str) -> OrgRef | None:
        resources = self._paginate("/v2/organizations", params={"q": f"name:{name}"})
        for resource in resources:
            if resource["entity"]["name"] == name:
                return OrgRef(name=name, guid=resource["metadata"]["guid"])
        return None

    def list_spaces(self, org_guid: str) -> list[SpaceRef]:
        resources = self._paginate(
            "/v2/spaces", params={"q": f"organization_guid:{org_guid}"}
        )
        return [
            SpaceRef(
                name=r["entity"]["name"],
                guid=r["metadata"]["guid"],
                org_name="",
                org_guid=r["entity"].get("organization_guid", org_guid),
            )
            for r in resources
        ]

    def list_org_users(self, org_guid: str) -> dict[str, str]:
        return users_to_member_set(self._paginate(f"/v2/organizations/{org_guid}/users"))

    def list_role_users(self, kind: TargetKind, guid: str, role_path: str) -> dict[str, str]:
        return users_to_member_set(self._paginate(f"/v2/{_COLLECTIONS[kind]}/{guid}/{role_path}"))

    def associate_role(self, kind: TargetKind, guid: str, role_path: str, username: str) -> None:
        path = f"/v2/{_COLLECTIONS[kind]}/{guid}/{role_path}"
        self._request("PUT", path, json={"username": username})

    def remove_role(self, kind: TargetKind, guid: str, role_path: str, username: str) -> None:
        path = f"/v2/{_COLLECTIONS[kind]}/{guid}/{role_path}/remove"
        self._request("POST", path, json={"username": username})

    def associate_org_user(self, org_guid: str, username: str) -> None:
        self._request("PUT", f"/v2/organizations/{org_guid}/users", json={"username": username})

    def remove_org_user(self, org_guid: str, username: str) -> None:
        self._request(
            "POST", f"/v2/organizations/{org_guid}/users/remove", json={"username": username}
        )


class TargetResolver:
    """Resolve configured org and space names to platform identifiers.

    In dry-run mode a missing space resolves to a placeholder with
    deterministic synthetic ids so a run can preview spaces that do not
    exist yet. A missing org is always an error.
    """

    def __init__(self, client: PlatformClient, *, dry_run: bool = False) -> None:
        self._client = client
        self._dry_run = dry_run

    def find_org(self, name: str) -> OrgRef:
        org = self._client.find_org(name)
        if org is None:
            raise NotFoundError(f"org [{name}] not found")
        return org

    def find_space(self, org_name: str, space_name: str) -> SpaceRef:
        org = self.find_org(org_name)
        for space in self._client.list_spaces(org.guid):
            if space.name == space_name:
                return SpaceRef(
                    name=space.name, guid=space.guid, org_name=org.name, org_guid=org.guid
                )
        if self._dry_run:
            logger.debug(
                "[dry-run]: space %s/%s not found, using placeholder", org_name, space_name
            )
            return SpaceRef(
                name=space_name,
                guid=f"{space_name}{DRY_RUN_SPACE_SUFFIX}",
                org_name=org_name,
                org_guid=f"{org_name}{DRY_RUN_ORG_SUFFIX}",
                placeholder=True,
            )
        raise NotFoundError(f"space [{space_name}] not found in org [{org_name}]")
