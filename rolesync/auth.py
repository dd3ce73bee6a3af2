"""OAuth token retrieval from UAA."""

from __future__ import annotations

import httpx

from rolesync._log import get_logger
from rolesync.errors import RemoteOperationError

logger = get_logger("auth")

_CF_CLIENT_ID = "cf"


def _request_token(
    uaa_url: str,
    data: dict[str, str],
    auth: tuple[str, str],
    *,
    timeout: int,
    verify: bool,
    transport: httpx.BaseTransport | None,
) -> str:
    url = f"{uaa_url.rstrip('/')}/oauth/token"
    try:
        with httpx.Client(timeout=timeout, verify=verify, transport=transport) as client:
            resp = client.post(
                url, data=data, auth=auth, headers={"Accept": "application/json"}
            )
            resp.raise_for_status()
            payload = resp.json()
    except httpx.HTTPStatusError as e:
        raise RemoteOperationError(
            f"Token request ({data['grant_type']}) failed: HTTP {e.response.status_code}",
            status_code=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        raise RemoteOperationError(f"Token request to {url} failed: {e}") from e
    except ValueError as e:
        raise RemoteOperationError(f"Token response from {url} is not JSON: {e}") from e

    token = payload.get("access_token")
    if not token:
        raise RemoteOperationError(f"Token response from {url} has no access_token")
    return token


def fetch_cf_token(
    uaa_url: str,
    user_id: str,
    password: str,
    *,
    timeout: int = 30,
    verify: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Return a Cloud Controller token using the password grant."""
    logger.debug("Requesting CF token for %s", user_id)
    return _request_token(
        uaa_url,
        {"grant_type": "password", "username": user_id, "password": password},
        (_CF_CLIENT_ID, ""),
        timeout=timeout,
        verify=verify,
        transport=transport,
    )


def fetch_uaa_token(
    uaa_url: str,
    client_id: str,
    client_secret: str,
    *,
    timeout: int = 30,
    verify: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Return a UAA admin token using the client credentials grant."""
    logger.debug("Requesting UAA token for client %s", client_id)
    return _request_token(
        uaa_url,
        {"grant_type": "client_credentials"},
        (client_id, client_secret),
        timeout=timeout,
        verify=verify,
        transport=transport,
    )
