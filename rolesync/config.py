"""Connection settings for rolesync.

Every setting can be passed explicitly (CLI option) and otherwise falls
back to an environment variable: ``SYSTEM_DOMAIN``, ``USER_ID``, ``PASSWORD``,
``CLIENT_SECRET``, ``CONFIG_DIR`` and ``LDAP_PASSWORD``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from rolesync.errors import ConfigurationError

ENV_SYSTEM_DOMAIN = "SYSTEM_DOMAIN"
ENV_USER_ID = "USER_ID"
ENV_PASSWORD = "PASSWORD"
ENV_CLIENT_SECRET = "CLIENT_SECRET"
ENV_CONFIG_DIR = "CONFIG_DIR"
ENV_LDAP_PASSWORD = "LDAP_PASSWORD"
ENV_SKIP_TLS_VERIFY = "SKIP_SSL_VALIDATION"

DEFAULT_CONFIG_DIR = "config"
DEFAULT_TIMEOUT_SECONDS = 30

_TRUTHY = {"true", "1", "yes"}


@dataclass(frozen=True)
class Settings:
    system_domain: str
    user_id: str
    password: str = field(repr=False)
    client_secret: str = field(repr=False)
    config_dir: Path = Path(DEFAULT_CONFIG_DIR)
    ldap_password: str = field(default="", repr=False)
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    verify_tls: bool = True

    @property
    def api_url(self) -> str:
        return f"https://api.{self.system_domain}"

    @property
    def uaa_url(self) -> str:
        return f"https://uaa.{self.system_domain}"


def _resolve(value: str | None, env_var: str) -> str:
    if value:
        return value
    return os.environ.get(env_var, "")


def get_config_dir(config_dir: Path | str | None = None) -> Path:
    """Return the config directory.

    Resolution order:
    1. explicit *config_dir*
    2. ``CONFIG_DIR`` environment variable
    3. ``./config``
    """
    if config_dir:
        return Path(config_dir)
    env = os.environ.get(ENV_CONFIG_DIR)
    if env:
        return Path(env)
    return Path(DEFAULT_CONFIG_DIR)


def load_settings(
    *,
    system_domain: str | None = None,
    user_id: str | None = None,
    password: str | None = None,
    client_secret: str | None = None,
    config_dir: Path | str | None = None,
    ldap_password: str | None = None,
) -> Settings:
    """Build :class:`Settings` from explicit values and the environment.

    Raises :class:`ConfigurationError` naming every missing required setting.
    """
    resolved = {
        ENV_SYSTEM_DOMAIN: _resolve(system_domain, ENV_SYSTEM_DOMAIN),
        ENV_USER_ID: _resolve(user_id, ENV_USER_ID),
        ENV_PASSWORD: _resolve(password, ENV_PASSWORD),
        ENV_CLIENT_SECRET: _resolve(client_secret, ENV_CLIENT_SECRET),
    }
    missing = [name.lower().replace("_", "-") for name, value in resolved.items() if not value]
    if missing:
        raise ConfigurationError(f"Must set {', '.join(missing)} properties")

    skip_verify = os.environ.get(ENV_SKIP_TLS_VERIFY, "").strip().lower() in _TRUTHY
    return Settings(
        system_domain=resolved[ENV_SYSTEM_DOMAIN],
        user_id=resolved[ENV_USER_ID],
        password=resolved[ENV_PASSWORD],
        client_secret=resolved[ENV_CLIENT_SECRET],
        config_dir=get_config_dir(config_dir),
        ldap_password=_resolve(ldap_password, ENV_LDAP_PASSWORD),
        verify_tls=not skip_verify,
    )
