"""Load and validate a rolesync config directory.

Layout::

    <config_dir>/
      ldap.yaml                 optional, LDAP/SAML settings
      orgs.yaml                 list of managed orgs
      <org>/org.yaml            org role membership
      <org>/spaces.yaml         optional, list of managed spaces
      <org>/<space>/space.yaml  space role membership
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rolesync._log import get_logger
from rolesync._yaml import load_optional_yaml_model, load_yaml_model
from rolesync.errors import ConfigurationError
from rolesync.schema import LdapConfig, OrgConfig, OrgList, SpaceConfig, SpaceList

logger = get_logger("loader")

LDAP_FILE = "ldap.yaml"
ORGS_FILE = "orgs.yaml"
ORG_FILE = "org.yaml"
SPACES_FILE = "spaces.yaml"
SPACE_FILE = "space.yaml"


@dataclass
class RolesyncConfig:
    config_dir: Path
    ldap: LdapConfig = field(default_factory=LdapConfig)
    orgs: list[OrgConfig] = field(default_factory=list)
    spaces: list[SpaceConfig] = field(default_factory=list)

    def spaces_for(self, org_name: str) -> list[SpaceConfig]:
        return [s for s in self.spaces if s.org == org_name]


def load_config(config_dir: Path) -> RolesyncConfig:
    """Read every org and space config under *config_dir*."""
    if not config_dir.is_dir():
        raise ConfigurationError(f"Config directory not found: {config_dir}")

    ldap = load_optional_yaml_model(config_dir / LDAP_FILE, LdapConfig)
    org_list = load_yaml_model(config_dir / ORGS_FILE, OrgList)

    config = RolesyncConfig(config_dir=config_dir, ldap=ldap)
    for org_name in org_list.orgs:
        org_dir = config_dir / org_name
        org = load_yaml_model(org_dir / ORG_FILE, OrgConfig)
        if org.org != org_name:
            raise ConfigurationError(
                f"{org_dir / ORG_FILE} declares org '{org.org}' but is listed as '{org_name}'"
            )
        config.orgs.append(org)

        space_list = load_optional_yaml_model(org_dir / SPACES_FILE, SpaceList)
        for space_name in space_list.spaces:
            space_path = org_dir / space_name / SPACE_FILE
            space = load_yaml_model(space_path, SpaceConfig)
            if space.org != org_name or space.space != space_name:
                raise ConfigurationError(
                    f"{space_path} declares {space.org}/{space.space} "
                    f"but is listed as {org_name}/{space_name}"
                )
            config.spaces.append(space)

    logger.debug(
        "Loaded %d org(s) and %d space(s) from %s", len(config.orgs), len(config.spaces), config_dir
    )
    return config
