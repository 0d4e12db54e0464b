"""
Configuration resource loader.

Loads the default-permission policy tables from YAML. The bundled file
lives in gymdesk/resources/; a deployment can point
PERMISSION_POLICIES_PATH at its own copy.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

import yaml

from gymdesk.config import get_settings
from gymdesk.core.models import PermissionSet, StaffRole

logger = logging.getLogger(__name__)

DEFAULT_POLICIES_PATH = Path(__file__).parent / "resources" / "permission_policies.yaml"

PermissionPolicies = dict[str, dict[StaffRole, PermissionSet]]


def parse_permission_policies(data: dict) -> PermissionPolicies:
    """
    Validate and convert the raw YAML mapping.

        {policy_name: {role: [flag, ...]}}

    Raises ValueError for unknown roles or flags, so a typo cannot
    silently grant or drop a permission.
    """
    if not isinstance(data, dict) or not data:
        raise ValueError("Permission policy file must map policy names to role tables")

    policies: PermissionPolicies = {}
    for name, table in data.items():
        if not isinstance(table, dict):
            raise ValueError(f"Policy {name!r} must map roles to flag lists")

        roles: dict[StaffRole, PermissionSet] = {}
        for role_name, flags in table.items():
            try:
                role = StaffRole(role_name)
            except ValueError:
                raise ValueError(f"Policy {name!r}: unknown role {role_name!r}")

            flags = flags or []
            unknown = [f for f in flags if f not in PermissionSet.FLAGS]
            if unknown:
                raise ValueError(f"Policy {name!r}, role {role_name!r}: unknown flags {unknown}")
            roles[role] = PermissionSet(**{flag: True for flag in flags})

        policies[str(name)] = roles
    return policies


def load_permission_policies(path: Path | str | None = None) -> PermissionPolicies:
    path = Path(path) if path else DEFAULT_POLICIES_PATH
    with open(path) as f:
        data = yaml.safe_load(f)

    policies = parse_permission_policies(data)
    logger.debug("Loaded %d permission policies from %s", len(policies), path)
    return policies


@lru_cache
def get_permission_policies() -> PermissionPolicies:
    """Policies from the configured file (cached)."""
    return load_permission_policies(get_settings().permission_policies_path or None)
