"""
Environment resolver — derives an ``EnvironmentConfig`` from its three inputs.

``resolve_environment(project, environment_kind, domain_base)`` is a pure
function: no filesystem, no clock, no settings.  Calling it twice with the
same arguments yields equal configs with identical JSON dumps.

Domain rules (``env`` is the environment kind):

    EMR            {display}.{base}     |  {env}-{display}.{base}
    telehealth     vcbknd.{base}        |  vcbknd-{env}.{base}
    jitsi          vc.{base}            |  vc-{env}.{base}
    proxy admin    npm.{base}           |  npm-{env}.{base}
    CMS            {base}               |  {env}.{base}

The left column applies to production, the right to everything else.
``display`` is the project name, or ``notes`` for the official variant.
"""

from __future__ import annotations

import logging
import re

from telestack.core.config.catalog import FOLDER_NAMES, ports_for
from telestack.core.errors import ConfigError
from telestack.core.models.environment import EnvironmentConfig, EnvironmentKind, NetworkNames

logger = logging.getLogger(__name__)

OFFICIAL_MARKER = "official"
OFFICIAL_DISPLAY_NAME = "notes"

_PROJECT_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_DOMAIN_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$")


def parse_environment_kind(value: str) -> EnvironmentKind:
    """Map user input to an ``EnvironmentKind``.

    Raises:
        ConfigError: ``value`` is not one of dev, staging, test, production.
    """
    try:
        return EnvironmentKind(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(k.value for k in EnvironmentKind)
        raise ConfigError(
            f"Unknown environment '{value}' (expected one of: {valid})"
        ) from None


def _prefixed(prefix: str, kind: EnvironmentKind, base: str) -> str:
    if kind == EnvironmentKind.PRODUCTION:
        return f"{prefix}.{base}"
    return f"{prefix}-{kind.value}.{base}"


def derive_domains(display: str, kind: EnvironmentKind, base: str) -> dict[str, str]:
    """Per-component domains for one environment."""
    production = kind == EnvironmentKind.PRODUCTION
    return {
        "proxy": _prefixed("npm", kind, base),
        "telehealth": _prefixed("vcbknd", kind, base),
        "openemr": f"{display}.{base}" if production else f"{kind.value}-{display}.{base}",
        "jitsi": _prefixed("vc", kind, base),
        "wordpress": base if production else f"{kind.value}.{base}",
    }


def derive_network_names(project: str, kind: EnvironmentKind) -> NetworkNames:
    return NetworkNames(
        proxy=f"proxy-{project}-{kind.value}",
        frontend=f"frontend-{project}-{kind.value}",
        shared=f"{project}-shared-network",
    )


def _ensure_unique(label: str, values: dict[str, str]) -> None:
    seen: dict[str, str] = {}
    for component, value in values.items():
        if value in seen:
            raise ConfigError(
                f"{label} '{value}' is shared by '{seen[value]}' and '{component}'"
            )
        seen[value] = component


def resolve_environment(
    project: str,
    environment_kind: str | EnvironmentKind,
    domain_base: str,
) -> EnvironmentConfig:
    """Resolve the full configuration of one environment.

    Args:
        project: Project identifier (lowercase letters, digits, hyphens).
        environment_kind: dev, staging, test or production.
        domain_base: Registered domain the environment hangs under.

    Returns:
        Frozen EnvironmentConfig.

    Raises:
        ConfigError: Any input is invalid.
    """
    kind = parse_environment_kind(environment_kind)

    project = (project or "").strip().lower()
    if not _PROJECT_RE.match(project):
        raise ConfigError(
            f"Invalid project name '{project}' "
            "(use lowercase letters, digits and hyphens)"
        )

    domain_base = (domain_base or "").strip().lower().rstrip(".")
    if not _DOMAIN_RE.match(domain_base):
        raise ConfigError(f"Invalid domain base '{domain_base}'")

    official = OFFICIAL_MARKER in project
    display = OFFICIAL_DISPLAY_NAME if official else project

    domains = derive_domains(display, kind, domain_base)
    folders = dict(FOLDER_NAMES)
    _ensure_unique("Domain", domains)
    _ensure_unique("Folder name", folders)

    config = EnvironmentConfig(
        project_name=project,
        environment_kind=kind,
        domain_base=domain_base,
        official=official,
        display_name=display,
        component_ports=ports_for(kind, official),
        folder_names=folders,
        network_names=derive_network_names(project, kind),
        domains=domains,
    )
    logger.debug("Resolved %s (%s variant)", config.environment_dir_name,
                 "official" if official else "custom")
    return config
