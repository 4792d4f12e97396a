"""
Static component catalog.

Lookup tables for the five components: where their sources live, which
host ports and folders they get, which compose files and env templates
are candidates, and which networks their containers join.  Nothing here
reads the filesystem; ``component_specs()`` and ``topology()`` bind the
tables to one resolved environment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from telestack.core.models.component import ComponentSpec, ComposeChain, NetworkTopologyEntry
from telestack.core.models.environment import EnvironmentConfig, EnvironmentKind

# Start order: the proxy first so the control plane is up by the time
# routes are published.
COMPONENT_ORDER = ("proxy", "telehealth", "openemr", "jitsi", "wordpress")
OPTIONAL_COMPONENTS = frozenset({"wordpress"})

FOLDER_NAMES: dict[str, str] = {
    "proxy": "proxy",
    "telehealth": "telehealth",
    "openemr": "openemr",
    "jitsi": "jitsi-docker",
    "wordpress": "wordpress",
}

# Host ports before offsets.  Every port in a config is
# base + environment offset + variant offset, so ports never collide
# inside one config.
BASE_PORTS: dict[str, dict[str, int]] = {
    "proxy": {"http": 80, "https": 443, "admin": 281},
    "telehealth": {"http": 8090, "db": 3307},
    "openemr": {"http": 8080, "https": 8443},
    "jitsi": {"http": 8000, "https": 8453, "jvb": 10000},
    "wordpress": {"http": 8020, "db": 3308},
}

ENVIRONMENT_PORT_OFFSET: dict[EnvironmentKind, int] = {
    EnvironmentKind.PRODUCTION: 0,
    EnvironmentKind.STAGING: 100,
    EnvironmentKind.TEST: 200,
    EnvironmentKind.DEV: 300,
}

VARIANT_PORT_OFFSET: dict[str, int] = {
    "official": 0,
    "custom": 50,
}

DEFAULT_ENV_TEMPLATES = (
    ".env.{env}",
    ".env.example",
    "env.example",
    ".env.template",
)

# Never copied by the directory sync: VCS metadata, and the files the
# materializer writes itself.
SYNC_EXCLUDES = frozenset({
    ".git", ".github", "node_modules", "__pycache__",
    ".env", "docker-compose.yml", "docker-compose.override.yml",
})


@dataclass(frozen=True)
class ComponentTemplate:
    """Catalog entry; turned into a ``ComponentSpec`` per environment."""

    name: str
    title: str
    source: str
    compose_service: str
    name_pattern: str
    networks: tuple[str, ...]
    route_port: int | None = 80
    websocket: bool = False
    frontend_override: bool = False
    official_dev: str | None = None
    official_prod: str | None = None
    dev_mode_overrides: dict[str, str] = field(default_factory=dict)
    preserved_env: tuple[str, ...] = ()


CATALOG: dict[str, ComponentTemplate] = {
    "proxy": ComponentTemplate(
        name="proxy",
        title="Nginx Proxy Manager",
        source="templates/proxy",
        compose_service="proxy",
        name_pattern=r"{project}.*{env}.*proxy.*|proxy.*{project}.*{env}.*",
        networks=("proxy", "frontend", "shared"),
        route_port=None,
    ),
    "telehealth": ComponentTemplate(
        name="telehealth",
        title="Telehealth",
        source="telehealth",
        compose_service="app",
        name_pattern=r"{project}.*{env}.*telehealth.*app.*|telehealth.*{project}.*{env}.*app.*",
        networks=("proxy", "shared"),
        frontend_override=True,
        dev_mode_overrides={"APP_ENV": "local", "APP_DEBUG": "true"},
    ),
    "openemr": ComponentTemplate(
        name="openemr",
        title="OpenEMR",
        source="openemr",
        compose_service="openemr",
        name_pattern=r"{project}.*{env}.*openemr.*|openemr.*{project}.*{env}.*",
        networks=("proxy", "shared"),
        official_dev="docker/development-easy/docker-compose.yml",
        official_prod="docker/production/docker-compose.yml",
        dev_mode_overrides={"EASY_DEV_MODE": "yes", "XDEBUG_ON": "1"},
        preserved_env=("TELEHEALTH_API_TOKEN",),
    ),
    "jitsi": ComponentTemplate(
        name="jitsi",
        title="Jitsi",
        source="jitsi-docker",
        compose_service="web",
        name_pattern=r"{project}.*{env}.*jitsi.*web.*|jitsi.*{project}.*{env}.*web.*",
        networks=("proxy",),
        websocket=True,
        frontend_override=True,
    ),
    "wordpress": ComponentTemplate(
        name="wordpress",
        title="WordPress",
        source="templates/wordpress",
        compose_service="wordpress",
        name_pattern=r"{project}.*{env}.*wordpress.*|wordpress.*{project}.*{env}.*",
        networks=("proxy",),
        dev_mode_overrides={"WORDPRESS_DEBUG": "1"},
    ),
}


# Shared-database mode: one MariaDB per environment instead of one per
# component.  Database, user and password are all the component name.
SHARED_DB = "shared-db"
SHARED_DATABASES = ("openemr", "telehealth", "wordpress")


def shared_db_project(config: EnvironmentConfig) -> str:
    """Compose project, and container name, of the shared database."""
    return f"{config.environment_dir_name}-{SHARED_DB}"


def shared_db_values(name: str, config: EnvironmentConfig) -> dict[str, str]:
    """Env keys pointing a component at the shared database."""
    host = shared_db_project(config)
    if name == "openemr":
        return {"MYSQL_HOST": host, "MYSQL_DATABASE": "openemr"}
    if name == "telehealth":
        return {
            "DB_HOST": host,
            "DB_DATABASE": "telehealth",
            "DB_USERNAME": "telehealth",
            "DB_PASSWORD": "telehealth",
        }
    if name == "wordpress":
        return {"WORDPRESS_DB_HOST": host, "WORDPRESS_DB_NAME": "wordpress"}
    return {}


def variant_of(official: bool) -> str:
    return "official" if official else "custom"


def ports_for(kind: EnvironmentKind, official: bool) -> dict[str, dict[str, int]]:
    """Host port table for one environment kind and project variant."""
    offset = ENVIRONMENT_PORT_OFFSET[kind] + VARIANT_PORT_OFFSET[variant_of(official)]
    return {
        component: {role: port + offset for role, port in roles.items()}
        for component, roles in BASE_PORTS.items()
    }


def env_values(
    name: str,
    config: EnvironmentConfig,
    target_dir: Path,
    *,
    shared_db: bool = False,
) -> dict[str, str]:
    """Ordered substitution rules (key → value) for a component's env file."""
    nets = config.network_names
    values: dict[str, str] = {
        "COMPOSE_PROJECT_NAME": config.compose_project(name),
        "DOMAIN": config.domains[name],
        "FRONTEND_NETWORK": nets.frontend,
        "PROXY_NETWORK": nets.proxy,
        "SHARED_NETWORK": nets.shared,
    }
    ports = config.component_ports[name]

    if name == "proxy":
        values["HTTP_PORT"] = str(ports["http"])
        values["HTTPS_PORT"] = str(ports["https"])
        values["ADMIN_PORT"] = str(ports["admin"])
    elif name == "telehealth":
        values["WEB_LISTEN_PORT"] = str(ports["http"])
        values["DB_PORT"] = str(ports["db"])
        values["APP_URL"] = f"https://{config.domains['telehealth']}"
        values["JITSI_BASE_URL"] = f"https://{config.domains['jitsi']}"
    elif name == "openemr":
        values["HTTP_PORT"] = str(ports["http"])
        values["HTTPS_PORT"] = str(ports["https"])
        values["TELEHEALTH_BASE_URL"] = f"https://{config.domains['telehealth']}"
    elif name == "jitsi":
        values["HTTP_PORT"] = str(ports["http"])
        values["HTTPS_PORT"] = str(ports["https"])
        values["JVB_PORT"] = str(ports["jvb"])
        values["PUBLIC_URL"] = f"https://{config.domains['jitsi']}"
        values["CONFIG"] = str(target_dir / "config")
    elif name == "wordpress":
        values["HTTP_PORT"] = str(ports["http"])
        values["DB_PORT"] = str(ports["db"])

    if shared_db:
        values.update(shared_db_values(name, config))
    return values


def component_names(include_cms: bool) -> tuple[str, ...]:
    """Components to materialize, in start order."""
    return tuple(
        name for name in COMPONENT_ORDER
        if include_cms or name not in OPTIONAL_COMPONENTS
    )


def component_specs(
    config: EnvironmentConfig,
    *,
    sources_root: Path,
    environments_root: Path,
    include_cms: bool = True,
    shared_db: bool = False,
) -> list[ComponentSpec]:
    """Bind the catalog to one environment."""
    env_dir = environments_root / config.environment_dir_name
    env_name = config.environment_kind.value
    specs: list[ComponentSpec] = []

    for name in component_names(include_cms):
        tpl = CATALOG[name]
        source_dir = sources_root / tpl.source
        target_dir = env_dir / config.folder_names[name]
        specs.append(ComponentSpec(
            name=name,
            title=tpl.title,
            source_dir=source_dir,
            target_dir=target_dir,
            env_template_chain=tuple(
                source_dir / pattern.format(env=env_name)
                for pattern in DEFAULT_ENV_TEMPLATES
            ),
            compose_chain=ComposeChain(
                environment=f"docker-compose.{env_name}.yml",
                official_dev=tpl.official_dev,
                official_prod=tpl.official_prod,
            ),
            env_values=env_values(name, config, target_dir, shared_db=shared_db),
            dev_mode_overrides=dict(tpl.dev_mode_overrides),
            preserved_env=tpl.preserved_env,
            frontend_override=tpl.frontend_override,
            optional=name in OPTIONAL_COMPONENTS,
        ))

    return specs


def topology(config: EnvironmentConfig, *, include_cms: bool = True) -> list[NetworkTopologyEntry]:
    """Network topology table for one environment."""
    nets = config.network_names
    by_role = {"proxy": nets.proxy, "frontend": nets.frontend, "shared": nets.shared}
    project = re.escape(config.project_name)
    env = re.escape(config.environment_kind.value)

    return [
        NetworkTopologyEntry(
            component=name,
            compose_project=config.compose_project(name),
            compose_service=CATALOG[name].compose_service,
            name_pattern=CATALOG[name].name_pattern.format(project=project, env=env),
            required_networks=frozenset(by_role[r] for r in CATALOG[name].networks),
            route_port=CATALOG[name].route_port,
            websocket=CATALOG[name].websocket,
        )
        for name in component_names(include_cms)
    ]
