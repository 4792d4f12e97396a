"""
Shared database — one MariaDB container for every component of an environment.

Writes ``shared-db/docker-compose.yml`` and an init script under
``shared-db/init`` in the environment directory.  MariaDB runs the init
script on first start only, so databases listed later need a fresh
volume.  The container joins the environment's shared network under the
name returned by ``catalog.shared_db_project``; components reach it
through the ``*_HOST`` keys set by ``catalog.shared_db_values``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from telestack.core.config import catalog
from telestack.core.models.environment import EnvironmentConfig

logger = logging.getLogger(__name__)

IMAGE = "mariadb:latest"
ROOT_PASSWORD = "root"
INIT_DIR = "init"
INIT_SCRIPT = "create-multiple-databases.sh"
COMPOSE_FILE = "docker-compose.yml"


@dataclass
class SharedDbResult:
    target_dir: Path
    changed: bool = False
    databases: tuple[str, ...] = ()


def databases_for(include_cms: bool) -> tuple[str, ...]:
    return tuple(
        db for db in catalog.SHARED_DATABASES
        if include_cms or db not in catalog.OPTIONAL_COMPONENTS
    )


def render_compose(config: EnvironmentConfig) -> str:
    name = catalog.shared_db_project(config)
    doc = {
        "services": {
            catalog.SHARED_DB: {
                "image": IMAGE,
                "container_name": name,
                "restart": "always",
                "environment": {
                    "MARIADB_ROOT_PASSWORD": ROOT_PASSWORD,
                    "MARIADB_DATABASE": "shared",
                },
                "volumes": [
                    "shared_db_data:/var/lib/mysql",
                    f"./{INIT_DIR}:/docker-entrypoint-initdb.d",
                ],
                "networks": ["default", "shared"],
            },
        },
        "volumes": {"shared_db_data": None},
        "networks": {
            "default": None,
            "shared": {"external": True, "name": config.network_names.shared},
        },
    }
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)


def render_init_script(databases: tuple[str, ...]) -> str:
    """Shell script creating one database and one user per component."""
    mysql = f"mysql -u root -p{ROOT_PASSWORD} -e"
    lines = ["#!/bin/bash", "set -eu", ""]
    for db in databases:
        lines.append(f'echo "Creating {db} database..."')
        lines.append(f'{mysql} "CREATE DATABASE IF NOT EXISTS {db} CHARACTER SET utf8;"')
        lines.append(
            f"{mysql} \"GRANT ALL ON {db}.* TO '{db}'@'%' IDENTIFIED BY '{db}';\""
        )
    lines.append(f'{mysql} "FLUSH PRIVILEGES;"')
    return "\n".join(lines) + "\n"


def _write(path: Path, content: str) -> bool:
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


def materialize_shared_db(
    env_dir: Path,
    config: EnvironmentConfig,
    *,
    include_cms: bool = True,
) -> SharedDbResult:
    """Write the shared database compose project into ``env_dir``.

    Idempotent: unchanged files are not rewritten.
    """
    target = env_dir / catalog.SHARED_DB
    databases = databases_for(include_cms)
    result = SharedDbResult(target_dir=target, databases=databases)

    if _write(target / COMPOSE_FILE, render_compose(config)):
        result.changed = True

    script = target / INIT_DIR / INIT_SCRIPT
    if _write(script, render_init_script(databases)):
        result.changed = True
    script.chmod(0o755)

    logger.info("Shared database %s (%s)%s", catalog.shared_db_project(config),
                ", ".join(databases), "" if result.changed else ", unchanged")
    return result
