"""
Component models — per-run component specs and the network topology table.

``ComponentSpec`` is built from the static catalog for one environment:
paths are absolute, and template patterns have the environment name
filled in.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ComposeChain(BaseModel):
    """Candidate compose files, relative to the component's source dir.

    Selection order is ``environment`` → the dev/prod overlay that matches
    the run's mode → ``default``.  The official variant swaps in
    ``official_dev`` / ``official_prod`` for the mode overlay when set.
    """

    model_config = ConfigDict(frozen=True)

    environment: str
    dev: str = "docker-compose.dev.yml"
    prod: str = "docker-compose.prod.yml"
    default: str = "docker-compose.yml"
    official_dev: str | None = None
    official_prod: str | None = None


class ComponentSpec(BaseModel):
    """One deployable component, parameterized for an environment."""

    model_config = ConfigDict(frozen=True)

    name: str
    title: str
    source_dir: Path
    target_dir: Path
    env_template_chain: tuple[Path, ...]
    compose_chain: ComposeChain

    env_values: dict[str, str] = Field(default_factory=dict)
    dev_mode_overrides: dict[str, str] = Field(default_factory=dict)
    preserved_env: tuple[str, ...] = ()
    frontend_override: bool = False
    optional: bool = False


class NetworkTopologyEntry(BaseModel):
    """Which networks a component's running container must join.

    Discovery prefers compose labels (``compose_project`` +
    ``compose_service``); ``name_pattern`` is the fallback regex matched
    against the runtime's container listing.
    """

    model_config = ConfigDict(frozen=True)

    component: str
    compose_project: str
    compose_service: str
    name_pattern: str
    required_networks: frozenset[str]
    route_port: int | None = None
    websocket: bool = False
