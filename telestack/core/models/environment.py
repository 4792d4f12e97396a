"""
EnvironmentConfig — the resolved identity of one environment.

Produced once per invocation by ``resolve_environment()`` and never
mutated afterwards.  Everything that names a domain, port, folder or
network for a run reads it from here.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class EnvironmentKind(StrEnum):
    """The four recognized environment kinds."""

    DEV = "dev"
    STAGING = "staging"
    TEST = "test"
    PRODUCTION = "production"


class NetworkNames(BaseModel):
    """Names of the three environment networks."""

    model_config = ConfigDict(frozen=True)

    proxy: str
    frontend: str
    shared: str

    def all(self) -> tuple[str, str, str]:
        return (self.proxy, self.frontend, self.shared)


class EnvironmentConfig(BaseModel):
    """Resolved configuration for ``(project, environment_kind, domain_base)``.

    ``component_ports`` maps component → port role → host port.
    ``folder_names`` and ``domains`` map component → value and are unique
    across components.
    """

    model_config = ConfigDict(frozen=True)

    project_name: str
    environment_kind: EnvironmentKind
    domain_base: str

    official: bool = False
    display_name: str

    component_ports: dict[str, dict[str, int]]
    folder_names: dict[str, str]
    network_names: NetworkNames
    domains: dict[str, str]

    @property
    def is_production(self) -> bool:
        return self.environment_kind == EnvironmentKind.PRODUCTION

    @property
    def environment_dir_name(self) -> str:
        """Directory name of this environment under the environments root."""
        return f"{self.project_name}-{self.environment_kind.value}"

    def compose_project(self, component: str) -> str:
        """Compose project name used for a component's containers."""
        return f"{self.project_name}-{self.environment_kind.value}-{self.folder_names[component]}"

    def port(self, component: str, role: str) -> int:
        return self.component_ports[component][role]
