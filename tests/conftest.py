"""
Shared test fixtures and configuration.

No test talks to a real docker daemon or proxy: ``FakeRuntime`` stands in
for ``ContainerRuntime`` and ``FakeSession`` for the proxy API's HTTP
session.
"""

from __future__ import annotations

import dataclasses
import logging
import subprocess
import textwrap
from pathlib import Path
from typing import Any

import pytest
import requests

from telestack.core.config.catalog import CATALOG, FOLDER_NAMES
from telestack.core.config.loader import DelaySettings, RemovalSettings, Settings
from telestack.core.config.resolver import resolve_environment
from telestack.core.models.environment import EnvironmentConfig
from telestack.core.services.containers import (
    LABEL_PROJECT,
    LABEL_SERVICE,
    ContainerInfo,
    ContainerRuntime,
)


# ── Fake container runtime ──────────────────────────────────────────


def _cp(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(["docker"], returncode, stdout, stderr)


def _service_for(compose_project: str) -> str:
    for name, folder in FOLDER_NAMES.items():
        if compose_project.endswith(f"-{folder}"):
            return CATALOG[name].compose_service
    return "app"


class FakeRuntime(ContainerRuntime):
    """In-memory docker: networks, containers, volumes, compose projects."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.networks: set[str] = set()
        self.connections: set[tuple[str, str]] = set()
        self.containers: list[ContainerInfo] = []
        self.volumes: dict[str, list[str]] = {}
        self.compose_failures: set[str] = set()
        self.token_output = "New token issued successfully\n1|abcDEF123xyz\n"

    # containers

    def add_container(self, name: str, project: str = "", service: str = "",
                      state: str = "running") -> ContainerInfo:
        labels = {}
        if project:
            labels = {LABEL_PROJECT: project, LABEL_SERVICE: service or _service_for(project)}
        info = ContainerInfo(id=f"id-{name}", name=name, state=state, labels=labels)
        self.containers.append(info)
        return info

    def list_containers(self, *, all_: bool = False, filters: tuple[str, ...] = ()) -> list[ContainerInfo]:
        self.calls.append(("ps", all_, filters))
        items = [c for c in self.containers if all_ or c.running]
        for expr in filters:
            _, _, label = expr.partition("=")
            key, _, value = label.partition("=")
            items = [c for c in items if c.labels.get(key) == value]
        return items

    def project_containers(self, compose_project: str, *, all_: bool = True) -> list[ContainerInfo]:
        return self.list_containers(all_=all_, filters=(f"label={LABEL_PROJECT}={compose_project}",))

    def stop_containers(self, names: list[str]) -> bool:
        self.calls.append(("stop", tuple(names)))
        self.containers = [
            dataclasses.replace(c, state="exited") if c.name in names else c
            for c in self.containers
        ]
        return True

    def restart_container(self, name: str) -> bool:
        self.calls.append(("restart", name))
        return any(c.name == name and c.running for c in self.containers)

    def remove_containers(self, names: list[str]) -> bool:
        self.calls.append(("rm", tuple(names)))
        self.containers = [c for c in self.containers if c.name not in names]
        return True

    def exec(self, container: str, *cmd: str, timeout: int = 600) -> subprocess.CompletedProcess[str]:
        self.calls.append(("exec", container, cmd))
        if "token:issue" in cmd:
            return _cp(0, self.token_output)
        return _cp(0)

    def copy_from(self, container: str, src: str, dest: Path) -> bool:
        self.calls.append(("cp-from", container, src))
        dest.mkdir(parents=True, exist_ok=True)
        (dest / "from-container.conf").write_text("copied\n")
        return True

    def copy_to(self, src: Path, container: str, dest: str) -> bool:
        self.calls.append(("cp-to", container, src, dest))
        return True

    def version(self) -> str:
        return "27.3.1"

    # networks

    def network_exists(self, name: str) -> bool:
        return name in self.networks

    def create_network(self, name: str) -> subprocess.CompletedProcess[str]:
        self.calls.append(("network-create", name))
        if name in self.networks:
            return _cp(1, stderr=f"Error response from daemon: network with name {name} already exists")
        self.networks.add(name)
        return _cp(0, stdout="abc123\n")

    def connect_network(self, network: str, container: str) -> subprocess.CompletedProcess[str]:
        self.calls.append(("network-connect", network, container))
        if (network, container) in self.connections:
            return _cp(1, stderr=f"Error response from daemon: endpoint with name {container} "
                                 f"already exists in network {network}")
        self.connections.add((network, container))
        return _cp(0)

    def remove_network(self, name: str) -> subprocess.CompletedProcess[str]:
        self.calls.append(("network-rm", name))
        if name not in self.networks:
            return _cp(1, stderr=f"Error response from daemon: network {name} not found")
        self.networks.discard(name)
        return _cp(0)

    # volumes

    def project_volumes(self, compose_project: str) -> list[str]:
        return list(self.volumes.get(compose_project, []))

    def remove_volumes(self, names: list[str]) -> bool:
        self.calls.append(("volume-rm", tuple(names)))
        for project, vols in self.volumes.items():
            self.volumes[project] = [v for v in vols if v not in names]
        return True

    # compose

    def compose_up(self, workdir: Path, compose_project: str) -> bool:
        self.calls.append(("compose-up", compose_project, workdir))
        if compose_project in self.compose_failures:
            return False
        if not self.project_containers(compose_project, all_=False):
            self.add_container(f"{compose_project}-{_service_for(compose_project)}-1", compose_project)
        return True

    def called(self, kind: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == kind]


# ── Fake proxy API session ──────────────────────────────────────────


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Minimal Nginx Proxy Manager API."""

    def __init__(self, *, valid: tuple[str, str] = ("admin@example.com", "changeme"),
                 failing_logins: int = 0):
        self.valid = valid
        self.failing_logins = failing_logins
        self.hosts: list[dict[str, Any]] = []
        self.token_requests: list[tuple[str, str]] = []
        self.created: list[dict[str, Any]] = []
        self.fail_create = False

    def post(self, url: str, json: dict | None = None, headers: dict | None = None,
             timeout: float | None = None) -> FakeResponse:
        if url.endswith("/api/tokens"):
            creds = (json["identity"], json["secret"])
            self.token_requests.append(creds)
            if self.failing_logins > 0:
                self.failing_logins -= 1
                raise requests.ConnectionError("connection refused")
            if creds != self.valid:
                return FakeResponse(401, {"error": {"message": "Invalid credentials"}})
            return FakeResponse(200, {"token": "tok-123", "expires": "2030-01-01"})

        if url.endswith("/api/nginx/proxy-hosts"):
            assert headers and headers["Authorization"] == "Bearer tok-123"
            if self.fail_create:
                return FakeResponse(500, {"error": "boom"})
            record = dict(json, id=len(self.hosts) + 1)
            self.hosts.append(record)
            self.created.append(record)
            return FakeResponse(201, record)

        return FakeResponse(404, {})

    def get(self, url: str, headers: dict | None = None, timeout: float | None = None) -> FakeResponse:
        if url.endswith("/api/nginx/proxy-hosts"):
            return FakeResponse(200, list(self.hosts))
        return FakeResponse(404, {})


# ── Source checkouts ────────────────────────────────────────────────

COMPOSE_WITH_FRONTEND = textwrap.dedent("""\
    version: '3.8'
    services:
      app:
        image: example/app
        container_name: telehealth-app
        networks:
          - frontend
    networks:
      frontend:
        driver: bridge
""")

COMPOSE_PLAIN = textwrap.dedent("""\
    version: '3.1'
    services:
      web:
        image: example/web
        container_name: plain-web
        ports:
          - "${HTTP_PORT}:80"
""")


def make_sources(root: Path) -> Path:
    """Lay out a minimal checkout for every component under ``root``."""
    proxy = root / "templates" / "proxy"
    proxy.mkdir(parents=True)
    (proxy / "docker-compose.yml").write_text(COMPOSE_PLAIN)

    telehealth = root / "telehealth"
    telehealth.mkdir(parents=True)
    (telehealth / "docker-compose.yml").write_text(COMPOSE_WITH_FRONTEND)
    (telehealth / ".env.example").write_text(
        "APP_NAME=Telehealth\nAPP_ENV=production\nAPP_URL=http://localhost\n#WEB_LISTEN_PORT=80\n"
    )
    (telehealth / "app").mkdir()
    (telehealth / "app" / "index.php").write_text("<?php echo 'hi';\n")

    openemr = root / "openemr"
    (openemr / "docker" / "development-easy").mkdir(parents=True)
    (openemr / "docker" / "production").mkdir(parents=True)
    (openemr / "docker-compose.yml").write_text(COMPOSE_PLAIN)
    (openemr / "docker" / "development-easy" / "docker-compose.yml").write_text(COMPOSE_PLAIN)
    (openemr / "docker" / "production" / "docker-compose.yml").write_text(COMPOSE_PLAIN)
    (openemr / ".env.example").write_text("HTTP_PORT=80\nTELEHEALTH_API_TOKEN=\n")

    jitsi = root / "jitsi-docker"
    jitsi.mkdir(parents=True)
    (jitsi / "docker-compose.yml").write_text(COMPOSE_PLAIN)
    (jitsi / "env.example").write_text("HTTP_PORT=8000\nPUBLIC_URL=\n")

    wordpress = root / "templates" / "wordpress"
    wordpress.mkdir(parents=True)
    (wordpress / "docker-compose.yml").write_text(COMPOSE_PLAIN)

    return root


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _no_removal_pause(monkeypatch):
    """Skip the post-removal verification pause."""
    monkeypatch.setattr("telestack.core.services.directory.VERIFY_PAUSE", 0)


@pytest.fixture
def sources_root(tmp_path: Path) -> Path:
    return make_sources(tmp_path / "sources")


@pytest.fixture
def settings(tmp_path: Path, sources_root: Path) -> Settings:
    """Settings pointing into tmp_path, with every wait set to zero."""
    return Settings(
        sources_root=sources_root,
        environments_root=tmp_path / "envs",
        backups_root=tmp_path / "backups",
        delays=DelaySettings(proxy_startup=0, proxy_api=0, container_settle=0),
        removal=RemovalSettings(max_retries=2, delay=0),
    )


@pytest.fixture
def config() -> EnvironmentConfig:
    return resolve_environment("clinic", "staging", "example.com")


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo ``setup_logging`` calls made by CLI invocations."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
