"""Container runtime — observe and act on containers, networks and volumes.

``ContainerRuntime`` is the only object the provisioning services use
to talk to docker.  Listing calls parse ``--format '{{json .}}'`` output;
action calls log non-zero exits and return ``False`` so the caller
decides how much a failure matters.  Network primitives hand back the
raw ``CompletedProcess`` because "already exists" is success for them.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from telestack.core.services.docker_common import check, failure_text, run_compose, run_docker

logger = logging.getLogger(__name__)

LABEL_PROJECT = "com.docker.compose.project"
LABEL_SERVICE = "com.docker.compose.service"


@dataclass(frozen=True)
class ContainerInfo:
    """One row of ``docker ps``."""

    id: str
    name: str
    state: str = ""
    status: str = ""
    image: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def compose_project(self) -> str:
        return self.labels.get(LABEL_PROJECT, "")

    @property
    def compose_service(self) -> str:
        return self.labels.get(LABEL_SERVICE, "")


def parse_labels(raw: str) -> dict[str, str]:
    """Parse docker's ``k=v,k2=v2`` label column."""
    labels: dict[str, str] = {}
    for item in (raw or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            labels[key.strip()] = value.strip()
    return labels


def parse_ps_output(stdout: str) -> list[ContainerInfo]:
    """Parse ``docker ps --format '{{json .}}'`` output, one JSON object per line."""
    containers: list[ContainerInfo] = []
    for line in stdout.strip().splitlines():
        if not line.strip():
            continue
        try:
            info = json.loads(line)
        except json.JSONDecodeError:
            continue
        containers.append(ContainerInfo(
            id=info.get("ID", ""),
            name=info.get("Names", ""),
            state=info.get("State", ""),
            status=info.get("Status", ""),
            image=info.get("Image", ""),
            labels=parse_labels(info.get("Labels", "")),
        ))
    return containers


class ContainerRuntime:
    """Thin, stateless wrapper over the docker CLI."""

    # ── Containers ──────────────────────────────────────────────

    def list_containers(self, *, all_: bool = False, filters: tuple[str, ...] = ()) -> list[ContainerInfo]:
        """List containers in the runtime's own order.

        Args:
            all_: Include stopped containers.
            filters: ``docker ps --filter`` expressions.
        """
        args = ["ps", "--no-trunc", "--format", "{{json .}}"]
        if all_:
            args.insert(1, "-a")
        for expr in filters:
            args.extend(["--filter", expr])

        r = run_docker(*args, timeout=15)
        if r.returncode != 0:
            logger.warning("docker ps failed: %s", failure_text(r))
            return []
        return parse_ps_output(r.stdout)

    def project_containers(self, compose_project: str, *, all_: bool = True) -> list[ContainerInfo]:
        """Containers labelled with ``compose_project``."""
        return self.list_containers(
            all_=all_, filters=(f"label={LABEL_PROJECT}={compose_project}",),
        )

    def stop_containers(self, names: list[str]) -> bool:
        if not names:
            return True
        r = run_docker("stop", *names, timeout=120)
        if r.returncode != 0:
            logger.warning("Could not stop %s: %s", ", ".join(names), failure_text(r))
            return False
        return True

    def restart_container(self, name: str) -> bool:
        r = run_docker("restart", name, timeout=120)
        if r.returncode != 0:
            logger.warning("Could not restart %s: %s", name, failure_text(r))
            return False
        return True

    def remove_containers(self, names: list[str]) -> bool:
        if not names:
            return True
        r = run_docker("rm", "-f", *names, timeout=60)
        if r.returncode != 0:
            logger.warning("Could not remove %s: %s", ", ".join(names), failure_text(r))
            return False
        return True

    def exec(self, container: str, *cmd: str, timeout: int = 600) -> subprocess.CompletedProcess[str]:
        """Run a command inside a running container."""
        return run_docker("exec", container, *cmd, timeout=timeout)

    def copy_from(self, container: str, src: str, dest: Path) -> bool:
        r = run_docker("cp", f"{container}:{src}", str(dest), timeout=300)
        if r.returncode != 0:
            logger.warning("docker cp from %s failed: %s", container, failure_text(r))
            return False
        return True

    def copy_to(self, src: Path, container: str, dest: str) -> bool:
        """Copy the contents of directory ``src`` into ``dest`` in the container."""
        r = run_docker("cp", f"{src}/.", f"{container}:{dest}", timeout=300)
        if r.returncode != 0:
            logger.warning("docker cp into %s failed: %s", container, failure_text(r))
            return False
        return True

    # ── Networks ────────────────────────────────────────────────

    def network_exists(self, name: str) -> bool:
        return run_docker("network", "inspect", name, timeout=15).returncode == 0

    def create_network(self, name: str) -> subprocess.CompletedProcess[str]:
        return run_docker("network", "create", name, timeout=30)

    def connect_network(self, network: str, container: str) -> subprocess.CompletedProcess[str]:
        return run_docker("network", "connect", network, container, timeout=30)

    def remove_network(self, name: str) -> subprocess.CompletedProcess[str]:
        return run_docker("network", "rm", name, timeout=30)

    # ── Volumes ─────────────────────────────────────────────────

    def project_volumes(self, compose_project: str) -> list[str]:
        r = run_docker(
            "volume", "ls", "-q",
            "--filter", f"label={LABEL_PROJECT}={compose_project}",
            timeout=15,
        )
        if r.returncode != 0:
            logger.warning("docker volume ls failed: %s", failure_text(r))
            return []
        return [v.strip() for v in r.stdout.splitlines() if v.strip()]

    def remove_volumes(self, names: list[str]) -> bool:
        if not names:
            return True
        r = run_docker("volume", "rm", "-f", *names, timeout=60)
        if r.returncode != 0:
            logger.warning("Could not remove volumes %s: %s", ", ".join(names), failure_text(r))
            return False
        return True

    # ── Compose ─────────────────────────────────────────────────

    def compose_up(self, workdir: Path, compose_project: str) -> bool:
        """``docker compose -p <project> up -d`` in ``workdir``."""
        r = run_compose("-p", compose_project, "up", "-d", cwd=workdir, timeout=900)
        if r.returncode != 0:
            logger.error("compose up failed for %s: %s", compose_project, failure_text(r))
            return False
        return True

    def version(self) -> str:
        """Server version string.

        Raises:
            RuntimeCommandError: The daemon is unreachable.
        """
        r = check(run_docker("version", "--format", "{{.Server.Version}}", timeout=15))
        return r.stdout.strip()
