"""
Lifecycle controller — bring-up, teardown, stop, backup and restore.

State machine over the environment directory::

    Absent  ─────────────────────────────→ Materializing → Ready
    Present ─ update ────→ UpdateInPlace ─────────────────→ Ready
            ─ reconcile ─→ Reconciling ──→ Materializing → Ready
            ─ abort ─────→ Aborted

``plan_transitions`` computes the path; the controller walks it.  Every
step lands in the ``RunReport``.  Only ``DirectoryRemovalError`` (when
the decision source says stop) escapes; everything else degrades to a
failed step.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from telestack.core.config import catalog
from telestack.core.config.loader import Settings
from telestack.core.errors import (
    AuthError,
    DirectoryRemovalError,
    RuntimeCommandError,
    SourceMissingError,
)
from telestack.core.models.component import NetworkTopologyEntry
from telestack.core.models.environment import EnvironmentConfig
from telestack.core.models.options import ProvisionOptions
from telestack.core.models.proxy import ProxyHostRecord
from telestack.core.models.report import RunReport
from telestack.core.services import backup as backup_svc
from telestack.core.services.bootstrap import bootstrap_telehealth
from telestack.core.services.containers import ContainerRuntime
from telestack.core.services.decisions import DecisionSource, ExistingChoice
from telestack.core.services.directory import remove_safely
from telestack.core.services.materializer import ENV_TARGET, materialize_component
from telestack.core.services.networks import (
    connect_containers,
    ensure_networks,
    find_container,
    remove_networks,
)
from telestack.core.services.proxy_client import CREATED, EXISTS, ProxyConfigClient
from telestack.core.services.shared_db import materialize_shared_db

logger = logging.getLogger(__name__)


class LifecycleState(StrEnum):
    ABSENT = "absent"
    PRESENT = "present"
    UPDATE_IN_PLACE = "update_in_place"
    RECONCILING = "reconciling"
    MATERIALIZING = "materializing"
    READY = "ready"
    ABORTED = "aborted"


def plan_transitions(present: bool, choice: ExistingChoice | None = None) -> list[LifecycleState]:
    """States a bring-up passes through, given the directory state and choice."""
    if not present:
        return [LifecycleState.ABSENT, LifecycleState.MATERIALIZING, LifecycleState.READY]
    if choice == ExistingChoice.RECONCILE:
        return [
            LifecycleState.PRESENT, LifecycleState.RECONCILING,
            LifecycleState.MATERIALIZING, LifecycleState.READY,
        ]
    if choice == ExistingChoice.UPDATE:
        return [LifecycleState.PRESENT, LifecycleState.UPDATE_IN_PLACE, LifecycleState.READY]
    return [LifecycleState.PRESENT, LifecycleState.ABORTED]


class LifecycleController:
    """Drive one environment through its lifecycle.

    Args:
        config: Resolved environment.
        settings: Machine-local paths, credentials and delays.
        options: Run flags (dev mode, CMS, start, routes, shared database,
            proxy restart).
        decisions: Answers for operator decision points.
        runtime: Container runtime (default: the docker CLI).
        proxy_client: Control-plane client (default: built from settings).
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        settings: Settings,
        options: ProvisionOptions,
        decisions: DecisionSource,
        *,
        runtime: ContainerRuntime | None = None,
        proxy_client: ProxyConfigClient | None = None,
    ):
        self.config = config
        self.settings = settings
        self.options = options
        self.decisions = decisions
        self.runtime = runtime or ContainerRuntime()
        self._proxy_client = proxy_client

        self.specs = catalog.component_specs(
            config,
            sources_root=settings.sources_root,
            environments_root=settings.environments_root,
            include_cms=options.include_cms,
            shared_db=options.shared_db,
        )
        self.topology = catalog.topology(config, include_cms=options.include_cms)

    # ── Helpers ─────────────────────────────────────────────────

    @property
    def env_dir(self) -> Path:
        return self.settings.environments_root / self.config.environment_dir_name

    @property
    def proxy_url(self) -> str:
        return self.settings.proxy.url or f"http://localhost:{self.config.port('proxy', 'admin')}"

    @property
    def proxy_client(self) -> ProxyConfigClient:
        if self._proxy_client is None:
            self._proxy_client = ProxyConfigClient(
                self.proxy_url, timeout=self.settings.proxy.timeout,
            )
        return self._proxy_client

    def _report(self, operation: str) -> RunReport:
        return RunReport(
            operation=operation,
            project_name=self.config.project_name,
            environment=self.config.environment_kind.value,
        )

    def _entry(self, component: str) -> NetworkTopologyEntry | None:
        for entry in self.topology:
            if entry.component == component:
                return entry
        return None

    def _wait(self, seconds: float, reason: str) -> None:
        if seconds > 0:
            logger.info("Waiting %.0fs for %s", seconds, reason)
            time.sleep(seconds)

    @property
    def shared_db_dir(self) -> Path:
        return self.env_dir / catalog.SHARED_DB

    def _compose_projects(self) -> list[tuple[str, str]]:
        """(label, compose project) for every part of this environment.

        The shared database counts when enabled for this run or when its
        files are still on disk from an earlier one.
        """
        projects = [(spec.name, self.config.compose_project(spec.name)) for spec in self.specs]
        if self.options.shared_db or self.shared_db_dir.is_dir():
            projects.append((catalog.SHARED_DB, catalog.shared_db_project(self.config)))
        return projects

    def _environment_containers(self) -> list[str]:
        """Names of every container (running or not) labelled with one of
        this environment's compose projects."""
        names: list[str] = []
        for _, project in self._compose_projects():
            for c in self.runtime.project_containers(project):
                if c.name not in names:
                    names.append(c.name)
        return names

    # ── Bring-up ────────────────────────────────────────────────

    def provision(self) -> RunReport:
        """Bring the environment up, creating or reconciling as decided."""
        report = self._report("up")
        present = self.env_dir.exists()
        choice = self.decisions.existing_environment(self.env_dir) if present else None
        states = plan_transitions(present, choice)
        report.ok("plan", " → ".join(s.value for s in states))
        logger.info("%s: %s", self.config.environment_dir_name, " → ".join(states))

        if LifecycleState.ABORTED in states:
            report.aborted = True
            report.skip("provision", "operator kept the existing environment")
            return report.finish()

        if LifecycleState.RECONCILING in states:
            self._teardown_steps(report)

        generated_at = datetime.now(UTC).isoformat(timespec="seconds")
        ready = self._materialize_all(report, generated_at)

        if not self.options.start:
            report.skip("start", "start disabled")
            return report.finish()

        try:
            version = self.runtime.version()
        except RuntimeCommandError as e:
            logger.error("Container runtime unavailable: %s", e)
            report.fail("runtime", str(e))
            return report.finish()
        report.ok("runtime", f"docker {version}")

        self._ensure_networks(report)
        if self.options.shared_db:
            self._start_shared_db(report)
        started = self._start_all(report, ready)
        if started:
            self._wait(self.settings.delays.container_settle, "containers to settle")
        self._wire_networks(report)
        self._publish_routes(report, started)
        return report.finish()

    def _materialize_all(self, report: RunReport, generated_at: str) -> list[str]:
        self.env_dir.mkdir(parents=True, exist_ok=True)
        if self.options.shared_db:
            self._materialize_shared_db(report)

        ready: list[str] = []
        for spec in self.specs:
            step = f"materialize:{spec.name}"
            try:
                result = materialize_component(
                    spec, self.config,
                    dev_mode=self.options.dev_mode,
                    generated_at=generated_at,
                    exclude=catalog.SYNC_EXCLUDES,
                )
            except SourceMissingError as e:
                logger.error("%s", e)
                report.fail(step, str(e))
                continue
            except OSError as e:
                logger.error("%s: %s", spec.name, e)
                report.fail(step, str(e))
                continue

            if result.skipped:
                report.skip(step, result.detail)
                continue
            report.ok(step, result.detail + ("" if result.changed else " (unchanged)"))
            ready.append(spec.name)
        return ready

    def _materialize_shared_db(self, report: RunReport) -> None:
        step = f"materialize:{catalog.SHARED_DB}"
        try:
            result = materialize_shared_db(
                self.env_dir, self.config, include_cms=self.options.include_cms,
            )
        except OSError as e:
            logger.error("%s: %s", catalog.SHARED_DB, e)
            report.fail(step, str(e))
            return
        report.ok(step, ", ".join(result.databases) + ("" if result.changed else " (unchanged)"))

    def _start_shared_db(self, report: RunReport) -> None:
        """Start the shared database ahead of the components that use it."""
        step = f"start:{catalog.SHARED_DB}"
        project = catalog.shared_db_project(self.config)
        if not self.shared_db_dir.is_dir():
            report.skip(step, "not materialized")
            return
        if not self.runtime.compose_up(self.shared_db_dir, project):
            report.fail(step, f"compose up failed for {project}")
            return
        report.ok(step, project)
        self._wait(self.settings.delays.container_settle, "the shared database")

    def _ensure_networks(self, report: RunReport) -> None:
        result = ensure_networks(self.runtime, self.config)
        for name, error in result.errors.items():
            report.fail(f"network:{name}", error)
        if result.created:
            report.ok("networks", f"created {', '.join(result.created)}")
        elif result.ok:
            report.ok("networks", "all present")

    def _telehealth_exists(self) -> bool:
        entry = self._entry("telehealth")
        if entry is None:
            return False
        return any(
            c.compose_service == entry.compose_service
            for c in self.runtime.project_containers(entry.compose_project)
        )

    def _start_all(self, report: RunReport, ready: list[str]) -> list[str]:
        started: list[str] = []
        telehealth_existed = "telehealth" in ready and self._telehealth_exists()

        for spec in self.specs:
            if spec.name not in ready:
                continue
            step = f"start:{spec.name}"
            project = self.config.compose_project(spec.name)
            if not self.runtime.compose_up(spec.target_dir, project):
                report.fail(step, f"compose up failed for {project}")
                continue
            report.ok(step, project)
            started.append(spec.name)

            if spec.name == "proxy":
                self._wait(self.settings.delays.proxy_startup, "the proxy to start")
            elif spec.name == "telehealth" and not telehealth_existed:
                self._wait(self.settings.delays.container_settle, "telehealth to settle")
                self._bootstrap_telehealth(report)

        return started

    def _bootstrap_telehealth(self, report: RunReport) -> None:
        entry = self._entry("telehealth")
        container = find_container(entry, self.runtime.list_containers()) if entry else None
        if container is None:
            report.skip("bootstrap:telehealth", "app container not running")
            return

        emr_env = self.env_dir / self.config.folder_names["openemr"] / ENV_TARGET
        result = bootstrap_telehealth(self.runtime, container.name, emr_env)
        if result.ok:
            report.ok("bootstrap:telehealth", "API token written")
        else:
            detail = ", ".join(result.failed_commands) or "token not written"
            report.fail("bootstrap:telehealth", detail)

    def _wire_networks(self, report: RunReport) -> None:
        wiring = connect_containers(self.runtime, self.topology)
        for component in wiring.missing:
            report.skip(f"wire:{component}", "no running container")
        for component, networks in wiring.connected.items():
            report.ok(f"wire:{component}", ", ".join(networks))
        for error in wiring.errors:
            report.fail("wire", error)

    def _publish_routes(self, report: RunReport, started: list[str]) -> None:
        if not self.options.publish_routes:
            report.skip("routes", "route publishing disabled")
            return
        if "proxy" not in started:
            report.skip("routes", "proxy not running")
            return

        self._wait(self.settings.delays.proxy_api, "the proxy API")
        try:
            token = self.proxy_client.authenticate(
                self.settings.proxy.identity, self.settings.proxy.secret,
            )
        except AuthError as e:
            logger.error("No proxy routes will be published: %s", e)
            report.fail("routes:auth", str(e))
            return

        containers = self.runtime.list_containers()
        for entry in self.topology:
            if entry.route_port is None or entry.component not in started:
                continue
            container = find_container(entry, containers)
            forward_host = (
                container.name if container
                else f"{entry.compose_project}-{entry.compose_service}-1"
            )
            record = ProxyHostRecord(
                domain=self.config.domains[entry.component],
                forward_host=forward_host,
                forward_port=entry.route_port,
                websocket_enabled=entry.websocket,
            )
            outcome = self.proxy_client.ensure_proxy_host(token, record)
            step = f"route:{record.domain}"
            if outcome == CREATED:
                report.ok(step, f"→ {forward_host}:{record.forward_port}")
            elif outcome == EXISTS:
                report.ok(step, "already present")
            else:
                report.fail(step, "could not create proxy host")

        if self.options.restart_proxy:
            self._restart_proxy(report)

    def _restart_proxy(self, report: RunReport) -> None:
        """Restart the proxy container so it reloads the new hosts."""
        entry = self._entry("proxy")
        container = find_container(entry, self.runtime.list_containers()) if entry else None
        if container is None:
            logger.warning("Cannot restart the proxy: no running container")
            report.skip("restart:proxy", "proxy container not found")
            return
        if not self.runtime.restart_container(container.name):
            report.fail("restart:proxy", f"docker restart {container.name} failed")
            return
        report.ok("restart:proxy", container.name)
        self._wait(self.settings.delays.proxy_api, "the proxy to come back")

    # ── Teardown ────────────────────────────────────────────────

    def teardown(self) -> RunReport:
        """Snapshot, then remove containers, networks, volumes and directory."""
        report = self._report("down")
        self._teardown_steps(report)
        return report.finish()

    def _teardown_steps(self, report: RunReport) -> None:
        snapshot_ok = self._snapshot(report)

        names = self._environment_containers()
        if names:
            stopped = self.runtime.stop_containers(names)
            removed = self.runtime.remove_containers(names)
            if stopped and removed:
                report.ok("containers", f"removed {len(names)}")
            else:
                report.fail("containers", "some containers could not be removed")
        else:
            report.skip("containers", "none found")

        failed = remove_networks(self.runtime, self.config.network_names.all())
        if failed:
            report.skip("networks", f"still in use: {', '.join(failed)}")
        else:
            report.ok("networks", "removed")

        if not snapshot_ok:
            report.skip("volumes", "no snapshot, keeping data")
            report.skip("directory", "no snapshot, keeping data")
            return

        self._remove_volumes(report)
        self._remove_directory(report)

    def _snapshot(self, report: RunReport) -> bool:
        if not self.env_dir.is_dir():
            report.skip("snapshot", "nothing on disk")
            return True

        entry = self._entry("jitsi")
        jitsi = find_container(entry, self.runtime.list_containers()) if entry else None
        try:
            snap = backup_svc.create_snapshot(
                self.config, self.env_dir, self.settings.backups_root,
                runtime=self.runtime,
                jitsi_container=jitsi.name if jitsi else None,
            )
        except OSError as e:
            logger.error("Snapshot failed: %s", e)
            report.fail("snapshot", str(e))
            return False
        report.ok("snapshot", str(snap.path))
        return True

    def _remove_volumes(self, report: RunReport) -> None:
        volumes: list[str] = []
        for _, project in self._compose_projects():
            volumes.extend(self.runtime.project_volumes(project))
        if not volumes:
            report.skip("volumes", "none found")
            return
        if not self.decisions.remove_volumes(volumes):
            report.skip("volumes", f"kept {len(volumes)}")
            return
        if self.runtime.remove_volumes(volumes):
            report.ok("volumes", f"removed {len(volumes)}")
        else:
            report.fail("volumes", "some volumes could not be removed")

    def _remove_directory(self, report: RunReport) -> None:
        try:
            remove_safely(
                self.env_dir,
                max_retries=self.settings.removal.max_retries,
                delay=self.settings.removal.delay,
            )
        except DirectoryRemovalError as e:
            logger.error("%s", e)
            if not self.decisions.continue_after_removal(self.env_dir, str(e)):
                raise
            report.fail("directory", str(e))
            return
        report.ok("directory", f"removed {self.env_dir}")

    # ── Stop / backup / restore / status ────────────────────────

    def stop(self) -> RunReport:
        """Stop the environment's containers; keep everything else."""
        report = self._report("stop")
        for label, project in self._compose_projects():
            running = [c.name for c in self.runtime.project_containers(project, all_=False)]
            if not running:
                report.skip(f"stop:{label}", "not running")
            elif self.runtime.stop_containers(running):
                report.ok(f"stop:{label}", ", ".join(running))
            else:
                report.fail(f"stop:{label}", "docker stop failed")
        return report.finish()

    def backup(self) -> RunReport:
        report = self._report("backup")
        if not self.env_dir.is_dir():
            report.fail("snapshot", f"{self.env_dir} does not exist")
            return report.finish()
        self._snapshot(report)
        return report.finish()

    def restore(self, timestamp: str | None = None) -> RunReport:
        """Restore a snapshot into the environment directory.

        Raises:
            ConfigError: No such snapshot.
        """
        report = self._report("restore")
        snap = backup_svc.load_snapshot(self.settings.backups_root, self.config, timestamp)
        self.env_dir.mkdir(parents=True, exist_ok=True)
        try:
            restored = backup_svc.restore_snapshot(snap, self.config, self.env_dir)
        except OSError as e:
            logger.error("Restore failed: %s", e)
            report.fail("restore", str(e))
            return report.finish()
        report.ok("restore", f"{snap.timestamp}: {', '.join(restored) or 'no components'}")

        if snap.jitsi_config_blob:
            self._push_jitsi_config(report)
        return report.finish()

    def _push_jitsi_config(self, report: RunReport) -> None:
        """Copy the restored Jitsi config into the running web container."""
        entry = self._entry("jitsi")
        container = find_container(entry, self.runtime.list_containers()) if entry else None
        if container is None:
            report.skip("restore:jitsi", "container not running, config left on disk")
            return
        config_dir = self.env_dir / self.config.folder_names["jitsi"] / backup_svc.JITSI_CONFIG_DIR
        if self.runtime.copy_to(config_dir, container.name, backup_svc.JITSI_CONTAINER_CONFIG):
            report.ok("restore:jitsi", container.name)
        else:
            report.fail("restore:jitsi", f"docker cp into {container.name} failed")

    def status(self) -> dict[str, Any]:
        """Resolved configuration plus which topology containers are running."""
        containers = self.runtime.list_containers()
        running: dict[str, str | None] = {}
        for entry in self.topology:
            match = find_container(entry, containers)
            running[entry.component] = match.name if match else None

        return {
            "project": self.config.project_name,
            "environment": self.config.environment_kind.value,
            "official": self.config.official,
            "directory": str(self.env_dir),
            "exists": self.env_dir.is_dir(),
            "dev_mode": self.options.dev_mode,
            "shared_db": self.options.shared_db or self.shared_db_dir.is_dir(),
            "networks": self.config.network_names.model_dump(),
            "components": {
                spec.name: {
                    "domain": self.config.domains[spec.name],
                    "folder": self.config.folder_names[spec.name],
                    "ports": self.config.component_ports[spec.name],
                    "compose_project": self.config.compose_project(spec.name),
                    "container": running.get(spec.name),
                }
                for spec in self.specs
            },
        }
