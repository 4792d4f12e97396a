"""
Network topology — create the environment networks and wire containers.

``ensure_networks`` and ``connect_containers`` are safe to call any
number of times: "already exists" and "already connected" answers from
the runtime count as success, and other failures are collected so one
bad network never stops the rest.  Containers are found by compose
labels first, and by the topology entry's name pattern among unlabelled
containers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from telestack.core.errors import NetworkOpError
from telestack.core.models.component import NetworkTopologyEntry
from telestack.core.models.environment import EnvironmentConfig
from telestack.core.services.containers import ContainerInfo, ContainerRuntime
from telestack.core.services.docker_common import failure_text

logger = logging.getLogger(__name__)

_ALREADY_EXISTS = ("already exists",)
_ALREADY_CONNECTED = ("already exists in network", "already connected", "is already attached")
_NOT_FOUND = ("not found", "no such network")


@dataclass
class NetworkResult:
    """Outcome of ``ensure_networks``."""

    created: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class WiringResult:
    """Outcome of ``connect_containers``."""

    connected: dict[str, list[str]] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _matches(stderr: str, needles: tuple[str, ...]) -> bool:
    lowered = stderr.lower()
    return any(n in lowered for n in needles)


def ensure_network(runtime: ContainerRuntime, name: str) -> bool:
    """Create ``name`` unless it exists.

    Returns:
        True if the network was created, False if it already existed.

    Raises:
        NetworkOpError: Creation failed for another reason.
    """
    if runtime.network_exists(name):
        logger.debug("Network %s exists", name)
        return False

    r = runtime.create_network(name)
    if r.returncode == 0:
        logger.info("Created network %s", name)
        return True
    if _matches(r.stderr or "", _ALREADY_EXISTS):
        logger.debug("Network %s appeared concurrently", name)
        return False
    raise NetworkOpError(f"Could not create network {name}: {failure_text(r)}")


def ensure_networks(runtime: ContainerRuntime, config: EnvironmentConfig) -> NetworkResult:
    """Make sure the proxy, frontend and shared networks exist.

    Every network is attempted; creation failures are logged and
    collected, not raised.
    """
    result = NetworkResult()
    for name in config.network_names.all():
        try:
            if ensure_network(runtime, name):
                result.created.append(name)
        except NetworkOpError as e:
            logger.error("%s", e)
            result.errors[name] = str(e)
    return result


def find_container(
    entry: NetworkTopologyEntry,
    containers: list[ContainerInfo],
) -> ContainerInfo | None:
    """Running container for a topology entry.

    Labels win.  The name pattern is a fallback for containers started
    outside compose: it only considers containers with no compose project
    label, and takes the first match in listing order.
    """
    running = [c for c in containers if c.running]
    for c in running:
        if c.compose_project == entry.compose_project and c.compose_service == entry.compose_service:
            return c

    pattern = re.compile(entry.name_pattern, re.IGNORECASE)
    for c in running:
        if not c.compose_project and pattern.search(c.name):
            logger.debug("%s: matched %s by name", entry.component, c.name)
            return c
    return None


def connect_container(runtime: ContainerRuntime, network: str, container: str) -> bool:
    """Connect one container to one network.

    Returns:
        True if newly connected, False if it already was.

    Raises:
        NetworkOpError: The runtime refused for another reason.
    """
    r = runtime.connect_network(network, container)
    if r.returncode == 0:
        logger.info("Connected %s to %s", container, network)
        return True
    if _matches(r.stderr or "", _ALREADY_CONNECTED):
        logger.debug("%s already on %s", container, network)
        return False
    raise NetworkOpError(f"Could not connect {container} to {network}: {failure_text(r)}")


def connect_containers(
    runtime: ContainerRuntime,
    topology: list[NetworkTopologyEntry],
) -> WiringResult:
    """Attach every running topology container to its required networks.

    A component with no running container is logged and skipped.
    Connect failures are collected, not raised.
    """
    result = WiringResult()
    containers = runtime.list_containers()

    for entry in topology:
        container = find_container(entry, containers)
        if container is None:
            logger.warning("%s: no running container, skipping network wiring", entry.component)
            result.missing.append(entry.component)
            continue

        joined: list[str] = []
        for network in sorted(entry.required_networks):
            try:
                connect_container(runtime, network, container.name)
            except NetworkOpError as e:
                logger.error("%s", e)
                result.errors.append(str(e))
                continue
            joined.append(network)
        result.connected[entry.component] = joined

    return result


def remove_networks(runtime: ContainerRuntime, names: list[str] | tuple[str, ...]) -> list[str]:
    """Remove networks, ignoring ones that are already gone.

    Returns:
        Names that could not be removed (still in use, usually).
    """
    failed: list[str] = []
    for name in names:
        r = runtime.remove_network(name)
        if r.returncode == 0:
            logger.info("Removed network %s", name)
        elif _matches(r.stderr or "", _NOT_FOUND):
            logger.debug("Network %s already gone", name)
        else:
            logger.warning("Could not remove network %s: %s", name, failure_text(r))
            failed.append(name)
    return failed
