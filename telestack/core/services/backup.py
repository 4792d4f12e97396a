"""Environment snapshots — create, list, restore.

Layout under the backups root::

    {project}-{env}/
      20261019T101500/
        snapshot.json          manifest (BackupSnapshot)
        components/<folder>/   copy of each component directory
        jitsi-config.tar.gz    Jitsi config (from disk, or the container)

A snapshot is written once and never edited afterwards.
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from telestack.core.errors import ConfigError
from telestack.core.models.environment import EnvironmentConfig
from telestack.core.models.snapshot import (
    COMPONENTS_DIR,
    JITSI_BLOB,
    SNAPSHOT_MANIFEST,
    BackupSnapshot,
)
from telestack.core.services.containers import ContainerRuntime

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"
JITSI_CONFIG_DIR = "config"
JITSI_CONTAINER_CONFIG = "/config"

LE_LINK_NAMES = ("cert", "chain", "fullchain", "privkey")


def snapshots_dir(backups_root: Path, config: EnvironmentConfig) -> Path:
    return backups_root / config.environment_dir_name


def _unique_dir(parent: Path, name: str) -> Path:
    candidate = parent / name
    n = 1
    while candidate.exists():
        candidate = parent / f"{name}-{n}"
        n += 1
    return candidate


def _archive_dir(source: Path, archive: Path, arcname: str) -> None:
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(source, arcname=arcname)


# ── Create ─────────────────────────────────────────────────────────


def _snapshot_jitsi(
    snapshot_path: Path,
    jitsi_dir: Path,
    runtime: ContainerRuntime | None,
    jitsi_container: str | None,
) -> str | None:
    on_disk = jitsi_dir / JITSI_CONFIG_DIR
    blob = snapshot_path / JITSI_BLOB

    if on_disk.is_dir():
        _archive_dir(on_disk, blob, JITSI_CONFIG_DIR)
        logger.debug("Archived Jitsi config from %s", on_disk)
        return JITSI_BLOB

    if runtime is None or not jitsi_container:
        logger.info("No Jitsi config on disk and no running Jitsi container")
        return None

    with tempfile.TemporaryDirectory(prefix="telestack-jitsi-") as tmp:
        dest = Path(tmp) / JITSI_CONFIG_DIR
        if not runtime.copy_from(jitsi_container, JITSI_CONTAINER_CONFIG, dest):
            return None
        _archive_dir(dest, blob, JITSI_CONFIG_DIR)
    logger.debug("Archived Jitsi config from container %s", jitsi_container)
    return JITSI_BLOB


def create_snapshot(
    config: EnvironmentConfig,
    env_dir: Path,
    backups_root: Path,
    *,
    runtime: ContainerRuntime | None = None,
    jitsi_container: str | None = None,
    now: datetime | None = None,
) -> BackupSnapshot:
    """Snapshot every component directory of an environment.

    Files that cannot be read (database files owned by a container user,
    for instance) are reported and left out; the rest is still copied.
    """
    stamp = (now or datetime.now(UTC)).strftime(TIMESTAMP_FORMAT)
    path = _unique_dir(snapshots_dir(backups_root, config), stamp)
    (path / COMPONENTS_DIR).mkdir(parents=True)

    components: dict[str, str] = {}
    for component, folder in sorted(config.folder_names.items()):
        src = env_dir / folder
        if not src.is_dir():
            continue
        dest = path / COMPONENTS_DIR / folder
        try:
            shutil.copytree(src, dest, symlinks=True)
        except shutil.Error as e:
            logger.warning("%s: %d file(s) not copied into snapshot", component, len(e.args[0]))
        components[folder] = f"{COMPONENTS_DIR}/{folder}"

    blob = _snapshot_jitsi(path, env_dir / config.folder_names["jitsi"], runtime, jitsi_container)

    snapshot = BackupSnapshot(
        timestamp=stamp,
        project_name=config.project_name,
        environment=config.environment_kind.value,
        path=path,
        components=components,
        jitsi_config_blob=blob,
    )
    (path / SNAPSHOT_MANIFEST).write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Snapshot %s: %d component(s)%s", path, len(components),
                ", Jitsi config" if blob else "")
    return snapshot


# ── List / load ────────────────────────────────────────────────────


def list_snapshots(backups_root: Path, config: EnvironmentConfig) -> list[BackupSnapshot]:
    """Snapshots of one environment, newest first."""
    root = snapshots_dir(backups_root, config)
    if not root.is_dir():
        return []

    snapshots: list[BackupSnapshot] = []
    for entry in sorted(root.iterdir(), reverse=True):
        manifest = entry / SNAPSHOT_MANIFEST
        if not manifest.is_file():
            continue
        try:
            snap = BackupSnapshot.model_validate_json(manifest.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", entry, e)
            continue
        # The directory may have been moved since it was written.
        snapshots.append(snap.model_copy(update={"path": entry}))
    return snapshots


def load_snapshot(
    backups_root: Path,
    config: EnvironmentConfig,
    timestamp: str | None = None,
) -> BackupSnapshot:
    """A snapshot by timestamp, or the newest one.

    Raises:
        ConfigError: No matching snapshot.
    """
    snapshots = list_snapshots(backups_root, config)
    if not snapshots:
        raise ConfigError(f"No snapshots for {config.environment_dir_name} in {backups_root}")
    if timestamp is None:
        return snapshots[0]
    for snap in snapshots:
        if snap.timestamp == timestamp or snap.path.name == timestamp:
            return snap
    raise ConfigError(f"Snapshot '{timestamp}' not found for {config.environment_dir_name}")


# ── Restore ────────────────────────────────────────────────────────


def restore_snapshot(
    snapshot: BackupSnapshot,
    config: EnvironmentConfig,
    env_dir: Path,
) -> list[str]:
    """Copy a snapshot's component trees back into ``env_dir``.

    Existing files are overwritten; files the snapshot does not hold are
    left alone.

    Returns:
        Folders restored.
    """
    restored: list[str] = []
    for folder, rel in sorted(snapshot.components.items()):
        src = snapshot.path / rel
        if not src.is_dir():
            logger.warning("Snapshot is missing %s", rel)
            continue
        try:
            shutil.copytree(src, env_dir / folder, symlinks=True, dirs_exist_ok=True)
        except shutil.Error as e:
            logger.warning("%s: %d file(s) not restored", folder, len(e.args[0]))
        restored.append(folder)

    blob = snapshot.jitsi_blob_path
    if blob is not None and blob.is_file():
        jitsi_dir = env_dir / config.folder_names["jitsi"]
        jitsi_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(blob, "r:gz") as tar:
            tar.extractall(jitsi_dir, filter="data")
        logger.info("Restored Jitsi config into %s", jitsi_dir)

    proxy_dir = env_dir / config.folder_names["proxy"]
    if proxy_dir.is_dir():
        repair_letsencrypt_links(proxy_dir)

    logger.info("Restored %d component(s) from %s", len(restored), snapshot.path)
    return restored


_ARCHIVE_NUM = re.compile(r"^(?P<name>[a-z]+)(?P<num>\d+)\.pem$")


def _latest_archive_file(archive_dir: Path, name: str) -> Path | None:
    best: tuple[int, Path] | None = None
    for f in archive_dir.glob(f"{name}*.pem"):
        m = _ARCHIVE_NUM.match(f.name)
        if not m or m.group("name") != name:
            continue
        num = int(m.group("num"))
        if best is None or num > best[0]:
            best = (num, f)
    return best[1] if best else None


def repair_letsencrypt_links(proxy_dir: Path) -> int:
    """Recreate ``letsencrypt/live/npm-*/*.pem`` links into ``archive/``.

    Copies and archives turn the live links into plain files or dangling
    links; certbot needs them to be relative symlinks again.

    Returns:
        Number of links rewritten.
    """
    live_root = proxy_dir / "letsencrypt" / "live"
    archive_root = proxy_dir / "letsencrypt" / "archive"
    if not live_root.is_dir():
        return 0

    repaired = 0
    for live in sorted(live_root.glob("npm-*")):
        archive = archive_root / live.name
        if not live.is_dir() or not archive.is_dir():
            continue
        for name in LE_LINK_NAMES:
            target_file = _latest_archive_file(archive, name)
            if target_file is None:
                continue
            link = live / f"{name}.pem"
            rel_target = Path("..") / ".." / "archive" / live.name / target_file.name
            if link.is_symlink() and Path(link.readlink()) == rel_target:
                continue
            if link.exists() or link.is_symlink():
                link.unlink()
            link.symlink_to(rel_target)
            repaired += 1

    if repaired:
        logger.info("Repaired %d Let's Encrypt link(s) under %s", repaired, live_root)
    return repaired
