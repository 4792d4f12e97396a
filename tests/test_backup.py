"""
Tests for environment snapshots — create, list, load, restore.
"""

import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from telestack.core.errors import ConfigError
from telestack.core.models.snapshot import JITSI_BLOB, SNAPSHOT_MANIFEST
from telestack.core.services.backup import (
    create_snapshot,
    list_snapshots,
    load_snapshot,
    repair_letsencrypt_links,
    restore_snapshot,
)

T1 = datetime(2026, 10, 19, 10, 15, 0, tzinfo=UTC)
T2 = datetime(2026, 10, 19, 11, 0, 0, tzinfo=UTC)


@pytest.fixture
def env_dir(tmp_path: Path, config) -> Path:
    env = tmp_path / "envs" / config.environment_dir_name
    (env / "proxy" / "data").mkdir(parents=True)
    (env / "proxy" / "data" / "database.sqlite").write_text("npm-db")
    (env / "openemr").mkdir()
    (env / "openemr" / ".env").write_text("TELEHEALTH_API_TOKEN=1|abc\n")
    return env


def _letsencrypt(proxy_dir: Path) -> Path:
    archive = proxy_dir / "letsencrypt" / "archive" / "npm-3"
    live = proxy_dir / "letsencrypt" / "live" / "npm-3"
    archive.mkdir(parents=True)
    live.mkdir(parents=True)
    for name in ("cert", "chain", "fullchain", "privkey"):
        (archive / f"{name}1.pem").write_text("old")
        (archive / f"{name}2.pem").write_text("new")
        (live / f"{name}.pem").write_text("flattened copy")
    return live


class TestCreateSnapshot:
    def test_copies_component_dirs(self, config, env_dir, tmp_path):
        snap = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)
        assert snap.timestamp == "20261019T101500"
        assert snap.path == tmp_path / "backups" / "clinic-staging" / "20261019T101500"
        assert sorted(snap.components) == ["openemr", "proxy"]
        assert (snap.components_dir / "proxy" / "data" / "database.sqlite").read_text() == "npm-db"
        assert (snap.path / SNAPSHOT_MANIFEST).is_file()
        assert snap.jitsi_config_blob is None

    def test_same_second_gets_unique_dir(self, config, env_dir, tmp_path):
        first = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)
        second = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)
        assert first.path != second.path
        assert second.path.name == "20261019T101500-1"

    def test_jitsi_config_from_disk(self, config, env_dir, tmp_path, runtime):
        (env_dir / "jitsi-docker" / "config" / "web").mkdir(parents=True)
        (env_dir / "jitsi-docker" / "config" / "web" / "config.js").write_text("var config = {};")
        snap = create_snapshot(config, env_dir, tmp_path / "backups", runtime=runtime,
                               jitsi_container="jitsi-web-1", now=T1)
        assert snap.jitsi_config_blob == JITSI_BLOB
        assert snap.jitsi_blob_path.is_file()
        assert runtime.called("cp-from") == []

    def test_jitsi_config_from_container(self, config, env_dir, tmp_path, runtime):
        snap = create_snapshot(config, env_dir, tmp_path / "backups", runtime=runtime,
                               jitsi_container="jitsi-web-1", now=T1)
        assert snap.jitsi_config_blob == JITSI_BLOB
        assert runtime.called("cp-from") == [("cp-from", "jitsi-web-1", "/config")]


class TestListAndLoad:
    def test_newest_first(self, config, env_dir, tmp_path):
        backups = tmp_path / "backups"
        create_snapshot(config, env_dir, backups, now=T1)
        create_snapshot(config, env_dir, backups, now=T2)
        assert [s.timestamp for s in list_snapshots(backups, config)] == [
            "20261019T110000", "20261019T101500",
        ]

    def test_empty(self, config, tmp_path):
        assert list_snapshots(tmp_path / "backups", config) == []

    def test_load_latest_and_by_timestamp(self, config, env_dir, tmp_path):
        backups = tmp_path / "backups"
        create_snapshot(config, env_dir, backups, now=T1)
        create_snapshot(config, env_dir, backups, now=T2)
        assert load_snapshot(backups, config).timestamp == "20261019T110000"
        assert load_snapshot(backups, config, "20261019T101500").timestamp == "20261019T101500"

    def test_load_missing(self, config, env_dir, tmp_path):
        backups = tmp_path / "backups"
        with pytest.raises(ConfigError, match="No snapshots"):
            load_snapshot(backups, config)
        create_snapshot(config, env_dir, backups, now=T1)
        with pytest.raises(ConfigError, match="not found"):
            load_snapshot(backups, config, "19990101T000000")

    def test_moved_snapshot_dir(self, config, env_dir, tmp_path):
        backups = tmp_path / "backups"
        snap = create_snapshot(config, env_dir, backups, now=T1)
        moved = snap.path.with_name("renamed")
        snap.path.rename(moved)
        assert list_snapshots(backups, config)[0].path == moved

    def test_unreadable_manifest_skipped(self, config, env_dir, tmp_path):
        backups = tmp_path / "backups"
        snap = create_snapshot(config, env_dir, backups, now=T1)
        (snap.path / SNAPSHOT_MANIFEST).write_text("{not json")
        assert list_snapshots(backups, config) == []


class TestRestore:
    def test_round_trip_into_empty_dir(self, config, env_dir, tmp_path):
        (env_dir / "jitsi-docker" / "config").mkdir(parents=True)
        (env_dir / "jitsi-docker" / "config" / "jvb.conf").write_text("jvb")
        snap = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)

        target = tmp_path / "restored"
        restored = restore_snapshot(snap, config, target)
        assert restored == ["jitsi-docker", "openemr", "proxy"]
        assert (target / "openemr" / ".env").read_text() == "TELEHEALTH_API_TOKEN=1|abc\n"
        assert (target / "jitsi-docker" / "config" / "jvb.conf").read_text() == "jvb"

    def test_overwrites_but_keeps_extra_files(self, config, env_dir, tmp_path):
        snap = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)
        (env_dir / "openemr" / ".env").write_text("changed\n")
        (env_dir / "openemr" / "local.txt").write_text("mine")
        restore_snapshot(snap, config, env_dir)
        assert (env_dir / "openemr" / ".env").read_text() == "TELEHEALTH_API_TOKEN=1|abc\n"
        assert (env_dir / "openemr" / "local.txt").read_text() == "mine"

    def test_repairs_letsencrypt_links(self, config, env_dir, tmp_path):
        _letsencrypt(env_dir / "proxy")
        snap = create_snapshot(config, env_dir, tmp_path / "backups", now=T1)
        target = tmp_path / "restored"
        restore_snapshot(snap, config, target)
        link = target / "proxy" / "letsencrypt" / "live" / "npm-3" / "fullchain.pem"
        assert link.is_symlink()
        assert os.readlink(link) == os.path.join("..", "..", "archive", "npm-3", "fullchain2.pem")
        assert link.read_text() == "new"


class TestRepairLinks:
    def test_counts_and_is_idempotent(self, tmp_path):
        _letsencrypt(tmp_path / "proxy")
        assert repair_letsencrypt_links(tmp_path / "proxy") == 4
        assert repair_letsencrypt_links(tmp_path / "proxy") == 0

    def test_no_letsencrypt_dir(self, tmp_path):
        assert repair_letsencrypt_links(tmp_path) == 0
