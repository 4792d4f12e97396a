"""
Tests for the materializer — directory sync and per-component output.
"""

import os
from pathlib import Path

import pytest
import yaml

from telestack.core.config.catalog import SYNC_EXCLUDES, component_specs
from telestack.core.errors import SourceMissingError
from telestack.core.services.materializer import (
    env_rules,
    materialize_component,
    sync_directory,
)


def _specs_by_name(config, settings):
    specs = component_specs(
        config,
        sources_root=settings.sources_root,
        environments_root=settings.environments_root,
    )
    return {s.name: s for s in specs}


class TestSyncDirectory:
    def test_copies_tree(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        (src / "a" / "b").mkdir(parents=True)
        (src / "a" / "b" / "f.txt").write_text("hello")
        (src / "top.txt").write_text("x")
        assert sync_directory(src, dst) is True
        assert (dst / "a" / "b" / "f.txt").read_text() == "hello"
        assert (dst / "top.txt").read_text() == "x"

    def test_second_call_unchanged(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        src.mkdir()
        (src / "f.txt").write_text("hello")
        assert sync_directory(src, dst) is True
        assert sync_directory(src, dst) is False

    def test_newer_source_copied(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        src.mkdir()
        f = src / "f.txt"
        f.write_text("aaaa")
        sync_directory(src, dst)
        f.write_text("bbbb")
        st = (dst / "f.txt").stat()
        os.utime(f, (st.st_atime + 10, st.st_mtime + 10))
        assert sync_directory(src, dst) is True
        assert (dst / "f.txt").read_text() == "bbbb"

    def test_size_change_copied(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        src.mkdir()
        (src / "f.txt").write_text("a")
        sync_directory(src, dst)
        (dst / "f.txt").write_text("longer local edit")
        os.utime(dst / "f.txt", (0, (src / "f.txt").stat().st_mtime + 100))
        assert sync_directory(src, dst) is True
        assert (dst / "f.txt").read_text() == "a"

    def test_older_same_size_not_copied(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        src.mkdir()
        (src / "f.txt").write_text("aaaa")
        sync_directory(src, dst)
        (dst / "f.txt").write_text("zzzz")
        os.utime(dst / "f.txt", (0, (src / "f.txt").stat().st_mtime + 100))
        assert sync_directory(src, dst) is False
        assert (dst / "f.txt").read_text() == "zzzz"

    def test_excludes_at_any_depth(self, tmp_path: Path):
        src, dst = tmp_path / "src", tmp_path / "dst"
        (src / ".git").mkdir(parents=True)
        (src / ".git" / "HEAD").write_text("ref")
        (src / "sub").mkdir()
        (src / "sub" / ".env").write_text("SECRET=1")
        (src / "sub" / "keep.txt").write_text("k")
        sync_directory(src, dst, {".git", ".env"})
        assert not (dst / ".git").exists()
        assert not (dst / "sub" / ".env").exists()
        assert (dst / "sub" / "keep.txt").exists()

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(SourceMissingError):
            sync_directory(tmp_path / "nope", tmp_path / "dst")


class TestMaterializeComponent:
    def test_writes_compose_env_and_tree(self, config, settings):
        spec = _specs_by_name(config, settings)["openemr"]
        result = materialize_component(
            spec, config, dev_mode=False, generated_at="t1", exclude=SYNC_EXCLUDES,
        )
        assert result.changed is True
        assert not result.skipped
        compose = (spec.target_dir / "docker-compose.yml").read_text()
        assert "version:" not in compose
        assert "container_name" not in compose
        env = (spec.target_dir / ".env").read_text()
        assert "COMPOSE_PROJECT_NAME=clinic-staging-openemr" in env
        assert f"HTTP_PORT={config.port('openemr', 'http')}" in env
        assert "TELEHEALTH_BASE_URL=https://vcbknd-staging.example.com" in env

    def test_rerun_unchanged(self, config, settings):
        spec = _specs_by_name(config, settings)["jitsi"]
        materialize_component(spec, config, dev_mode=False, generated_at="t1")
        again = materialize_component(spec, config, dev_mode=False, generated_at="t2")
        assert again.changed is False

    def test_frontend_override_written(self, config, settings):
        spec = _specs_by_name(config, settings)["telehealth"]
        materialize_component(spec, config, dev_mode=False, generated_at="t")
        override = yaml.safe_load((spec.target_dir / "docker-compose.override.yml").read_text())
        assert override["networks"]["frontend"]["name"] == "frontend-clinic-staging"

    def test_no_override_without_frontend_network(self, config, settings):
        spec = _specs_by_name(config, settings)["jitsi"]
        materialize_component(spec, config, dev_mode=False, generated_at="t")
        assert not (spec.target_dir / "docker-compose.override.yml").exists()

    def test_dev_overrides(self, config, settings):
        spec = _specs_by_name(config, settings)["telehealth"]
        materialize_component(spec, config, dev_mode=True, generated_at="t")
        env = (spec.target_dir / ".env").read_text()
        assert "APP_ENV=local" in env
        assert "APP_ENV=production" not in env

    def test_skipped_without_compose(self, config, settings):
        spec = _specs_by_name(config, settings)["wordpress"]
        (spec.source_dir / "docker-compose.yml").unlink()
        result = materialize_component(spec, config, dev_mode=False, generated_at="t")
        assert result.skipped is True
        assert result.compose_file is None

    def test_missing_source(self, config, settings, sources_root):
        spec = _specs_by_name(config, settings)["jitsi"]
        (sources_root / "jitsi-docker" / "docker-compose.yml").unlink()
        (sources_root / "jitsi-docker" / "env.example").unlink()
        (sources_root / "jitsi-docker").rmdir()
        with pytest.raises(SourceMissingError):
            materialize_component(spec, config, dev_mode=False, generated_at="t")

    def test_preserves_runtime_token(self, config, settings):
        spec = _specs_by_name(config, settings)["openemr"]
        materialize_component(spec, config, dev_mode=False, generated_at="t")
        env_path = spec.target_dir / ".env"
        env_path.write_text(env_path.read_text().replace(
            "TELEHEALTH_API_TOKEN=", "TELEHEALTH_API_TOKEN=7|secret"))
        materialize_component(spec, config, dev_mode=False, generated_at="t2")
        assert "TELEHEALTH_API_TOKEN=7|secret" in env_path.read_text()

    def test_env_rules_order(self, config, settings):
        spec = _specs_by_name(config, settings)["telehealth"]
        rules = env_rules(spec, dev_mode=True)
        assert list(rules)[0] == "COMPOSE_PROJECT_NAME"
        assert rules["APP_DEBUG"] == "true"
