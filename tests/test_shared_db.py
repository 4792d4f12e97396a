"""
Tests for the shared database compose project.
"""

import os

import yaml

from telestack.core.services.shared_db import (
    INIT_SCRIPT,
    databases_for,
    materialize_shared_db,
    render_compose,
    render_init_script,
)


class TestRender:
    def test_compose_joins_shared_network(self, config):
        doc = yaml.safe_load(render_compose(config))
        service = doc["services"]["shared-db"]
        assert service["container_name"] == "clinic-staging-shared-db"
        assert service["image"].startswith("mariadb")
        assert "./init:/docker-entrypoint-initdb.d" in service["volumes"]
        assert service["networks"] == ["default", "shared"]
        assert doc["networks"]["shared"] == {"external": True, "name": config.network_names.shared}

    def test_init_script_one_user_per_database(self):
        script = render_init_script(("openemr", "telehealth"))
        assert script.startswith("#!/bin/bash\n")
        assert "CREATE DATABASE IF NOT EXISTS openemr" in script
        assert "TO 'telehealth'@'%' IDENTIFIED BY 'telehealth'" in script
        assert "wordpress" not in script
        assert script.rstrip().endswith('"FLUSH PRIVILEGES;"')

    def test_cms_database_optional(self):
        assert databases_for(True) == ("openemr", "telehealth", "wordpress")
        assert databases_for(False) == ("openemr", "telehealth")


class TestMaterialize:
    def test_writes_files(self, config, tmp_path):
        result = materialize_shared_db(tmp_path, config)

        assert result.changed
        assert result.target_dir == tmp_path / "shared-db"
        assert (result.target_dir / "docker-compose.yml").is_file()
        script = result.target_dir / "init" / INIT_SCRIPT
        assert os.access(script, os.X_OK)
        assert "wordpress" in script.read_text()

    def test_second_run_unchanged(self, config, tmp_path):
        materialize_shared_db(tmp_path, config)
        again = materialize_shared_db(tmp_path, config)
        assert not again.changed

    def test_dropping_cms_rewrites_script(self, config, tmp_path):
        materialize_shared_db(tmp_path, config)
        result = materialize_shared_db(tmp_path, config, include_cms=False)
        assert result.changed
        assert result.databases == ("openemr", "telehealth")
        script = tmp_path / "shared-db" / "init" / INIT_SCRIPT
        assert "wordpress" not in script.read_text()
