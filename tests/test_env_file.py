"""
Tests for env-file editing and synthesis.
"""

import textwrap
from pathlib import Path

import pytest

from telestack.core.errors import TemplateMissingError
from telestack.core.services.env_file import (
    EnvFile,
    find_env_template,
    set_env_value,
    synthesize_env_file,
)


class TestEnvFileSet:
    def test_replaces_first_match_only(self):
        env = EnvFile.parse("A=1\nB=2\nA=3\n")
        assert env.set("A", "x") is True
        assert env.render() == "A=x\nB=2\nA=3\n"

    def test_uncomments(self):
        env = EnvFile.parse("# settings\n#PORT=80\nNAME=a\n")
        env.set("PORT", "8080")
        assert env.render() == "# settings\nPORT=8080\nNAME=a\n"

    def test_commented_line_first_wins(self):
        env = EnvFile.parse("# PORT=80\nPORT=81\n")
        env.set("PORT", "90")
        assert env.lines == ["PORT=90", "PORT=81"]

    def test_no_uncomment_skips_comments(self):
        env = EnvFile.parse("#PORT=80\nPORT=81\n")
        env.set("PORT", "90", uncomment=False)
        assert env.lines == ["#PORT=80", "PORT=90"]

    def test_appends_when_missing(self):
        env = EnvFile.parse("A=1\n")
        assert env.set("B", "2") is False
        assert env.render() == "A=1\nB=2\n"

    def test_does_not_match_longer_key(self):
        env = EnvFile.parse("DB_PORT=3306\n")
        env.set("PORT", "80")
        assert env.lines == ["DB_PORT=3306", "PORT=80"]

    def test_keeps_export_prefix(self):
        env = EnvFile.parse("export TOKEN=old\n")
        env.set("TOKEN", "new")
        assert env.lines == ["export TOKEN=new"]

    def test_preserves_other_lines(self):
        text = textwrap.dedent("""\
            # header comment

            QUOTED="a b c"
            SPACED = value
        """)
        env = EnvFile.parse(text)
        env.set("NEW", "1")
        assert env.render() == text + "NEW=1\n"


class TestEnvFileRead:
    def test_get_unquotes(self):
        env = EnvFile.parse("A='x y'\nB=\"z\"\n#C=commented\n")
        assert env.get("A") == "x y"
        assert env.get("B") == "z"
        assert env.get("C") is None

    def test_keys_in_order(self):
        env = EnvFile.parse("B=1\n#X=2\nA=3\nB=4\n")
        assert env.keys() == ["B", "A"]

    def test_empty_render(self):
        assert EnvFile().render() == ""


class TestSynthesize:
    def test_first_template_in_chain(self, tmp_path: Path):
        (tmp_path / ".env.example").write_text("A=1\n")
        (tmp_path / ".env.template").write_text("B=2\n")
        chain = [tmp_path / ".env.staging", tmp_path / ".env.example", tmp_path / ".env.template"]
        assert find_env_template(chain) == tmp_path / ".env.example"

    def test_missing_chain_raises(self, tmp_path: Path):
        with pytest.raises(TemplateMissingError):
            find_env_template([tmp_path / ".env.example"])

    def test_applies_rules_and_header(self, tmp_path: Path):
        (tmp_path / ".env.example").write_text("HTTP_PORT=80\n#DOMAIN=\nOTHER=keep\n")
        content = synthesize_env_file(
            "openemr", [tmp_path / ".env.example"],
            {"HTTP_PORT": "8180", "DOMAIN": "staging-clinic.example.com", "EXTRA": "1"},
            environment="staging", generated_at="2026-01-01T00:00:00+00:00",
        )
        lines = content.splitlines()
        assert lines[0] == "# Generated by telestack for openemr (staging) at 2026-01-01T00:00:00+00:00"
        assert lines[1] == "# Source: .env.example"
        assert lines[3:] == [
            "HTTP_PORT=8180",
            "DOMAIN=staging-clinic.example.com",
            "OTHER=keep",
            "EXTRA=1",
        ]

    def test_minimal_fallback(self, tmp_path: Path):
        content = synthesize_env_file(
            "proxy", [tmp_path / ".env.example"],
            {"HTTP_PORT": "180", "HTTPS_PORT": "543"},
            environment="staging", generated_at="t",
        )
        assert "# Source: minimal defaults" in content
        assert content.splitlines()[3:] == ["HTTP_PORT=180", "HTTPS_PORT=543"]

    def test_deterministic(self, tmp_path: Path):
        (tmp_path / ".env.example").write_text("A=1\n")
        args = ("x", [tmp_path / ".env.example"], {"A": "2"})
        kwargs = {"environment": "dev", "generated_at": "t"}
        assert synthesize_env_file(*args, **kwargs) == synthesize_env_file(*args, **kwargs)


class TestSetEnvValue:
    def test_updates_existing_file(self, tmp_path: Path):
        path = tmp_path / ".env"
        path.write_text("TELEHEALTH_API_TOKEN=\nX=1\n")
        set_env_value(path, "TELEHEALTH_API_TOKEN", "1|abc")
        assert path.read_text() == "TELEHEALTH_API_TOKEN=1|abc\nX=1\n"

    def test_creates_file(self, tmp_path: Path):
        path = tmp_path / ".env"
        assert set_env_value(path, "K", "v") is False
        assert path.read_text() == "K=v\n"
