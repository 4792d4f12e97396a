"""
Settings loader — reads telestack.yml into a ``Settings`` model.

The settings file is optional.  Without one every field takes its
default and relative paths resolve against the working directory; with
one, relative paths resolve against the directory holding the file.

Settings never feed into ``resolve_environment()``: they describe where
things live on this machine and how long to wait, not what an
environment is.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from telestack.core.errors import ConfigError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "telestack.yml"

# Proxy credentials may come from the environment so they stay out of
# the settings file.
ENV_PROXY_IDENTITY = "TELESTACK_PROXY_IDENTITY"
ENV_PROXY_SECRET = "TELESTACK_PROXY_SECRET"


class ProxySettings(BaseModel):
    """Reverse-proxy control-plane access."""

    identity: str = "admin@example.com"
    secret: str = "changeme"
    url: str | None = None
    timeout: float = Field(default=10.0, gt=0)


class DelaySettings(BaseModel):
    """Fixed readiness waits, in seconds."""

    proxy_startup: float = Field(default=10.0, ge=0)
    proxy_api: float = Field(default=20.0, ge=0)
    container_settle: float = Field(default=5.0, ge=0)


class RemovalSettings(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    delay: float = Field(default=2.0, ge=0)


class Settings(BaseModel):
    """Machine-local settings for provisioning runs."""

    project: str | None = None
    domain_base: str | None = None

    sources_root: Path = Path(".")
    environments_root: Path = Path(".")
    backups_root: Path = Path("backups")
    include_cms: bool = True

    proxy: ProxySettings = Field(default_factory=ProxySettings)
    delays: DelaySettings = Field(default_factory=DelaySettings)
    removal: RemovalSettings = Field(default_factory=RemovalSettings)

    def resolved(self, base_dir: Path) -> Settings:
        """Copy with every relative path anchored at ``base_dir``."""
        def _anchor(p: Path) -> Path:
            return p if p.is_absolute() else (base_dir / p).resolve()

        return self.model_copy(update={
            "sources_root": _anchor(self.sources_root),
            "environments_root": _anchor(self.environments_root),
            "backups_root": _anchor(self.backups_root),
        })


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for telestack.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to telestack.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _apply_env_overrides(settings: Settings) -> Settings:
    identity = os.environ.get(ENV_PROXY_IDENTITY)
    secret = os.environ.get(ENV_PROXY_SECRET)
    if not identity and not secret:
        return settings

    proxy = settings.proxy.model_copy(update={
        k: v for k, v in (("identity", identity), ("secret", secret)) if v
    })
    return settings.model_copy(update={"proxy": proxy})


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to telestack.yml. If None, searches upward
            and falls back to defaults when nothing is found.

    Returns:
        Validated Settings with absolute paths.

    Raises:
        ConfigError: An explicit path is missing, or the file is invalid.
    """
    if path is None:
        path = find_settings_file()

    if path is None:
        logger.debug("No %s found, using defaults", SETTINGS_FILE)
        return _apply_env_overrides(Settings().resolved(Path.cwd()))

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    settings = settings.resolved(path.parent.resolve())
    logger.info("Loaded settings from %s", path)
    return _apply_env_overrides(settings)
