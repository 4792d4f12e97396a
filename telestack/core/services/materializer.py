"""
Materializer — produce a component's on-disk runtime tree.

For one ``ComponentSpec``:

    1. sync the source checkout into the target dir (missing / size /
       newer-mtime comparison, never content)
    2. pick the compose overlay and write it, stripped, as
       ``docker-compose.yml``
    3. synthesize ``.env`` from the first template in the search chain
    4. add a frontend network override where the compose file wants one

Every step writes only when something changed, so re-running on an
unchanged source leaves the tree alone apart from the env header.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from telestack.core.errors import SourceMissingError
from telestack.core.models.component import ComponentSpec
from telestack.core.models.environment import EnvironmentConfig
from telestack.core.services.compose_file import (
    OVERRIDE_FILE,
    declares_frontend_network,
    select_compose_file,
    strip_version_metadata,
    write_network_override,
)
from telestack.core.services.env_file import EnvFile, synthesize_env_file

logger = logging.getLogger(__name__)

COMPOSE_TARGET = "docker-compose.yml"
ENV_TARGET = ".env"


@dataclass
class MaterializeResult:
    """What materializing one component did."""

    component: str
    compose_file: Path | None = None
    changed: bool = False
    skipped: bool = False
    detail: str = ""


# ── Directory sync ─────────────────────────────────────────────────


def _needs_copy(src: Path, dest: Path) -> bool:
    if not dest.exists():
        return True
    s, d = src.stat(), dest.stat()
    return s.st_size != d.st_size or s.st_mtime > d.st_mtime


def sync_directory(source: Path, target: Path, exclude: Iterable[str] = ()) -> bool:
    """Copy new or updated files from ``source`` into ``target``.

    A file is copied when the destination is missing, its size differs,
    or the source mtime is strictly newer.  Names in ``exclude`` are
    skipped at any depth, files and directories alike.  Nothing is ever
    deleted from ``target``.

    Returns:
        True if at least one file was copied.

    Raises:
        SourceMissingError: ``source`` is not a directory.
    """
    if not source.is_dir():
        raise SourceMissingError(source.name, source)

    excluded = frozenset(exclude)
    changed = False
    target.mkdir(parents=True, exist_ok=True)

    for dirpath, dirnames, filenames in os.walk(source):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        rel = Path(dirpath).relative_to(source)
        dest_dir = target / rel
        dest_dir.mkdir(parents=True, exist_ok=True)

        for name in sorted(filenames):
            if name in excluded:
                continue
            src_file = Path(dirpath) / name
            dest_file = dest_dir / name
            if src_file.is_symlink() and not src_file.exists():
                logger.debug("Skipping dangling link %s", src_file)
                continue
            if _needs_copy(src_file, dest_file):
                shutil.copy2(src_file, dest_file)
                changed = True
                logger.debug("Copied %s", rel / name)

    return changed


# ── Per-component materialization ──────────────────────────────────


def _write_if_changed(path: Path, content: str, *, skip_lines: int = 0) -> bool:
    """Write ``content`` unless the file already holds it.

    The first ``skip_lines`` lines are ignored by the comparison (the
    generated header carries a timestamp), but are still written.
    """
    if path.is_file():
        current = path.read_text(encoding="utf-8", errors="replace")
        if current.splitlines()[skip_lines:] == content.splitlines()[skip_lines:]:
            return False
    path.write_text(content, encoding="utf-8")
    return True


def env_rules(spec: ComponentSpec, *, dev_mode: bool) -> dict[str, str]:
    """Substitution rules for a component.

    Dev overrides apply after the environment values.  Keys listed in
    ``preserved_env`` keep the value already present in the target
    ``.env`` (values issued at runtime, like API tokens).
    """
    rules = dict(spec.env_values)
    if dev_mode:
        rules.update(spec.dev_mode_overrides)

    existing = spec.target_dir / ENV_TARGET
    if spec.preserved_env and existing.is_file():
        current = EnvFile.read(existing)
        for key in spec.preserved_env:
            value = current.get(key)
            if value:
                rules[key] = value
    return rules


def materialize_component(
    spec: ComponentSpec,
    config: EnvironmentConfig,
    *,
    dev_mode: bool,
    generated_at: str,
    exclude: Iterable[str] = (),
) -> MaterializeResult:
    """Materialize one component into ``spec.target_dir``.

    A component without any compose file is skipped (with a warning),
    not failed.

    Raises:
        SourceMissingError: The component's source checkout is absent.
    """
    result = MaterializeResult(component=spec.name)

    if not spec.source_dir.is_dir():
        raise SourceMissingError(spec.name, spec.source_dir)

    generated = {COMPOSE_TARGET, ENV_TARGET, OVERRIDE_FILE}
    result.changed = sync_directory(spec.source_dir, spec.target_dir, generated | set(exclude))

    compose = select_compose_file(spec, dev_mode=dev_mode, official=config.official)
    if compose is None:
        result.skipped = True
        result.detail = "no compose file"
        return result
    result.compose_file = compose

    compose_text = strip_version_metadata(
        compose.read_text(encoding="utf-8", errors="replace"),
    )
    if _write_if_changed(spec.target_dir / COMPOSE_TARGET, compose_text):
        result.changed = True

    env_content = synthesize_env_file(
        spec.name,
        spec.env_template_chain,
        env_rules(spec, dev_mode=dev_mode),
        environment=config.environment_kind.value,
        generated_at=generated_at,
    )
    if _write_if_changed(spec.target_dir / ENV_TARGET, env_content, skip_lines=1):
        result.changed = True

    if spec.frontend_override and declares_frontend_network(compose_text):
        if write_network_override(spec.target_dir, config.network_names.frontend):
            result.changed = True

    result.detail = compose.relative_to(spec.source_dir).as_posix()
    logger.info(
        "%s materialized (%s)%s",
        spec.name, result.detail, "" if result.changed else ", unchanged",
    )
    return result
