"""
Compose files — overlay selection, text cleanup and network overrides.

The selected compose file is copied as text: the only edit is dropping
``version: '…'`` and ``container_name: …`` lines, so compose assigns
per-project container names and never warns about the obsolete version
key.  Network overrides are written as a separate
``docker-compose.override.yml`` so the copied file stays untouched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from telestack.core.models.component import ComponentSpec

logger = logging.getLogger(__name__)

OVERRIDE_FILE = "docker-compose.override.yml"

# Lines with a trailing comment still match; prefixed keys (api_version) do not.
_VERSION_LINE = re.compile(r"(?<![\w-])version:\s*(['\"]).*\1")
_CONTAINER_NAME_LINE = re.compile(r"(?<![\w-])container_name:")


def strip_version_metadata(content: str) -> str:
    """Remove ``version:`` and ``container_name:`` lines.

    Surviving lines keep their indentation, quoting, line endings and order.
    """
    kept = [
        line for line in content.splitlines(keepends=True)
        if not _VERSION_LINE.search(line)
        and not _CONTAINER_NAME_LINE.search(line)
    ]
    return "".join(kept)


def compose_candidates(spec: ComponentSpec, *, dev_mode: bool, official: bool) -> list[str]:
    """Ordered, de-duplicated candidate paths relative to the source dir."""
    chain = spec.compose_chain
    if dev_mode:
        mode = chain.official_dev if official and chain.official_dev else chain.dev
    else:
        mode = chain.official_prod if official and chain.official_prod else chain.prod

    ordered: list[str] = []
    for candidate in (chain.environment, mode, chain.default):
        if candidate not in ordered:
            ordered.append(candidate)
    return ordered


def select_compose_file(spec: ComponentSpec, *, dev_mode: bool, official: bool) -> Path | None:
    """Pick the compose file for a component.

    Priority: environment-named overlay, then the dev/prod overlay that
    matches ``dev_mode``, then the bare default.  Falling back to the
    default logs a warning; finding nothing logs a warning and returns
    None so the caller can skip the component.
    """
    candidates = compose_candidates(spec, dev_mode=dev_mode, official=official)
    for position, rel in enumerate(candidates):
        path = spec.source_dir / rel
        if not path.is_file():
            continue
        if position > 0 and rel == spec.compose_chain.default:
            logger.warning(
                "%s: no %s overlay, falling back to %s",
                spec.name, " or ".join(candidates[:position]), rel,
            )
        else:
            logger.debug("%s: using %s", spec.name, rel)
        return path

    logger.warning(
        "%s: no compose file in %s (tried %s), skipping",
        spec.name, spec.source_dir, ", ".join(candidates),
    )
    return None


def declares_frontend_network(content: str) -> bool:
    """True if the compose text declares a top-level ``frontend`` network."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.debug("Compose file is not valid YAML: %s", e)
        return False
    if not isinstance(data, dict):
        return False
    networks = data.get("networks")
    return isinstance(networks, dict) and "frontend" in networks


def render_network_override(frontend_network: str) -> str:
    """Override binding the ``frontend`` network to an existing external one."""
    doc = {
        "networks": {
            "frontend": {
                "external": True,
                "name": frontend_network,
            },
        },
    }
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)


def write_network_override(target_dir: Path, frontend_network: str) -> bool:
    """Write ``docker-compose.override.yml`` if its content changed.

    Returns:
        True if the file was written.
    """
    path = target_dir / OVERRIDE_FILE
    content = render_network_override(frontend_network)
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return False
    path.write_text(content, encoding="utf-8")
    logger.debug("Wrote %s", path)
    return True
