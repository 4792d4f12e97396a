"""
Telehealth first-run bootstrap.

When the telehealth app container is new, the Laravel app inside it
still needs its dependencies, key, schema and seed data, plus an API
token the EMR uses to call it.  The token is written into the EMR's
``.env`` as ``TELEHEALTH_API_TOKEN``.

Everything here is best-effort: a failed command is logged and the
remaining commands still run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from telestack.core.services.containers import ContainerRuntime
from telestack.core.services.docker_common import failure_text
from telestack.core.services.env_file import set_env_value

logger = logging.getLogger(__name__)

APP_ROOT = "/var/www"
TOKEN_ENV_KEY = "TELEHEALTH_API_TOKEN"

SETUP_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("composer", "install", f"--working-dir={APP_ROOT}", "--no-interaction"),
    ("php", f"{APP_ROOT}/artisan", "key:generate", "--force"),
    ("php", f"{APP_ROOT}/artisan", "migrate", "--force"),
    ("php", f"{APP_ROOT}/artisan", "db:seed", "--force"),
)
TOKEN_COMMAND = ("php", f"{APP_ROOT}/artisan", "token:issue", "--no-interaction")

_TOKEN_RE = re.compile(r"\d+\|[A-Za-z0-9]+")
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]|\[\d+m")


@dataclass
class BootstrapResult:
    """What the bootstrap managed to do."""

    failed_commands: list[str] = field(default_factory=list)
    token: str | None = None
    token_written: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed_commands and self.token_written


def extract_token(output: str) -> str | None:
    """Pull the API token out of ``token:issue`` output.

    Looks for ``<id>|<secret>`` first; otherwise takes the last word with
    terminal colour codes removed.
    """
    m = _TOKEN_RE.search(output or "")
    if m:
        return m.group(0)
    words = _ANSI_RE.sub("", output or "").split()
    return words[-1] if words else None


def bootstrap_telehealth(
    runtime: ContainerRuntime,
    container: str,
    emr_env_path: Path,
) -> BootstrapResult:
    """Run the first-time setup in ``container`` and publish the token."""
    result = BootstrapResult()

    for cmd in SETUP_COMMANDS:
        label = " ".join(cmd[:3])
        logger.info("telehealth: %s", label)
        r = runtime.exec(container, *cmd)
        if r.returncode != 0:
            logger.warning("telehealth: %s failed: %s", label, failure_text(r))
            result.failed_commands.append(label)

    r = runtime.exec(container, *TOKEN_COMMAND, timeout=120)
    if r.returncode != 0:
        logger.error("telehealth: token issue failed: %s", failure_text(r))
        result.failed_commands.append("token:issue")
        return result

    result.token = extract_token(r.stdout)
    if not result.token:
        logger.error("telehealth: no token in token:issue output")
        return result

    if not emr_env_path.parent.is_dir():
        logger.error("telehealth: EMR directory %s missing, token not written", emr_env_path.parent)
        return result

    set_env_value(emr_env_path, TOKEN_ENV_KEY, result.token)
    result.token_written = True
    logger.info("telehealth: API token written to %s", emr_env_path)
    return result
