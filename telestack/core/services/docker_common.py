"""Docker shared helpers — low-level command runners.

Every container-runtime call goes through ``run_docker`` or
``run_compose``.  A missing ``docker`` binary or a timeout comes back as
a failed ``CompletedProcess`` (exit 127 / 124) instead of an exception,
so callers treat it like any other non-zero exit.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from telestack.core.errors import RuntimeCommandError

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


def _run(cmd: list[str], *, cwd: Path | None, timeout: int) -> subprocess.CompletedProcess[str]:
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        return subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return subprocess.CompletedProcess(cmd, EXIT_NOT_FOUND, "", f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        return subprocess.CompletedProcess(cmd, EXIT_TIMEOUT, "", f"timed out after {timeout}s")


def run_docker(
    *args: str,
    cwd: Path | None = None,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    return _run(["docker", *args], cwd=cwd, timeout=timeout)


def run_compose(
    *args: str,
    cwd: Path | None = None,
    timeout: int = 300,
) -> subprocess.CompletedProcess[str]:
    """Run a docker compose command and return the result."""
    return _run(["docker", "compose", *args], cwd=cwd, timeout=timeout)


def check(result: subprocess.CompletedProcess[str]) -> subprocess.CompletedProcess[str]:
    """Return ``result`` unchanged, or raise if it exited non-zero.

    Raises:
        RuntimeCommandError: ``result.returncode`` is not 0.
    """
    if result.returncode != 0:
        raise RuntimeCommandError(result.args, result.returncode, (result.stderr or "").strip())
    return result


def failure_text(result: subprocess.CompletedProcess[str]) -> str:
    """Best human-readable reason for a failed command."""
    return (result.stderr or "").strip() or (result.stdout or "").strip() or f"exit {result.returncode}"
