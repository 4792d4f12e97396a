"""
Safe directory removal with bounded retries.

Each attempt:

    1. make every entry writable (read-only files and directories)
    2. run a GC pass so this process drops any lingering file handles
    3. remove the tree
    4. pause briefly and check the path is really gone

Attempts are driven by the shared ``RetryPolicy``; only ``OSError`` is
retried.
"""

from __future__ import annotations

import gc
import logging
import os
import shutil
import stat
import time
from pathlib import Path

from telestack.core.errors import DirectoryRemovalError
from telestack.core.reliability.retry import RetryExhausted, RetryPolicy, retry_on

logger = logging.getLogger(__name__)

VERIFY_PAUSE = 0.5


def clear_readonly(path: Path) -> None:
    """Add owner write (and search, for dirs) permission throughout ``path``."""
    targets = [path]
    for root, dirs, files in os.walk(path):
        targets.extend(Path(root) / d for d in dirs)
        targets.extend(Path(root) / f for f in files)

    for p in targets:
        if p.is_symlink():
            continue
        try:
            mode = p.stat().st_mode
            extra = stat.S_IWUSR | stat.S_IRUSR
            if stat.S_ISDIR(mode):
                extra |= stat.S_IXUSR
            if mode & extra != extra:
                p.chmod(mode | extra)
        except OSError as e:
            logger.debug("chmod %s: %s", p, e)


def _remove_once(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return

    if path.is_symlink() or path.is_file():
        path.unlink()
    else:
        clear_readonly(path)
        gc.collect()
        shutil.rmtree(path)

    time.sleep(VERIFY_PAUSE)
    if path.exists() or path.is_symlink():
        raise OSError(f"{path} still present after removal")


def remove_safely(path: Path, *, max_retries: int = 3, delay: float = 2.0) -> bool:
    """Remove ``path`` and everything below it.

    Returns:
        True once the path is gone (also when it never existed).

    Raises:
        DirectoryRemovalError: Still present after ``max_retries`` attempts,
            or ``path`` is a filesystem root.
    """
    path = Path(path)
    if path.resolve() == Path(path.resolve().anchor):
        raise DirectoryRemovalError(path, 0, "refusing to remove a filesystem root")

    if not path.exists() and not path.is_symlink():
        logger.debug("%s does not exist, nothing to remove", path)
        return True

    policy = RetryPolicy(
        name=f"remove {path.name}",
        attempts=max_retries,
        delay=delay,
        is_retryable=retry_on(OSError),
    )
    try:
        policy.call(_remove_once, path)
    except RetryExhausted as e:
        raise DirectoryRemovalError(path, e.attempts, str(e.last_error)) from e

    logger.info("Removed %s", path)
    return True
