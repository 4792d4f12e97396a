"""
Env-file editing — a line-preserving ``KEY=VALUE`` model.

``EnvFile`` keeps every line of the source text (comments, blanks,
ordering, quoting) and only rewrites the lines it is asked to change.
Edit semantics:

    set(KEY, v)   first line whose key is KEY (active, ``export KEY=``
                  or commented ``#KEY=``) becomes ``KEY=v``; if none,
                  ``KEY=v`` is appended.

A key matches only as a whole word at the start of a line, so setting
``PORT`` never touches ``DB_PORT``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from telestack.core.errors import TemplateMissingError

logger = logging.getLogger(__name__)

HEADER_PREFIX = "# Generated by telestack"

_LINE_RE = re.compile(
    r"^(?P<comment>\s*#\s*)?(?P<export>export\s+)?"
    r"(?P<key>[A-Za-z_][A-Za-z0-9_.]*)\s*=(?P<value>.*)$"
)


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


class EnvFile:
    """Lossless, line-oriented view of an env file."""

    def __init__(self, lines: Iterable[str] = ()):
        self.lines: list[str] = list(lines)

    @classmethod
    def parse(cls, text: str) -> EnvFile:
        return cls(text.splitlines())

    @classmethod
    def read(cls, path: Path) -> EnvFile:
        return cls.parse(path.read_text(encoding="utf-8", errors="replace"))

    def _find(self, key: str, *, include_commented: bool) -> int | None:
        for i, line in enumerate(self.lines):
            m = _LINE_RE.match(line)
            if not m or m.group("key") != key:
                continue
            if m.group("comment") and not include_commented:
                continue
            return i
        return None

    def get(self, key: str) -> str | None:
        """Value of the first active ``KEY=`` line, unquoted."""
        idx = self._find(key, include_commented=False)
        if idx is None:
            return None
        return _strip_quotes(_LINE_RE.match(self.lines[idx]).group("value"))

    def keys(self) -> list[str]:
        """Active keys in file order."""
        found: list[str] = []
        for line in self.lines:
            m = _LINE_RE.match(line)
            if m and not m.group("comment") and m.group("key") not in found:
                found.append(m.group("key"))
        return found

    def set(self, key: str, value: str, *, uncomment: bool = True) -> bool:
        """Set ``key`` to ``value``.

        Returns:
            True if an existing line was rewritten, False if appended.
        """
        idx = self._find(key, include_commented=uncomment)
        if idx is None:
            self.lines.append(f"{key}={value}")
            return False

        m = _LINE_RE.match(self.lines[idx])
        export = m.group("export") or ""
        self.lines[idx] = f"{export}{key}={value}"
        return True

    def update(self, values: Mapping[str, str]) -> None:
        """Apply ``set`` for each pair, in mapping order."""
        for key, value in values.items():
            self.set(key, value)

    def render(self) -> str:
        return "\n".join(self.lines) + "\n" if self.lines else ""


# ── Synthesis ──────────────────────────────────────────────────────


def find_env_template(search_chain: Iterable[Path]) -> Path:
    """First existing file in ``search_chain``.

    Raises:
        TemplateMissingError: No candidate exists.
    """
    chain = list(search_chain)
    for candidate in chain:
        if candidate.is_file():
            return candidate
    names = ", ".join(p.name for p in chain) or "(empty chain)"
    raise TemplateMissingError(f"No env template found (tried {names})")


def synthesize_env_file(
    component: str,
    search_chain: Iterable[Path],
    rules: Mapping[str, str],
    *,
    environment: str,
    generated_at: str,
) -> str:
    """Build the ``.env`` content for one component.

    Walks ``search_chain`` for a template, applies ``rules`` in order and
    prepends a header naming the component, environment and
    ``generated_at``.  Without any template the result holds only the
    rule keys, which is enough for the component's compose file to start.
    """
    try:
        template = find_env_template(search_chain)
    except TemplateMissingError as e:
        logger.warning("%s: %s; writing minimal env file", component, e)
        env = EnvFile()
        source = "minimal defaults"
    else:
        logger.debug("%s: env template %s", component, template)
        env = EnvFile.read(template)
        source = template.name

    env.update(rules)

    header = [
        f"{HEADER_PREFIX} for {component} ({environment}) at {generated_at}",
        f"# Source: {source}",
        "",
    ]
    return "\n".join(header) + "\n" + env.render()


def set_env_value(path: Path, key: str, value: str) -> bool:
    """Set one key in an env file on disk, creating the file if needed."""
    env = EnvFile.read(path) if path.is_file() else EnvFile()
    replaced = env.set(key, value)
    path.write_text(env.render(), encoding="utf-8")
    return replaced
