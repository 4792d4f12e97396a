"""
ProvisionOptions — per-run switches, passed explicitly to every call.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from telestack.core.models.environment import EnvironmentKind


class ProvisionOptions(BaseModel):
    """Run-level flags.

    ``dev_mode`` picks dev compose overlays and dev env overrides.  It
    defaults to ``True`` only for the ``dev`` environment.  ``shared_db``
    runs one database for all components; ``restart_proxy`` restarts the
    proxy once routes are published.
    """

    model_config = ConfigDict(frozen=True)

    dev_mode: bool = False
    include_cms: bool = True
    start: bool = True
    publish_routes: bool = True
    shared_db: bool = False
    restart_proxy: bool = False

    @classmethod
    def for_environment(
        cls,
        kind: EnvironmentKind,
        *,
        dev_mode: bool | None = None,
        **overrides: Any,
    ) -> ProvisionOptions:
        if dev_mode is None:
            dev_mode = kind == EnvironmentKind.DEV
        return cls(dev_mode=dev_mode, **overrides)
