"""
Domain models — Pydantic types for provisioning runs.

All models are re-exported here for convenient access:

    from telestack.core.models import EnvironmentConfig, ComponentSpec, RunReport
"""

from telestack.core.models.component import ComponentSpec, ComposeChain, NetworkTopologyEntry
from telestack.core.models.environment import EnvironmentConfig, EnvironmentKind, NetworkNames
from telestack.core.models.options import ProvisionOptions
from telestack.core.models.proxy import ProxyHostRecord
from telestack.core.models.report import RunReport, StepResult
from telestack.core.models.snapshot import BackupSnapshot

__all__ = [
    # component.py
    "ComponentSpec",
    "ComposeChain",
    "NetworkTopologyEntry",
    # environment.py
    "EnvironmentConfig",
    "EnvironmentKind",
    "NetworkNames",
    # options.py
    "ProvisionOptions",
    # proxy.py
    "ProxyHostRecord",
    # report.py
    "RunReport",
    "StepResult",
    # snapshot.py
    "BackupSnapshot",
]
