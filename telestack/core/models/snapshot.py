"""
BackupSnapshot — manifest of one pre-teardown snapshot.

Serialized to ``snapshot.json`` inside the snapshot directory.  Created
once, never edited; restoring or deleting is an explicit operator action.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_MANIFEST = "snapshot.json"
COMPONENTS_DIR = "components"
JITSI_BLOB = "jitsi-config.tar.gz"


class BackupSnapshot(BaseModel):
    """Immutable record of what a snapshot holds."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    project_name: str
    environment: str
    path: Path
    components: dict[str, str] = Field(default_factory=dict)  # folder → relative copy path
    jitsi_config_blob: str | None = None

    @property
    def components_dir(self) -> Path:
        return self.path / COMPONENTS_DIR

    @property
    def jitsi_blob_path(self) -> Path | None:
        if not self.jitsi_config_blob:
            return None
        return self.path / self.jitsi_config_blob
