"""BridgeState — what the bridge currently knows about the plugin.

Projects and the active project are the plugin's own copies, replaced
wholesale on every ``state-update``. The last design snapshot is replaced on
every ``design-data``. Nothing is merged and nothing is computed locally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Project = dict[str, Any]  # {id, name, goals[], fixes[], ...} passed through untouched
Snapshot = dict[str, Any]


@dataclass
class BridgeState:
    connected: bool = False
    projects: list[Project] = field(default_factory=list)
    active_project: Project | None = None
    last_design_snapshot: Snapshot | None = None
    last_audit_result: Any = None

    # ------------------------------------------------------------------
    # Mutators (one per inbound intent)
    # ------------------------------------------------------------------

    def mark_connected(self, connected: bool) -> None:
        self.connected = connected

    def replace_projects(self, projects: list[Project] | None, active_project: Project | None) -> None:
        self.projects = list(projects or [])
        self.active_project = active_project or None
        logger.info(
            "[State] %d projects, active=%s", len(self.projects), self.active_project_name() or "None"
        )

    def store_snapshot(self, snapshot: Snapshot) -> None:
        self.last_design_snapshot = snapshot

    def store_audit_result(self, result: Any) -> None:
        self.last_audit_result = result

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def active_project_name(self) -> str | None:
        if isinstance(self.active_project, dict):
            name = self.active_project.get("name")
            return name if isinstance(name, str) and name else None
        return None

    def to_dict(self) -> dict[str, Any]:
        """Wire shape served by ``GET /state``."""
        return {
            "connected": self.connected,
            "projects": self.projects,
            "activeProject": self.active_project,
            "lastDesignData": self.last_design_snapshot,
            "lastAuditResult": self.last_audit_result,
        }
