"""
State Gatherer — observes what actually exists on disk and in the session driver.

Behavioral Contract:
- Read-only. Never creates, writes or repairs anything.
- Never caches. Every call probes afresh.
- A probe that fails degrades to "unknown" (None) with the error recorded;
  the failure is logged and gathering continues.
- Sessions are located by their entity-ID environment marker, not by name.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional

from orc_kernel.adapters.ports import SessionDriver, WorkspaceAdapter
from orc_kernel.adapters.tmux import SessionDriverError
from orc_kernel.adapters.workspace import WorkspaceError
from orc_kernel.config.settings import SessionSettings
from orc_kernel.models.infra import (
    CommissionActualState,
    DesiredCommissionInfra,
    DesiredWorkshop,
    GroveProbe,
    PathProbe,
    SessionProbe,
    StrayMarker,
    WindowProbe,
    WorkshopActualState,
)
from orc_kernel.models.marker import marker_path, read_marker

logger = logging.getLogger(__name__)


class StateGatherer:
    """Probes paths, config markers, sessions, windows and panes."""

    def __init__(
        self,
        workspace: WorkspaceAdapter,
        sessions: Optional[SessionDriver] = None,
        session_settings: Optional[SessionSettings] = None,
    ):
        self.workspace = workspace
        self.sessions = sessions
        self.settings = session_settings or SessionSettings()

    def probe_path(self, path: str) -> PathProbe:
        """Directory and config-marker existence for one place."""
        try:
            exists = self.workspace.directory_exists(path)
        except (WorkspaceError, OSError) as e:
            logger.warning("Path probe failed for %s: %s", path, e)
            return PathProbe(path=path, exists=None, config_exists=None, error=str(e))

        if not exists:
            return PathProbe(path=path, exists=False, config_exists=False)

        try:
            config_exists = self.workspace.file_exists(marker_path(path))
        except (WorkspaceError, OSError) as e:
            logger.warning("Config probe failed for %s: %s", path, e)
            return PathProbe(path=path, exists=True, config_exists=None, error=str(e))
        return PathProbe(path=path, exists=True, config_exists=config_exists)

    def probe_session(self, workshop_id: str, windows: Iterable[str]) -> SessionProbe:
        """Find the workshop's session and inspect the expected windows."""
        if self.sessions is None:
            return SessionProbe(exists=None, error="no session driver configured")

        try:
            name = self.sessions.find_session_by_env(
                self.settings.workshop_env_var, workshop_id
            )
        except (SessionDriverError, OSError) as e:
            logger.warning("Session lookup failed for %s: %s", workshop_id, e)
            return SessionProbe(exists=None, error=str(e))

        if name is None:
            return SessionProbe(exists=False)

        try:
            listed = self.sessions.list_windows(name)
        except (SessionDriverError, OSError) as e:
            logger.warning("Window listing failed for session %s: %s", name, e)
            return SessionProbe(session_name=name, exists=True, error=str(e))

        present = set(listed)
        probes: Dict[str, WindowProbe] = {}
        for window in windows:
            if window not in present:
                probes[window] = WindowProbe(name=window, exists=False)
                continue
            probes[window] = self._probe_window(name, window)
        return SessionProbe(
            session_name=name, exists=True, windows=probes, all_windows=list(listed)
        )

    def _probe_window(self, session: str, window: str) -> WindowProbe:
        try:
            pane_count = self.sessions.pane_count(session, window)
        except (SessionDriverError, OSError) as e:
            logger.warning("Pane count failed for %s:%s: %s", session, window, e)
            return WindowProbe(name=window, exists=True)

        agent_command = ""
        if pane_count >= self.settings.agent_pane_index:
            try:
                agent_command = self.sessions.pane_command(
                    session, window, self.settings.agent_pane_index
                )
            except (SessionDriverError, OSError) as e:
                logger.warning("Pane command failed for %s:%s: %s", session, window, e)

        pane_paths: List[str] = []
        try:
            pane_paths = self.sessions.pane_paths(session, window)
        except (SessionDriverError, OSError) as e:
            logger.warning("Pane paths failed for %s:%s: %s", session, window, e)
        return WindowProbe(
            name=window,
            exists=True,
            pane_count=pane_count,
            agent_command=agent_command,
            pane_paths=pane_paths,
        )

    def scan_stray_markers(
        self, root: str, prefix: str, known_ids: Iterable[str]
    ) -> List[StrayMarker]:
        """Markers under root whose place_id has no record. Informational only."""
        known = set(known_ids)
        try:
            entries = self.workspace.list_directory(root)
        except (WorkspaceError, OSError) as e:
            logger.warning("Marker scan failed for %s: %s", root, e)
            return []

        strays: List[StrayMarker] = []
        for entry in entries:
            place = os.path.join(root, entry)
            marker = read_marker(marker_path(place))
            if marker is None or not marker.place_id.startswith(prefix):
                continue
            if marker.place_id not in known:
                strays.append(StrayMarker(place_id=marker.place_id, path=place))
        return strays

    def gather_workshop(
        self,
        desired: DesiredWorkshop,
        scan_root: Optional[str] = None,
        known_ids: Iterable[str] = (),
    ) -> WorkshopActualState:
        windows = [self.settings.gatehouse_window] + [wb.name for wb in desired.workbenches]
        strays: List[StrayMarker] = []
        if scan_root:
            strays = self.scan_stray_markers(scan_root, "BENCH-", known_ids)
        return WorkshopActualState(
            gatehouse=self.probe_path(desired.gatehouse_path),
            workbenches={wb.id: self.probe_path(wb.path) for wb in desired.workbenches},
            session=self.probe_session(desired.workshop_id, windows),
            stray_markers=strays,
        )

    def gather_groves(self, desired: DesiredCommissionInfra) -> Dict[str, GroveProbe]:
        probes: Dict[str, GroveProbe] = {}
        for grove in desired.groves:
            current = self.probe_path(grove.current_path)
            if grove.current_path == grove.desired_path:
                target = current
            else:
                target = self.probe_path(grove.desired_path)
            probes[grove.id] = GroveProbe(current=current, desired=target)
        return probes

    def gather_commission(self, desired: DesiredCommissionInfra) -> CommissionActualState:
        return CommissionActualState(
            workspace=self.probe_path(desired.workspace_path),
            groves_dir=self.probe_path(desired.groves_dir),
            groves=self.gather_groves(desired),
        )
