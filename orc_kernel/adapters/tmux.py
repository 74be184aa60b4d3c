"""
Tmux Driver — sessions, windows and panes through the tmux CLI.

Sessions are tracked by an environment variable set at creation time
(e.g. ORC_WORKSHOP_ID=WORK-001), so renaming a session does not break
tracking. Window and pane indexes start at 1.

Workbench window layout (pane numbers):

    +-------+-------+
    |       |   2   |   pane 2 runs the agent command as its root process
    |   1   +-------+
    |       |   3   |
    +-------+-------+
"""

import logging
import subprocess
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class SessionDriverError(Exception):
    """A tmux command failed."""


class TmuxDriver:
    """subprocess-backed session driver."""

    def __init__(self, binary: str = "tmux", agent_pane: int = 2, socket: Optional[str] = None):
        self.binary = binary
        self.agent_pane = agent_pane
        self.socket = socket                # tmux -L <socket>; None uses the default server

    def _argv(self, *args: str) -> List[str]:
        if self.socket:
            return [self.binary, "-L", self.socket, *args]
        return [self.binary, *args]

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        try:
            proc = subprocess.run(
                self._argv(*args), capture_output=True, text=True, check=False
            )
        except OSError as e:
            raise SessionDriverError(f"tmux {args[0]} failed: {e}") from e
        if check and proc.returncode != 0:
            raise SessionDriverError(f"tmux {' '.join(args)} failed: {proc.stderr.strip()}")
        return proc

    def _lines(self, *args: str) -> List[str]:
        out = self._run(*args).stdout
        return [line.strip() for line in out.splitlines() if line.strip()]

    # --- Sessions ---

    def session_exists(self, name: str) -> bool:
        return self._run("has-session", "-t", name, check=False).returncode == 0

    def list_sessions(self) -> List[str]:
        proc = self._run("list-sessions", "-F", "#{session_name}", check=False)
        if proc.returncode != 0:
            # No server running means no sessions
            return []
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def get_environment(self, session: str, key: str) -> Optional[str]:
        proc = self._run("show-environment", "-t", session, key, check=False)
        if proc.returncode != 0:
            return None
        line = proc.stdout.strip()
        # Unset variables print as "-KEY"
        if not line.startswith(f"{key}="):
            return None
        return line[len(key) + 1:]

    def set_environment(self, session: str, key: str, value: str) -> None:
        self._run("set-environment", "-t", session, key, value)

    def find_session_by_env(self, key: str, value: str) -> Optional[str]:
        for session in self.list_sessions():
            if self.get_environment(session, key) == value:
                return session
        return None

    def create_session(
        self,
        name: str,
        working_dir: str,
        window_name: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Create a detached session whose windows and panes are numbered from 1.

        A session that already exists is adopted: unset environment markers
        are set, and a marker naming a different owner raises.
        """
        environment = environment or {}
        if self.session_exists(name):
            logger.debug("Session %s already exists", name)
            self._adopt_session(name, environment)
            return
        args = ["new-session", "-d", "-s", name, "-c", working_dir]
        if window_name:
            args += ["-n", window_name]
        self._run(*args)
        self._run("set-option", "-t", name, "base-index", "1")
        # The first window was numbered before base-index applied
        self._run("move-window", "-r", "-t", name)
        self._run("set-window-option", "-t", f"{name}:1", "pane-base-index", "1")
        for key, value in environment.items():
            self.set_environment(name, key, value)

    def _adopt_session(self, name: str, environment: Dict[str, str]) -> None:
        for key, value in environment.items():
            current = self.get_environment(name, key)
            if current is None:
                logger.info("Marking existing session %s with %s=%s", name, key, value)
                self.set_environment(name, key, value)
            elif current != value:
                raise SessionDriverError(
                    f"session {name} already belongs to {key}={current}, not {value}"
                )

    def kill_session(self, name: str) -> None:
        self._run("kill-session", "-t", name)

    def rename_session(self, old: str, new: str) -> None:
        self._run("rename-session", "-t", old, new)

    # --- Windows ---

    def list_windows(self, session: str) -> List[str]:
        return self._lines("list-windows", "-t", session, "-F", "#{window_name}")

    def window_exists(self, session: str, name: str) -> bool:
        proc = self._run("list-windows", "-t", session, "-F", "#{window_name}", check=False)
        if proc.returncode != 0:
            return False
        return name in [line.strip() for line in proc.stdout.splitlines()]

    def create_window(
        self,
        session: str,
        name: str,
        working_dir: str,
        command: Optional[str] = None,
    ) -> None:
        """New window. With a command, build the 3-pane layout around it."""
        if self.window_exists(session, name):
            logger.debug("Window %s:%s already exists", session, name)
            return
        self._run("new-window", "-t", session, "-n", name, "-c", working_dir)
        target = f"{session}:{name}"
        # pane-base-index is a window option; set it before addressing panes
        self._run("set-window-option", "-t", target, "pane-base-index", "1")
        if command is None:
            return
        self._run("split-window", "-h", "-t", f"{target}.1", "-c", working_dir)
        self._run("split-window", "-v", "-t", f"{target}.2", "-c", working_dir)
        self._run(
            "respawn-pane", "-k", "-t", f"{target}.{self.agent_pane}", "-c", working_dir,
            *command.split(),
        )

    def kill_window(self, session: str, name: str) -> None:
        self._run("kill-window", "-t", f"{session}:{name}")

    def rename_window(self, target: str, new_name: str) -> None:
        self._run("rename-window", "-t", target, new_name)

    # --- Panes ---

    def pane_count(self, session: str, window: str) -> int:
        return len(self._lines("list-panes", "-t", f"{session}:{window}"))

    def pane_command(self, session: str, window: str, pane: int) -> str:
        proc = self._run(
            "display-message", "-t", f"{session}:{window}.{pane}",
            "-p", "#{pane_current_command}",
        )
        return proc.stdout.strip()

    def pane_paths(self, session: str, window: str) -> List[str]:
        """Current directory of each pane, in pane order."""
        return self._lines(
            "list-panes", "-t", f"{session}:{window}", "-F", "#{pane_current_path}"
        )

    def capture_pane(self, target: str, lines: int = 50) -> str:
        return self._run("capture-pane", "-t", target, "-p", "-S", f"-{lines}").stdout

    def send_keys(self, target: str, keys: str) -> None:
        self._run("send-keys", "-t", target, keys, "C-m")

    def nudge(self, target: str, message: str) -> bool:
        """Best-effort message to an agent pane. Never raises."""
        try:
            self._run("send-keys", "-t", target, "-l", message)
            self._run("send-keys", "-t", target, "Enter")
        except SessionDriverError as e:
            logger.warning("Nudge to %s failed: %s", target, e)
            return False
        return True
