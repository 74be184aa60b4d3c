"""Interfaces of the external collaborators: the filesystem/git and the session driver."""

from typing import Dict, List, Optional, Protocol


class WorkspaceAdapter(Protocol):
    """Filesystem and git worktree operations."""

    def directory_exists(self, path: str) -> bool: ...

    def file_exists(self, path: str) -> bool: ...

    def create_directory(self, path: str, mode: int = 0o755) -> None: ...

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None: ...

    def move_directory(self, src: str, dst: str) -> None: ...

    def remove_directory(self, path: str) -> None: ...

    def worktree_exists(self, path: str) -> bool: ...

    def create_worktree(self, repo_path: str, branch: str, target_path: str) -> None: ...

    def remove_worktree(self, repo_path: str, path: str) -> None: ...

    def worktree_status(self, path: str) -> List[str]: ...

    def list_directory(self, path: str) -> List[str]: ...


class SessionDriver(Protocol):
    """Terminal multiplexer sessions, windows and panes."""

    def session_exists(self, name: str) -> bool: ...

    def find_session_by_env(self, key: str, value: str) -> Optional[str]: ...

    def create_session(
        self,
        name: str,
        working_dir: str,
        window_name: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
    ) -> None: ...

    def kill_session(self, name: str) -> None: ...

    def list_windows(self, session: str) -> List[str]: ...

    def create_window(
        self,
        session: str,
        name: str,
        working_dir: str,
        command: Optional[str] = None,
    ) -> None: ...

    def kill_window(self, session: str, name: str) -> None: ...

    def pane_count(self, session: str, window: str) -> int: ...

    def pane_command(self, session: str, window: str, pane: int) -> str: ...

    def pane_paths(self, session: str, window: str) -> List[str]: ...

    def send_keys(self, target: str, keys: str) -> None: ...

    def nudge(self, target: str, message: str) -> bool: ...
