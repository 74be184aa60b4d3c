"""In-memory workspace and session driver for side-effect-free tests."""

from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set

from orc_kernel.adapters.tmux import SessionDriverError
from orc_kernel.adapters.workspace import WorkspaceError


class FakeWorkspace:
    def __init__(self):
        self.dirs: Set[str] = set()
        self.files: Dict[str, str] = {}
        self.modes: Dict[str, int] = {}
        self.worktrees: Dict[str, str] = {}         # path -> branch
        self.dirty: Dict[str, List[str]] = {}
        self.unreadable: Set[str] = set()           # probes raise for these
        self.failing: Set[str] = set()              # mutations raise for these
        self.removed: List[str] = []
        self.calls: List[tuple] = []

    def add_dir(self, path: str) -> None:
        p = PurePosixPath(path)
        self.dirs.add(str(p))
        for parent in p.parents:
            self.dirs.add(str(parent))

    def _check(self, path: str) -> None:
        if path in self.unreadable:
            raise WorkspaceError(f"permission denied: {path}")

    def _fail(self, path: str) -> None:
        if path in self.failing:
            raise WorkspaceError(f"injected failure: {path}")

    def directory_exists(self, path: str) -> bool:
        self._check(path)
        return path in self.dirs

    def file_exists(self, path: str) -> bool:
        self._check(path)
        return path in self.files

    def worktree_exists(self, path: str) -> bool:
        return path in self.worktrees

    def list_directory(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        return sorted({
            d[len(prefix):].split("/")[0] for d in self.dirs if d.startswith(prefix)
        })

    def create_directory(self, path: str, mode: int = 0o755) -> None:
        self.calls.append(("mkdir", path))
        self._fail(path)
        self.add_dir(path)
        self.modes[path] = mode

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        self.calls.append(("write", path))
        self._fail(path)
        if str(PurePosixPath(path).parent) not in self.dirs:
            raise WorkspaceError(f"no such directory for {path}")
        self.files[path] = content
        self.modes[path] = mode

    def move_directory(self, src: str, dst: str) -> None:
        self.calls.append(("move", src, dst))
        self._fail(src)
        if dst in self.dirs:
            raise WorkspaceError(f"destination {dst} already exists")
        if src not in self.dirs:
            raise WorkspaceError(f"no such directory {src}")

        def rebase(p: str) -> str:
            return dst + p[len(src):]

        moved = {d for d in self.dirs if d == src or d.startswith(src + "/")}
        self.dirs -= moved
        for d in moved:
            self.add_dir(rebase(d))
        for f in [f for f in self.files if f.startswith(src + "/")]:
            self.files[rebase(f)] = self.files.pop(f)

    def remove_directory(self, path: str) -> None:
        self.calls.append(("remove", path))
        self.removed.append(path)
        self.dirs = {d for d in self.dirs if not (d == path or d.startswith(path + "/"))}
        self.files = {f: c for f, c in self.files.items() if not f.startswith(path + "/")}

    def create_worktree(self, repo_path: str, branch: str, target_path: str) -> None:
        self.calls.append(("worktree_add", repo_path, branch, target_path))
        self._fail(target_path)
        if repo_path not in self.dirs:
            raise WorkspaceError(f"not a git repository: {repo_path}")
        self.add_dir(target_path)
        self.worktrees[target_path] = branch

    def remove_worktree(self, repo_path: str, path: str) -> None:
        self.worktrees.pop(path, None)
        self.remove_directory(path)

    def worktree_status(self, path: str) -> List[str]:
        return list(self.dirty.get(path, []))


class FakeSessionDriver:
    """Sessions with environment, windows, pane counts and pane-2 commands."""

    def __init__(self, shell: str = "zsh"):
        self.shell = shell
        self.sessions: Dict[str, dict] = {}
        self.nudges: List[tuple] = []
        self.calls: List[tuple] = []
        self.broken = False

    def _guard(self) -> None:
        if self.broken:
            raise SessionDriverError("tmux server not responding")

    def add_session(self, name: str, env: Optional[Dict[str, str]] = None) -> None:
        self.sessions[name] = {"env": dict(env or {}), "windows": {}}

    def add_window(
        self, session: str, name: str, panes: int = 3, command: str = "orc", path: str = ""
    ) -> None:
        self.sessions[session]["windows"][name] = {
            "panes": panes, "command": command, "paths": [path] * panes,
        }

    def session_exists(self, name: str) -> bool:
        self._guard()
        return name in self.sessions

    def find_session_by_env(self, key: str, value: str) -> Optional[str]:
        self._guard()
        for name, session in self.sessions.items():
            if session["env"].get(key) == value:
                return name
        return None

    def create_session(self, name, working_dir, window_name=None, environment=None) -> None:
        self.calls.append(("create_session", name, working_dir))
        self._guard()
        if name in self.sessions:
            env = self.sessions[name]["env"]
            for key, value in (environment or {}).items():
                if env.get(key, value) != value:
                    raise SessionDriverError(f"session {name} already belongs to {key}={env[key]}")
                env[key] = value
            return
        self.add_session(name, environment)
        self.add_window(name, window_name or "0", panes=1, command=self.shell, path=working_dir)

    def kill_session(self, name: str) -> None:
        self.sessions.pop(name, None)

    def list_windows(self, session: str) -> List[str]:
        self._guard()
        return list(self.sessions[session]["windows"])

    def create_window(self, session, name, working_dir, command=None) -> None:
        self.calls.append(("create_window", session, name, working_dir, command))
        self._guard()
        if session not in self.sessions:
            raise SessionDriverError(f"can't find session: {session}")
        if name in self.sessions[session]["windows"]:
            return
        if command:
            self.add_window(
                session, name, panes=3, command=command.split()[0], path=working_dir
            )
        else:
            self.add_window(session, name, panes=1, command=self.shell, path=working_dir)

    def kill_window(self, session: str, name: str) -> None:
        self.calls.append(("kill_window", session, name))
        self.sessions[session]["windows"].pop(name, None)

    def pane_count(self, session: str, window: str) -> int:
        self._guard()
        return self.sessions[session]["windows"][window]["panes"]

    def pane_command(self, session: str, window: str, pane: int) -> str:
        self._guard()
        w = self.sessions[session]["windows"][window]
        return w["command"] if pane == 2 else self.shell

    def pane_paths(self, session: str, window: str) -> List[str]:
        self._guard()
        return list(self.sessions[session]["windows"][window]["paths"])

    def send_keys(self, target: str, keys: str) -> None:
        self._guard()
        self.nudges.append((target, keys))

    def nudge(self, target: str, message: str) -> bool:
        session = target.split(":")[0]
        if session not in self.sessions:
            return False
        self.nudges.append((target, message))
        return True
