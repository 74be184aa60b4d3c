"""
Filesystem Workspace — directories, files and git worktrees on the local disk.

Behavioral Contract:
- create_directory is idempotent and applies the requested mode
- write_file creates or overwrites, then applies the requested mode
- move_directory refuses to overwrite an existing destination
- Existence checks return False only for "not there"; any other OS error
  is raised as WorkspaceError so callers can tell "absent" from "unknown"
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import List

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

logger = logging.getLogger(__name__)


class WorkspaceError(Exception):
    """A filesystem or git operation failed."""


class FilesystemWorkspace:
    """Local-disk implementation of the workspace adapter."""

    # --- Probes ---

    def _stat(self, path: str):
        try:
            return os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise WorkspaceError(f"cannot stat {path}: {e}") from e

    def directory_exists(self, path: str) -> bool:
        st = self._stat(path)
        return st is not None and stat.S_ISDIR(st.st_mode)

    def file_exists(self, path: str) -> bool:
        st = self._stat(path)
        return st is not None and stat.S_ISREG(st.st_mode)

    def worktree_exists(self, path: str) -> bool:
        """A worktree checkout has a `.git` file (or directory) at its root."""
        return self._stat(os.path.join(path, ".git")) is not None

    def list_directory(self, path: str) -> List[str]:
        if not self.directory_exists(path):
            return []
        try:
            return sorted(os.listdir(path))
        except OSError as e:
            raise WorkspaceError(f"cannot list {path}: {e}") from e

    # --- Mutations ---

    def create_directory(self, path: str, mode: int = 0o755) -> None:
        try:
            os.makedirs(path, mode=mode, exist_ok=True)
            os.chmod(path, mode)
        except OSError as e:
            raise WorkspaceError(f"failed to create directory {path}: {e}") from e

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(path, mode)
        except OSError as e:
            raise WorkspaceError(f"failed to write {path}: {e}") from e

    def move_directory(self, src: str, dst: str) -> None:
        if self._stat(dst) is not None:
            raise WorkspaceError(f"cannot move {src}: destination {dst} already exists")
        try:
            Path(dst).parent.mkdir(parents=True, exist_ok=True)
            os.rename(src, dst)
        except OSError as e:
            raise WorkspaceError(f"failed to move {src} to {dst}: {e}") from e

    def remove_directory(self, path: str) -> None:
        """Delete a directory tree. Only the explicit cleanup path calls this."""
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise WorkspaceError(f"failed to remove {path}: {e}") from e

    # --- Git ---

    def _repo(self, path: str) -> Repo:
        try:
            return Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise WorkspaceError(f"not a git repository: {path}") from e

    def create_worktree(self, repo_path: str, branch: str, target_path: str) -> None:
        """Check out `branch` at target_path, creating the branch if it is new."""
        repo = self._repo(repo_path)
        try:
            Path(target_path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"failed to create parent of {target_path}: {e}") from e
        try:
            if branch in {head.name for head in repo.heads}:
                repo.git.worktree("add", target_path, branch)
            else:
                repo.git.worktree("add", "-b", branch, target_path)
        except GitCommandError as e:
            raise WorkspaceError(f"git worktree add {target_path} failed: {e}") from e
        logger.info("Created worktree %s (branch %s)", target_path, branch)

    def remove_worktree(self, repo_path: str, path: str) -> None:
        try:
            self._repo(repo_path).git.worktree("remove", path, "--force")
        except (WorkspaceError, GitCommandError) as e:
            logger.warning("git worktree remove failed, deleting directory: %s", e)
            self.remove_directory(path)

    def worktree_status(self, path: str) -> List[str]:
        """Porcelain status lines. Empty means the worktree is clean."""
        try:
            out = self._repo(path).git.status("--porcelain")
        except GitCommandError as e:
            raise WorkspaceError(f"git status failed in {path}: {e}") from e
        return [line for line in out.splitlines() if line.strip()]
