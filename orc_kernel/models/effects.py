"""
Effect Algebra — side effects described as plain data.

Planning code builds lists of these values; only the Effect Executor
interprets them. An effect never holds a file handle, a process or a
connection, so a plan can be logged, compared or asserted on in a test
without touching the machine.

Behavioral Contract:
- The set of variants is closed. `Effect` is a discriminated union on `kind`,
  so an unknown kind fails validation instead of reaching the executor.
- Every variant is immutable.
- There is no deletion variant. Apply passes cannot express rm/rmdir.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FileOperation(str, Enum):
    MKDIR = "mkdir"
    WRITE = "write"
    READ = "read"       # Planning-only marker, no-op at execution time
    EXISTS = "exists"   # Planning-only marker, no-op at execution time
    MOVE = "move"       # Rename path -> destination


class GitOperation(str, Enum):
    WORKTREE_ADD = "worktree_add"


class SessionOperation(str, Enum):
    CREATE_SESSION = "create_session"
    CREATE_WINDOW = "create_window"
    SEND_KEYS = "send_keys"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class _EffectBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class FileEffect(_EffectBase):
    """A filesystem mutation (or an inspection marker)."""

    kind: Literal["file"] = "file"
    operation: FileOperation
    path: str
    content: Optional[str] = None           # write only
    mode: int = 0o755                       # 0o644 when omitted on a write
    destination: Optional[str] = None       # move only

    @model_validator(mode="before")
    @classmethod
    def default_write_mode(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("mode") is not None:
            return data
        if data.get("operation") == FileOperation.WRITE:
            return {**data, "mode": 0o644}
        return data


class GitEffect(_EffectBase):
    """Create a worktree at target_path checked out to branch."""

    kind: Literal["git"] = "git"
    operation: GitOperation = GitOperation.WORKTREE_ADD
    repo_path: str
    branch: str
    target_path: str


class SessionEffect(_EffectBase):
    """A terminal-multiplexer session, window or keystroke operation."""

    kind: Literal["session"] = "session"
    operation: SessionOperation
    session_name: str
    window_name: Optional[str] = None
    working_dir: Optional[str] = None
    command: Optional[str] = None           # agent pane root command (create_window)
    keys: Optional[str] = None              # send_keys payload
    target: Optional[str] = None            # send_keys target, e.g. "sess:bench.2"
    environment: Dict[str, str] = {}        # create_session only


class PersistEffect(_EffectBase):
    """A repository update with a narrowly typed string payload."""

    kind: Literal["persist"] = "persist"
    entity: str                             # "grove", "commission", "workbench"
    operation: str                          # "update_path", "update_status"
    data: Dict[str, str]


class NoEffect(_EffectBase):
    kind: Literal["none"] = "none"


class LogEffect(_EffectBase):
    kind: Literal["log"] = "log"
    level: LogLevel = LogLevel.INFO
    message: str
    fields: Dict[str, str] = {}


class CompositeEffect(_EffectBase):
    """Several effects executed as a unit, in order."""

    kind: Literal["composite"] = "composite"
    effects: List["Effect"] = []


Effect = Annotated[
    Union[
        FileEffect,
        GitEffect,
        SessionEffect,
        PersistEffect,
        CompositeEffect,
        NoEffect,
        LogEffect,
    ],
    Field(discriminator="kind"),
]

CompositeEffect.model_rebuild()


class EffectBatch(BaseModel):
    """The effects belonging to one entity, applied in isolation in batch mode."""

    entity_id: str
    label: str
    effects: List[Effect] = []


def flatten(effects: Iterable[Effect]) -> List[Effect]:
    """Expand composites recursively, preserving program order."""
    flat: List[Effect] = []
    for effect in effects:
        if isinstance(effect, CompositeEffect):
            flat.extend(flatten(effect.effects))
        else:
            flat.append(effect)
    return flat


def describe(effect: Effect) -> str:
    """One-line human description, used by plan output and logs."""
    if isinstance(effect, FileEffect):
        if effect.operation == FileOperation.MOVE:
            return f"move {effect.path} -> {effect.destination}"
        if effect.operation == FileOperation.WRITE:
            return f"write {effect.path} ({oct(effect.mode)})"
        return f"{effect.operation.value} {effect.path}"
    if isinstance(effect, GitEffect):
        return (
            f"git worktree add {effect.target_path} "
            f"(repo {effect.repo_path}, branch {effect.branch})"
        )
    if isinstance(effect, SessionEffect):
        if effect.operation == SessionOperation.CREATE_SESSION:
            return f"create session {effect.session_name} in {effect.working_dir}"
        if effect.operation == SessionOperation.CREATE_WINDOW:
            return (
                f"create window {effect.session_name}:{effect.window_name} "
                f"in {effect.working_dir}"
            )
        return f"send keys to {effect.target or effect.session_name}"
    if isinstance(effect, PersistEffect):
        return f"persist {effect.entity}.{effect.operation} {effect.data}"
    if isinstance(effect, CompositeEffect):
        return f"composite of {len(effect.effects)} effects"
    if isinstance(effect, LogEffect):
        return f"log[{effect.level.value}] {effect.message}"
    return "no-op"
