"""
Effect Executor — the only component that performs I/O.

Interprets effect values against the workspace adapter, the session driver
and the repository.

Behavioral Contract:
- Effects run strictly in list order; composites are flattened in order
- read/exists file effects are no-ops; mkdir is idempotent
- send_keys is best-effort and never fails the call
- execute() stops at the first hard failure and raises ExecutionError
  carrying the effect kind; execute_batch() isolates each entity and
  returns a result with completed/failed entities and one error per failure
- An unknown persistence pairing raises PersistDispatchError, which is a
  programming error and is never collected as a batch failure
- Nothing here deletes filesystem state
"""

import logging
import sqlite3
from typing import Callable, Dict, Iterable, Optional, Tuple, assert_never

from orc_kernel.adapters.ports import SessionDriver, WorkspaceAdapter
from orc_kernel.adapters.tmux import SessionDriverError
from orc_kernel.adapters.workspace import WorkspaceError
from orc_kernel.models.effects import (
    CompositeEffect,
    Effect,
    EffectBatch,
    FileEffect,
    FileOperation,
    GitEffect,
    LogEffect,
    LogLevel,
    NoEffect,
    PersistEffect,
    SessionEffect,
    SessionOperation,
    describe,
    flatten,
)
from orc_kernel.models.infra import BatchApplyResult, BatchError
from orc_kernel.persistence.ports import Repository

logger = logging.getLogger(__name__)

# Failures that count as "the effect did not happen", as opposed to bugs
_HARD_FAILURES = (WorkspaceError, SessionDriverError, OSError, LookupError, sqlite3.Error)

_LOG_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class ExecutionError(Exception):
    """An effect failed. Carries the effect kind and the underlying error."""

    def __init__(self, effect_kind: str, cause: BaseException):
        super().__init__(f"failed to execute {effect_kind} effect: {cause}")
        self.effect_kind = effect_kind
        self.cause = cause


class PersistDispatchError(Exception):
    """No repository call is registered for an entity/operation pair."""


class EffectExecutor:
    """Applies effects sequentially against real collaborators."""

    def __init__(
        self,
        workspace: WorkspaceAdapter,
        sessions: Optional[SessionDriver] = None,
        repository: Optional[Repository] = None,
    ):
        self.workspace = workspace
        self.sessions = sessions
        self.repository = repository
        self._persist_handlers: Dict[Tuple[str, str], Callable[[Dict[str, str]], None]] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        self._persist_handlers[("grove", "update_path")] = self._persist_grove_path
        self._persist_handlers[("commission", "update_status")] = self._persist_commission_status
        self._persist_handlers[("workbench", "update_status")] = self._persist_workbench_status

    def register_persist_handler(
        self, entity: str, operation: str, handler: Callable[[Dict[str, str]], None]
    ) -> None:
        self._persist_handlers[(entity, operation)] = handler

    # --- Public API ---

    def execute(self, effects: Iterable[Effect]) -> None:
        """Single-entity mode. Raises ExecutionError on the first hard failure."""
        for effect in flatten(effects):
            logger.debug("Executing: %s", describe(effect))
            try:
                self._dispatch(effect)
            except _HARD_FAILURES as e:
                raise ExecutionError(effect.kind, e) from e

    def execute_batch(self, batches: Iterable[EffectBatch]) -> BatchApplyResult:
        """Best-effort mode. Each batch is isolated; failures are collected."""
        result = BatchApplyResult()
        for batch in batches:
            try:
                self.execute(batch.effects)
            except ExecutionError as e:
                logger.warning("Apply failed for %s (%s): %s", batch.entity_id, batch.label, e)
                result.failed.append(batch.entity_id)
                result.errors.append(BatchError(
                    entity_id=batch.entity_id,
                    label=batch.label,
                    effect_kind=e.effect_kind,
                    message=str(e),
                ))
                continue
            result.completed.append(batch.entity_id)
        return result

    # --- Dispatch ---

    def _dispatch(self, effect: Effect) -> None:
        if isinstance(effect, FileEffect):
            self._execute_file(effect)
        elif isinstance(effect, GitEffect):
            self.workspace.create_worktree(effect.repo_path, effect.branch, effect.target_path)
        elif isinstance(effect, SessionEffect):
            self._execute_session(effect)
        elif isinstance(effect, PersistEffect):
            self._execute_persist(effect)
        elif isinstance(effect, LogEffect):
            logger.log(_LOG_LEVELS[effect.level], effect.message, extra={"fields": effect.fields})
        elif isinstance(effect, (NoEffect, CompositeEffect)):
            # Composites were flattened before dispatch
            pass
        else:
            assert_never(effect)

    def _execute_file(self, effect: FileEffect) -> None:
        op = effect.operation
        if op == FileOperation.MKDIR:
            self.workspace.create_directory(effect.path, effect.mode)
        elif op == FileOperation.WRITE:
            self.workspace.write_file(effect.path, effect.content or "", effect.mode)
        elif op == FileOperation.MOVE:
            if not effect.destination:
                raise WorkspaceError(f"move of {effect.path} has no destination")
            self.workspace.move_directory(effect.path, effect.destination)
        elif op in (FileOperation.READ, FileOperation.EXISTS):
            # Inspection already happened during gathering
            pass
        else:
            assert_never(op)

    def _execute_session(self, effect: SessionEffect) -> None:
        op = effect.operation
        if op == SessionOperation.SEND_KEYS:
            target = effect.target or effect.session_name
            if self.sessions is None:
                logger.info("No session driver, skipping send_keys to %s", target)
                return
            try:
                delivered = self.sessions.nudge(target, effect.keys or "")
            except (SessionDriverError, OSError) as e:
                logger.warning("send_keys to %s failed: %s", target, e)
                return
            if not delivered:
                logger.info("send_keys to %s did not resolve", target)
            return

        if self.sessions is None:
            raise SessionDriverError(f"no session driver configured for {op.value}")

        if op == SessionOperation.CREATE_SESSION:
            self.sessions.create_session(
                effect.session_name,
                effect.working_dir or ".",
                window_name=effect.window_name,
                environment=dict(effect.environment),
            )
        elif op == SessionOperation.CREATE_WINDOW:
            self.sessions.create_window(
                effect.session_name,
                effect.window_name or "",
                effect.working_dir or ".",
                command=effect.command,
            )
        else:
            assert_never(op)

    def _execute_persist(self, effect: PersistEffect) -> None:
        handler = self._persist_handlers.get((effect.entity, effect.operation))
        if handler is None:
            raise PersistDispatchError(
                f"no persistence handler for {effect.entity}.{effect.operation}"
            )
        if self.repository is None:
            raise LookupError(f"no repository configured for {effect.entity}.{effect.operation}")
        handler(dict(effect.data))

    # --- Persistence handlers ---

    def _persist_grove_path(self, data: Dict[str, str]) -> None:
        self.repository.update_grove_path(data["grove_id"], data["path"])

    def _persist_commission_status(self, data: Dict[str, str]) -> None:
        self.repository.update_commission_status(data["commission_id"], data["status"])

    def _persist_workbench_status(self, data: Dict[str, str]) -> None:
        self.repository.update_workbench_status(data["workbench_id"], data["status"])

