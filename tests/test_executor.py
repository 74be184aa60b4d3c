"""Tests for the Effect Executor."""

import logging
import os
import stat

import pytest

from fakes import FakeSessionDriver, FakeWorkspace

from orc_kernel.adapters.workspace import FilesystemWorkspace
from orc_kernel.execution.executor import EffectExecutor, ExecutionError, PersistDispatchError
from orc_kernel.models.effects import (
    CompositeEffect,
    EffectBatch,
    FileEffect,
    FileOperation,
    LogEffect,
    LogLevel,
    NoEffect,
    PersistEffect,
    SessionEffect,
    SessionOperation,
)
from orc_kernel.persistence.sqlite_store import SqliteRepository


def _mkdir(path, mode=0o755) -> FileEffect:
    return FileEffect(operation=FileOperation.MKDIR, path=str(path), mode=mode)


def _write(path, content="x", mode=0o644) -> FileEffect:
    return FileEffect(operation=FileOperation.WRITE, path=str(path), content=content, mode=mode)


class TestExecuteOnDisk:
    def setup_method(self):
        self.executor = EffectExecutor(FilesystemWorkspace())

    def test_empty_and_noop(self):
        self.executor.execute([])
        self.executor.execute([NoEffect()])
        self.executor.execute([CompositeEffect()])

    def test_read_and_exists_are_noops(self, tmp_path):
        target = tmp_path / "never"
        self.executor.execute([
            FileEffect(operation=FileOperation.READ, path=str(target)),
            FileEffect(operation=FileOperation.EXISTS, path=str(target)),
        ])
        assert not target.exists()

    def test_mkdir_is_idempotent_and_applies_mode(self, tmp_path):
        target = tmp_path / "a" / "b"
        self.executor.execute([_mkdir(target, 0o750)])
        self.executor.execute([_mkdir(target, 0o750)])
        assert target.is_dir()
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o750

    def test_write_creates_and_overwrites(self, tmp_path):
        target = tmp_path / "f.json"
        self.executor.execute([_write(target, "one")])
        self.executor.execute([_write(target, "two", 0o600)])
        assert target.read_text() == "two"
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_write_without_mode_is_not_executable(self, tmp_path):
        target = tmp_path / "notes.txt"
        self.executor.execute([
            FileEffect(operation=FileOperation.WRITE, path=str(target), content="x")
        ])
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o644

    def test_order_is_preserved(self, tmp_path):
        d = tmp_path / "d"
        self.executor.execute([_mkdir(d), _write(d / "f")])
        assert (d / "f").exists()

    def test_swapped_order_fails_observably(self, tmp_path):
        d = tmp_path / "d"
        with pytest.raises(ExecutionError) as exc:
            self.executor.execute([_write(d / "f"), _mkdir(d)])
        assert exc.value.effect_kind == "file"
        assert str(exc.value).startswith("failed to execute file effect:")
        # Execution stopped at the first failure
        assert not d.exists()

    def test_composite_runs_in_order(self, tmp_path):
        d = tmp_path / "d"
        self.executor.execute([CompositeEffect(effects=[
            _mkdir(d), CompositeEffect(effects=[_mkdir(d / "e"), _write(d / "e" / "f")]),
        ])])
        assert (d / "e" / "f").exists()

    def test_move_renames_directory(self, tmp_path):
        (tmp_path / "old" / "g1").mkdir(parents=True)
        (tmp_path / "old" / "g1" / "keep.txt").write_text("data")
        self.executor.execute([FileEffect(
            operation=FileOperation.MOVE,
            path=str(tmp_path / "old" / "g1"),
            destination=str(tmp_path / "ws" / "g1"),
        )])
        assert (tmp_path / "ws" / "g1" / "keep.txt").read_text() == "data"
        assert not (tmp_path / "old" / "g1").exists()

    def test_move_refuses_to_overwrite(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        with pytest.raises(ExecutionError):
            self.executor.execute([FileEffect(
                operation=FileOperation.MOVE, path=str(tmp_path / "a"),
                destination=str(tmp_path / "b"),
            )])

    def test_log_effect(self, caplog):
        with caplog.at_level(logging.WARNING, logger="orc_kernel.execution.executor"):
            self.executor.execute([LogEffect(level=LogLevel.WARNING, message="heads up")])
        assert "heads up" in caplog.text


class TestPersist:
    def setup_method(self):
        self.repo = SqliteRepository(":memory:")
        self.ws = FakeWorkspace()
        self.executor = EffectExecutor(self.ws, repository=self.repo)

    def test_move_then_persist_new_path(self):
        commission = self.repo.create_commission("c")
        grove = self.repo.create_grove("g1", commission.id, "/old/g1")
        self.ws.add_dir("/old/g1")

        self.executor.execute([
            FileEffect(operation=FileOperation.MOVE, path="/old/g1", destination="/ws/g1"),
            PersistEffect(entity="grove", operation="update_path",
                          data={"grove_id": grove.id, "path": "/ws/g1"}),
        ])
        assert "/ws/g1" in self.ws.dirs
        assert "/old/g1" not in self.ws.dirs
        assert self.repo.get_grove(grove.id).path == "/ws/g1"
        assert [c[0] for c in self.ws.calls] == ["move"]

    def test_status_updates(self):
        commission = self.repo.create_commission("c")
        self.executor.execute([PersistEffect(
            entity="commission", operation="update_status",
            data={"commission_id": commission.id, "status": "paused"},
        )])
        assert self.repo.get_commission(commission.id).status == "paused"

    def test_unknown_pairing_fails_loudly(self):
        with pytest.raises(PersistDispatchError):
            self.executor.execute([PersistEffect(entity="grove", operation="explode", data={})])

    def test_unknown_pairing_is_not_collected_in_batch_mode(self):
        with pytest.raises(PersistDispatchError):
            self.executor.execute_batch([EffectBatch(
                entity_id="GROVE-001", label="g",
                effects=[PersistEffect(entity="task", operation="update_path", data={})],
            )])

    def test_missing_record_is_a_hard_failure(self):
        with pytest.raises(ExecutionError) as exc:
            self.executor.execute([PersistEffect(
                entity="grove", operation="update_path",
                data={"grove_id": "GROVE-404", "path": "/x"},
            )])
        assert exc.value.effect_kind == "persist"


class TestSessions:
    def test_send_keys_is_never_fatal(self):
        executor = EffectExecutor(FakeWorkspace(), FakeSessionDriver())
        executor.execute([SessionEffect(
            operation=SessionOperation.SEND_KEYS, session_name="ghost",
            target="ghost:api.2", keys="hello",
        )])

    def test_send_keys_without_driver_is_skipped(self):
        EffectExecutor(FakeWorkspace()).execute([SessionEffect(
            operation=SessionOperation.SEND_KEYS, session_name="s", keys="hi",
        )])

    def test_session_creation_without_driver_is_hard_failure(self):
        with pytest.raises(ExecutionError) as exc:
            EffectExecutor(FakeWorkspace()).execute([SessionEffect(
                operation=SessionOperation.CREATE_SESSION, session_name="s", working_dir="/g",
            )])
        assert exc.value.effect_kind == "session"

    def test_create_session_is_idempotent(self):
        driver = FakeSessionDriver()
        executor = EffectExecutor(FakeWorkspace(), driver)
        effect = SessionEffect(
            operation=SessionOperation.CREATE_SESSION, session_name="shop",
            window_name="orc", working_dir="/g", environment={"ORC_WORKSHOP_ID": "WORK-001"},
        )
        executor.execute([effect])
        executor.execute([effect])
        assert list(driver.sessions) == ["shop"]
        assert driver.find_session_by_env("ORC_WORKSHOP_ID", "WORK-001") == "shop"


class TestBatchIsolation:
    def test_second_entity_fails_others_complete(self):
        ws = FakeWorkspace()
        ws.failing.add("/b")
        executor = EffectExecutor(ws)

        result = executor.execute_batch([
            EffectBatch(entity_id="BENCH-001", label="a", effects=[_mkdir("/a")]),
            EffectBatch(entity_id="BENCH-002", label="b", effects=[_mkdir("/b")]),
            EffectBatch(entity_id="BENCH-003", label="c", effects=[_mkdir("/c")]),
        ])

        assert result.completed == ["BENCH-001", "BENCH-003"]
        assert result.failed == ["BENCH-002"]
        assert len(result.errors) == 1
        assert result.errors[0].entity_id == "BENCH-002"
        assert result.errors[0].effect_kind == "file"
        assert not result.ok
        assert "/a" in ws.dirs and "/c" in ws.dirs

    def test_empty_batch_list(self):
        result = EffectExecutor(FakeWorkspace()).execute_batch([])
        assert result.ok
        assert result.completed == []
