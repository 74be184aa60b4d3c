"""End-to-end tests for plan/apply over the in-memory workspace and session driver."""

import pytest

from fakes import FakeSessionDriver, FakeWorkspace

from orc_kernel.adapters.workspace import FilesystemWorkspace
from orc_kernel.config.settings import OrcSettings, PathSettings
from orc_kernel.models.guards import GuardDenied
from orc_kernel.models.infra import OpStatus
from orc_kernel.persistence.sqlite_store import NotFoundError, SqliteRepository
from orc_kernel.services.infra import ATTENTION, CREATE, InfraService, group_workshop_plan


class TestWorkshopPlanApply:
    def setup_method(self):
        self.repo = SqliteRepository(":memory:")
        self.ws = FakeWorkspace()
        self.sessions = FakeSessionDriver()
        self.settings = OrcSettings(paths=PathSettings(home="/h"))
        self.service = InfraService(self.repo, self.ws, self.sessions, self.settings)

        self.ws.add_dir("/h/src/api")
        repo_record = self.repo.create_repo("api", "/h/src/api")
        self.workshop = self.repo.create_workshop("Main Shop")
        self.api = self.repo.create_workbench(
            "api", self.workshop.id, "ml/api", repo_id=repo_record.id
        )
        self.docs = self.repo.create_workbench("docs", self.workshop.id, "docs")

    def test_unknown_workshop_is_not_found(self):
        with pytest.raises(NotFoundError):
            self.service.plan_workshop("WORK-404")

    def test_plan_does_not_mutate(self):
        self.service.plan_workshop(self.workshop.id)
        assert self.ws.calls == []
        assert self.sessions.calls == []

    def test_apply_then_replan_is_nothing_to_do(self):
        plan = self.service.plan_workshop(self.workshop.id)
        assert not plan.nothing_to_do

        report = self.service.apply_workshop(plan)
        assert report.succeeded
        assert report.result.failed == []

        assert "/h/wb/api/.orc/config.json" in self.ws.files
        assert self.ws.worktrees["/h/wb/api"] == "ml/api"
        assert "/h/wb/docs" in self.ws.dirs
        session = self.sessions.find_session_by_env("ORC_WORKSHOP_ID", self.workshop.id)
        assert session == "main-shop"
        assert set(self.sessions.list_windows(session)) == {"orc", "api", "docs"}

        again = self.service.plan_workshop(self.workshop.id)
        assert again.nothing_to_do
        calls_before = len(self.ws.calls)
        second = self.service.apply_workshop(again)
        assert second.nothing_to_do
        assert len(self.ws.calls) == calls_before

    def test_plan_twice_is_identical(self):
        first = self.service.plan_workshop(self.workshop.id)
        second = self.service.plan_workshop(self.workshop.id)
        assert first == second

    def test_archived_workbench_is_excluded(self):
        self.repo.update_workbench_status(self.docs.id, "archived")
        plan = self.service.plan_workshop(self.workshop.id)
        assert [op.id for op in plan.workbenches] == [self.api.id]

    def test_missing_repo_record_is_orphan(self):
        self.repo.delete_repo(self.api.repo_id)
        plan = self.service.plan_workshop(self.workshop.id)
        assert [o.id for o in plan.orphans] == [self.api.id]
        groups = group_workshop_plan(plan)
        assert any(self.api.id in item for item in groups[ATTENTION])

        report = self.service.apply_workshop(plan)
        assert report.succeeded
        assert "/h/wb/api" not in self.ws.dirs

    def test_one_failing_workbench_does_not_stop_others(self):
        self.ws.failing.add("/h/wb/api")
        report = self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        assert not report.succeeded
        assert [e.entity_id for e in report.result.errors] == [self.api.id]
        assert self.docs.id in report.result.completed
        assert "/h/wb/docs/.orc/config.json" in self.ws.files

    def test_manually_changed_window_needs_attention(self):
        self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        self.sessions.sessions["main-shop"]["windows"]["api"]["command"] = "zsh"

        plan = self.service.plan_workshop(self.workshop.id)
        assert not plan.nothing_to_do
        window = next(w for w in plan.session.windows if w.name == "api")
        assert window.action == OpStatus.UPDATE
        report = self.service.apply_workshop(plan)
        assert report.updated == 1
        assert any("window 2:api deviates" in item for item in report.attention)

    def test_pane_moved_out_of_workbench_needs_attention(self):
        self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        self.sessions.sessions["main-shop"]["windows"]["api"]["paths"][2] = "/tmp"

        plan = self.service.plan_workshop(self.workshop.id)
        assert not plan.nothing_to_do
        report = self.service.apply_workshop(plan)
        assert any("panes outside /h/wb/api: /tmp" in item for item in report.attention)

    def test_window_of_archived_workbench_is_reported_not_killed(self):
        self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        self.repo.update_workbench_status(self.docs.id, "archived")

        plan = self.service.plan_workshop(self.workshop.id)
        assert plan.orphan_windows == ["docs"]
        assert plan.nothing_to_do
        report = self.service.apply_workshop(plan)
        assert "window docs in session main-shop matches no active workbench" in report.attention
        assert "docs" in self.sessions.list_windows("main-shop")

    def test_hand_started_session_is_adopted(self):
        self.sessions.add_session("main-shop")
        self.sessions.add_window("main-shop", "orc", panes=1, command="zsh")

        report = self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        assert report.succeeded
        found = self.sessions.find_session_by_env("ORC_WORKSHOP_ID", self.workshop.id)
        assert found == "main-shop"
        assert self.service.plan_workshop(self.workshop.id).nothing_to_do

    def test_session_owned_by_another_workshop_fails_its_batch(self):
        self.sessions.add_session("main-shop", {"ORC_WORKSHOP_ID": "WORK-009"})
        report = self.service.apply_workshop(self.service.plan_workshop(self.workshop.id))
        assert not report.succeeded
        assert any("WORK-009" in e.message for e in report.result.errors)

    def test_session_driver_down_is_reported_per_batch(self):
        self.sessions.broken = True
        plan = self.service.plan_workshop(self.workshop.id)
        assert plan.session.status == OpStatus.CREATE
        report = self.service.apply_workshop(plan)
        assert not report.succeeded
        # Gatehouse directories were still created
        assert "/h/.orc/ws/WORK-001-main-shop/.orc/config.json" in self.ws.files

    def test_groups_list_creations(self):
        groups = group_workshop_plan(self.service.plan_workshop(self.workshop.id))
        assert "session main-shop" in groups[CREATE]
        assert any(item.startswith("workbench BENCH-001") for item in groups[CREATE])


class TestMaterializeAndCleanup:
    def setup_method(self):
        self.repo = SqliteRepository(":memory:")
        self.ws = FakeWorkspace()
        self.sessions = FakeSessionDriver()
        self.service = InfraService(
            self.repo, self.ws, self.sessions, OrcSettings(paths=PathSettings(home="/h"))
        )
        self.workshop = self.repo.create_workshop("shop")

    def test_materialize_without_session_skips_window(self):
        bench = self.repo.create_workbench("api", self.workshop.id, "api")
        self.service.materialize_workbench(bench.id)
        assert "/h/wb/api/.orc/config.json" in self.ws.files
        assert self.sessions.calls == []

    def test_materialize_adds_window_to_running_session(self):
        self.sessions.add_session("shop", {"ORC_WORKSHOP_ID": self.workshop.id})
        self.sessions.add_window("shop", "orc", panes=1, command="zsh")
        bench = self.repo.create_workbench("api", self.workshop.id, "api")
        self.service.materialize_workbench(bench.id)
        assert self.sessions.sessions["shop"]["windows"]["api"]["panes"] == 3

    def test_cleanup_refuses_dirty_worktree(self):
        self.ws.add_dir("/h/src/api")
        repo = self.repo.create_repo("api", "/h/src/api")
        bench = self.repo.create_workbench("api", self.workshop.id, "api", repo_id=repo.id)
        self.service.materialize_workbench(bench.id)
        self.ws.dirty["/h/wb/api"] = [" M main.py"]

        with pytest.raises(GuardDenied) as exc:
            self.service.cleanup_workbench(bench.id)
        assert "uncommitted" in exc.value.reason
        assert "/h/wb/api" in self.ws.dirs

        self.service.cleanup_workbench(bench.id, force=True)
        assert "/h/wb/api" not in self.ws.dirs


class TestCommissionPlanApply:
    def test_move_scenario_on_disk(self, tmp_path):
        repo = SqliteRepository(":memory:")
        settings = OrcSettings(paths=PathSettings(home=str(tmp_path)))
        service = InfraService(repo, FilesystemWorkspace(), None, settings)

        commission = repo.create_commission("auth")
        legacy = tmp_path / "old" / "g1"
        legacy.mkdir(parents=True)
        (legacy / "work.txt").write_text("keep me")
        grove = repo.create_grove("g1", commission.id, str(legacy))

        plan = service.plan_commission(commission.id)
        action = plan.groves[0]
        assert action.action == OpStatus.MOVE
        assert action.update_db_path

        report = service.apply_commission(plan)
        assert report.succeeded
        assert report.updated == 1

        desired = tmp_path / "src" / "missions" / commission.id / "groves" / "g1"
        assert (desired / "work.txt").read_text() == "keep me"
        assert (desired / ".orc" / "config.json").exists()
        assert not legacy.exists()
        assert repo.get_grove(grove.id).path == str(desired)

        again = service.plan_commission(commission.id)
        assert again.nothing_to_do

    def test_missing_grove_needs_attention(self, tmp_path):
        repo = SqliteRepository(":memory:")
        service = InfraService(
            repo, FilesystemWorkspace(), None, OrcSettings(paths=PathSettings(home=str(tmp_path)))
        )
        commission = repo.create_commission("auth")
        repo.create_grove("g1", commission.id, "")

        report = service.apply_commission(service.plan_commission(commission.id))
        assert report.succeeded
        assert len(report.attention) == 1
        assert (tmp_path / "src" / "missions" / commission.id / "groves").is_dir()
