"""Tests for the SQLite repository."""

import pytest

from orc_kernel.persistence.sqlite_store import NotFoundError, SqliteRepository


class TestSqliteRepository:
    def setup_method(self):
        self.repo = SqliteRepository(db_path=":memory:")

    def test_sequential_zero_padded_ids(self):
        assert self.repo.create_workshop("a").id == "WORK-001"
        assert self.repo.create_workshop("b").id == "WORK-002"
        assert self.repo.create_commission("c").id == "COMM-001"
        assert self.repo.create_repo("r", "/r").id == "REPO-001"
        assert self.repo.create_workbench("w", "WORK-001", "main").id == "BENCH-001"
        assert self.repo.create_grove("g", "COMM-001", "/g").id == "GROVE-001"
        assert self.repo.create_plan("COMM-001", "p").id == "PLAN-001"

    def test_ids_keep_counting_past_three_digits(self):
        for i in range(1000):
            self.repo.create_repo(f"r{i}", "/r")
        assert self.repo.create_repo("last", "/r").id == "REPO-1001"

    def test_ids_are_not_reused_after_delete_of_earlier_row(self):
        first = self.repo.create_workshop("a")
        self.repo.create_workshop("b")
        self.repo.delete_workshop(first.id)
        assert self.repo.create_workshop("c").id == "WORK-003"

    def test_not_found_is_a_lookup_error(self):
        with pytest.raises(NotFoundError):
            self.repo.get_workbench("BENCH-404")
        with pytest.raises(LookupError):
            self.repo.update_commission_status("COMM-404", "complete")
        with pytest.raises(NotFoundError):
            self.repo.delete_plan("PLAN-404")
        assert self.repo.find_repo("REPO-404") is None

    def test_workbench_updates(self):
        wb = self.repo.create_workbench("api", "WORK-001", "ml/api")
        self.repo.rename_workbench(wb.id, "api2")
        self.repo.update_workbench_status(wb.id, "archived")
        self.repo.set_workbench_focus(wb.id, "COMM-001")
        loaded = self.repo.get_workbench(wb.id)
        assert (loaded.name, loaded.status, loaded.focused_id) == ("api2", "archived", "COMM-001")
        assert loaded.created_at is not None

    def test_list_by_parent(self):
        self.repo.create_workbench("a", "WORK-001", "a")
        self.repo.create_workbench("b", "WORK-002", "b")
        assert [w.name for w in self.repo.list_workbenches("WORK-001")] == ["a"]
        assert len(self.repo.list_workbenches()) == 2

    def test_grove_path_and_repos(self):
        grove = self.repo.create_grove("g", "COMM-001", "/old/g", repos=["api", "web"])
        self.repo.update_grove_path(grove.id, "/new/g")
        loaded = self.repo.get_grove(grove.id)
        assert loaded.path == "/new/g"
        assert loaded.repos == ["api", "web"]

    def test_delete_commission_cascades(self):
        c = self.repo.create_commission("c")
        self.repo.create_grove("g", c.id, "/g")
        self.repo.create_plan(c.id, "p")
        self.repo.delete_commission(c.id)
        assert not self.repo.commission_exists(c.id)
        assert self.repo.list_groves(c.id) == []
        assert self.repo.list_plans(c.id) == []

    def test_plan_status_and_escalation_reason(self):
        plan = self.repo.create_plan("COMM-001", "p", "content")
        self.repo.update_plan_status(plan.id, "escalated", escalation_reason="unclear scope")
        loaded = self.repo.get_plan(plan.id)
        assert loaded.status == "escalated"
        assert loaded.escalation_reason == "unclear scope"

    def test_active_task_count(self):
        t1 = self.repo.create_task("one", "BENCH-001")
        self.repo.create_task("two", "BENCH-001")
        self.repo.create_task("other", "BENCH-002")
        self.repo.update_task_status(t1.id, "complete")
        assert self.repo.count_active_tasks("BENCH-001") == 1

    def test_file_backed_store_persists(self, tmp_path):
        path = str(tmp_path / "orc.db")
        repo = SqliteRepository(path)
        repo.create_workshop("shop")
        repo.close()
        assert SqliteRepository(path).get_workshop("WORK-001").name == "shop"

    def test_ids_are_not_reused_after_delete_of_latest_row(self):
        self.repo.create_commission("a")
        latest = self.repo.create_commission("b")
        self.repo.delete_commission(latest.id)
        assert self.repo.create_commission("c").id == "COMM-003"

    def test_counter_survives_reopen(self, tmp_path):
        path = str(tmp_path / "orc.db")
        repo = SqliteRepository(path)
        repo.create_workbench("a", "WORK-001", "a")
        latest = repo.create_workbench("b", "WORK-001", "b")
        repo.delete_workbench(latest.id)
        repo.close()
        assert SqliteRepository(path).create_workbench("c", "WORK-001", "c").id == "BENCH-003"
