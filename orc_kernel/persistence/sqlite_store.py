"""
SQLite Repository — records for workshops, workbenches, repos, commissions,
groves, workflow plans and tasks.

Behavioral Contract:
- IDs are sequential per entity kind and zero-padded: WORK-001, BENCH-001, ...
- Each row keeps the full record as JSON plus the columns used for lookups
- Missing IDs raise NotFoundError (a LookupError), never a sqlite3 error
- Every mutation commits immediately
"""

import sqlite3
from datetime import datetime, timezone
from typing import Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from orc_kernel.models.records import (
    CommissionRecord,
    GroveRecord,
    RepoRecord,
    TaskRecord,
    WorkbenchRecord,
    WorkflowPlanRecord,
    WorkshopRecord,
    is_terminal,
)

R = TypeVar("R", bound=BaseModel)


class NotFoundError(LookupError):
    """No record with the requested ID."""


# table -> (ID prefix, parent column)
_TABLES: Dict[str, tuple] = {
    "workshops": ("WORK", None),
    "workbenches": ("BENCH", "workshop_id"),
    "repos": ("REPO", None),
    "commissions": ("COMM", None),
    "groves": ("GROVE", "commission_id"),
    "workflow_plans": ("PLAN", "commission_id"),
    "tasks": ("TASK", "workbench_id"),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SqliteRepository:
    """
    All repositories over one SQLite connection.
    Use ":memory:" for tests.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        for table, (_, parent) in _TABLES.items():
            parent_col = f"{parent} TEXT," if parent else ""
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    {parent_col}
                    status TEXT NOT NULL,
                    record_json TEXT NOT NULL
                )
            """)
            if parent:
                self._conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_{parent} ON {table}({parent})"
                )
        # Last issued sequence per table, so deleted IDs are never handed out again
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS id_counters (
                table_name TEXT PRIMARY KEY,
                last_seq INTEGER NOT NULL
            )
        """)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # --- Generic row helpers ---

    def _next_id(self, table: str) -> tuple:
        prefix, _ = _TABLES[table]
        self._conn.execute(
            "INSERT OR IGNORE INTO id_counters (table_name, last_seq) VALUES (?, 0)", (table,)
        )
        # Rows written before the counter existed still count
        self._conn.execute(
            f"""
            UPDATE id_counters
            SET last_seq = MAX(last_seq, (SELECT COALESCE(MAX(seq), 0) FROM {table})) + 1
            WHERE table_name = ?
            """,
            (table,),
        )
        row = self._conn.execute(
            "SELECT last_seq FROM id_counters WHERE table_name = ?", (table,)
        ).fetchone()
        seq = row["last_seq"]
        return f"{prefix}-{seq:03d}", seq

    def _insert(self, table: str, record: BaseModel, seq: int) -> None:
        _, parent = _TABLES[table]
        cols = ["id", "seq", "status", "record_json"]
        values = [record.id, seq, getattr(record, "status", ""), record.model_dump_json()]
        if parent:
            cols.append(parent)
            values.append(getattr(record, parent))
        placeholders = ", ".join("?" for _ in cols)
        self._conn.execute(
            f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})", values
        )
        self._conn.commit()

    def _load(self, table: str, model: Type[R], record_id: str) -> R:
        row = self._conn.execute(
            f"SELECT record_json FROM {table} WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"{_TABLES[table][0].lower()} {record_id} not found")
        return model.model_validate_json(row["record_json"])

    def _list(self, table: str, model: Type[R], parent_id: Optional[str] = None) -> List[R]:
        _, parent = _TABLES[table]
        if parent_id is not None and parent:
            rows = self._conn.execute(
                f"SELECT record_json FROM {table} WHERE {parent} = ? ORDER BY seq",
                (parent_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT record_json FROM {table} ORDER BY seq"
            ).fetchall()
        return [model.model_validate_json(r["record_json"]) for r in rows]

    def _update(self, table: str, model: Type[R], record_id: str, **changes) -> R:
        record = self._load(table, model, record_id).model_copy(update=changes)
        self._conn.execute(
            f"UPDATE {table} SET status = ?, record_json = ? WHERE id = ?",
            (getattr(record, "status", ""), record.model_dump_json(), record_id),
        )
        self._conn.commit()
        return record

    def _delete(self, table: str, record_id: str) -> None:
        cur = self._conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        self._conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"{_TABLES[table][0].lower()} {record_id} not found")

    def _exists(self, table: str, record_id: str) -> bool:
        row = self._conn.execute(
            f"SELECT 1 FROM {table} WHERE id = ?", (record_id,)
        ).fetchone()
        return row is not None

    # --- Workshops ---

    def create_workshop(self, name: str) -> WorkshopRecord:
        record_id, seq = self._next_id("workshops")
        record = WorkshopRecord(id=record_id, name=name, created_at=_now())
        self._insert("workshops", record, seq)
        return record

    def get_workshop(self, workshop_id: str) -> WorkshopRecord:
        return self._load("workshops", WorkshopRecord, workshop_id)

    def workshop_exists(self, workshop_id: str) -> bool:
        return self._exists("workshops", workshop_id)

    def list_workshops(self) -> List[WorkshopRecord]:
        return self._list("workshops", WorkshopRecord)

    def update_workshop_status(self, workshop_id: str, status: str) -> None:
        self._update("workshops", WorkshopRecord, workshop_id, status=status)

    def delete_workshop(self, workshop_id: str) -> None:
        self._delete("workshops", workshop_id)

    # --- Workbenches ---

    def create_workbench(
        self, name: str, workshop_id: str, home_branch: str, repo_id: Optional[str] = None
    ) -> WorkbenchRecord:
        record_id, seq = self._next_id("workbenches")
        record = WorkbenchRecord(
            id=record_id,
            name=name,
            workshop_id=workshop_id,
            repo_id=repo_id,
            home_branch=home_branch,
            created_at=_now(),
        )
        self._insert("workbenches", record, seq)
        return record

    def get_workbench(self, workbench_id: str) -> WorkbenchRecord:
        return self._load("workbenches", WorkbenchRecord, workbench_id)

    def workbench_exists(self, workbench_id: str) -> bool:
        return self._exists("workbenches", workbench_id)

    def list_workbenches(self, workshop_id: Optional[str] = None) -> List[WorkbenchRecord]:
        return self._list("workbenches", WorkbenchRecord, workshop_id)

    def rename_workbench(self, workbench_id: str, name: str) -> None:
        self._update("workbenches", WorkbenchRecord, workbench_id, name=name)

    def update_workbench_status(self, workbench_id: str, status: str) -> None:
        self._update("workbenches", WorkbenchRecord, workbench_id, status=status)

    def set_workbench_focus(self, workbench_id: str, focused_id: Optional[str]) -> None:
        self._update("workbenches", WorkbenchRecord, workbench_id, focused_id=focused_id)

    def delete_workbench(self, workbench_id: str) -> None:
        self._delete("workbenches", workbench_id)

    # --- Repos ---

    def create_repo(self, name: str, local_path: str) -> RepoRecord:
        record_id, seq = self._next_id("repos")
        record = RepoRecord(id=record_id, name=name, local_path=local_path)
        self._insert("repos", record, seq)
        return record

    def find_repo(self, repo_id: str) -> Optional[RepoRecord]:
        try:
            return self._load("repos", RepoRecord, repo_id)
        except NotFoundError:
            return None

    def delete_repo(self, repo_id: str) -> None:
        self._delete("repos", repo_id)

    # --- Commissions ---

    def create_commission(self, title: str) -> CommissionRecord:
        record_id, seq = self._next_id("commissions")
        record = CommissionRecord(id=record_id, title=title, created_at=_now())
        self._insert("commissions", record, seq)
        return record

    def get_commission(self, commission_id: str) -> CommissionRecord:
        return self._load("commissions", CommissionRecord, commission_id)

    def commission_exists(self, commission_id: str) -> bool:
        return self._exists("commissions", commission_id)

    def update_commission_status(self, commission_id: str, status: str) -> None:
        self._update("commissions", CommissionRecord, commission_id, status=status)

    def set_commission_pinned(self, commission_id: str, pinned: bool) -> None:
        self._update("commissions", CommissionRecord, commission_id, pinned=pinned)

    def delete_commission(self, commission_id: str) -> None:
        """Delete a commission together with its groves and plans."""
        self._conn.execute("DELETE FROM groves WHERE commission_id = ?", (commission_id,))
        self._conn.execute(
            "DELETE FROM workflow_plans WHERE commission_id = ?", (commission_id,)
        )
        self._delete("commissions", commission_id)

    # --- Groves ---

    def create_grove(
        self, name: str, commission_id: str, path: str, repos: Optional[List[str]] = None
    ) -> GroveRecord:
        record_id, seq = self._next_id("groves")
        record = GroveRecord(
            id=record_id,
            name=name,
            commission_id=commission_id,
            path=path,
            repos=repos or [],
            created_at=_now(),
        )
        self._insert("groves", record, seq)
        return record

    def get_grove(self, grove_id: str) -> GroveRecord:
        return self._load("groves", GroveRecord, grove_id)

    def list_groves(self, commission_id: str) -> List[GroveRecord]:
        return self._list("groves", GroveRecord, commission_id)

    def update_grove_path(self, grove_id: str, path: str) -> None:
        self._update("groves", GroveRecord, grove_id, path=path)

    # --- Workflow plans ---

    def create_plan(self, commission_id: str, title: str, content: str = "") -> WorkflowPlanRecord:
        record_id, seq = self._next_id("workflow_plans")
        record = WorkflowPlanRecord(
            id=record_id,
            commission_id=commission_id,
            title=title,
            content=content,
            created_at=_now(),
        )
        self._insert("workflow_plans", record, seq)
        return record

    def get_plan(self, plan_id: str) -> WorkflowPlanRecord:
        return self._load("workflow_plans", WorkflowPlanRecord, plan_id)

    def list_plans(self, commission_id: str) -> List[WorkflowPlanRecord]:
        return self._list("workflow_plans", WorkflowPlanRecord, commission_id)

    def update_plan_status(
        self, plan_id: str, status: str, escalation_reason: Optional[str] = None
    ) -> None:
        changes = {"status": status}
        if escalation_reason is not None:
            changes["escalation_reason"] = escalation_reason
        self._update("workflow_plans", WorkflowPlanRecord, plan_id, **changes)

    def set_plan_pinned(self, plan_id: str, pinned: bool) -> None:
        self._update("workflow_plans", WorkflowPlanRecord, plan_id, pinned=pinned)

    def delete_plan(self, plan_id: str) -> None:
        self._delete("workflow_plans", plan_id)

    # --- Tasks ---

    def create_task(self, title: str, workbench_id: Optional[str] = None) -> TaskRecord:
        record_id, seq = self._next_id("tasks")
        record = TaskRecord(
            id=record_id, title=title, workbench_id=workbench_id, created_at=_now()
        )
        self._insert("tasks", record, seq)
        return record

    def update_task_status(self, task_id: str, status: str) -> None:
        self._update("tasks", TaskRecord, task_id, status=status)

    def count_active_tasks(self, workbench_id: str) -> int:
        return sum(
            1
            for t in self._list("tasks", TaskRecord, workbench_id)
            if not is_terminal(t.status)
        )
