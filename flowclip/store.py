"""SQLite-backed persistence for clipboard items, task records and sessions."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from .errors import NotFoundError
from .models import (
    AnalysisTask,
    ClipboardItem,
    ComprehensiveAnalysis,
    Session,
    SessionItem,
    TaskStatus,
    TaskType,
)
from .utils import utc_now

_TASK_FIELDS = frozenset({"status", "result", "error"})


class TaskStore(Protocol):
    """Async persistence contract consumed by the orchestrator and consolidator."""

    async def save_clipboard_item(self, item: ClipboardItem) -> None: ...

    async def get_clipboard_item(self, item_id: str) -> Optional[ClipboardItem]: ...

    async def save_task(self, task: AnalysisTask) -> None: ...

    async def update_task(self, task_id: str, **patch: Any) -> bool: ...

    async def get_task(self, task_id: str) -> Optional[AnalysisTask]: ...

    async def tasks_for_item(self, item_id: str) -> List[AnalysisTask]: ...

    async def add_tags(self, item_id: str, tags: Iterable[str]) -> bool: ...

    async def merge_workflow_results(
        self, item_id: str, workflow_name: str, result: Mapping[str, Any]
    ) -> ComprehensiveAnalysis: ...

    async def save_session(self, session: Session) -> None: ...

    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def add_session_item(self, session_id: str, item_id: str) -> SessionItem: ...

    async def get_session_items(self, session_id: str) -> List[ClipboardItem]: ...


class SQLiteStore:
    """Persist FlowClip records in a single SQLite database.

    Statements are short and run on the event loop thread; every method is a
    coroutine so alternative stores can perform real I/O.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.executescript(
                """
                CREATE TABLE IF NOT EXISTS clipboard_items (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    content_type TEXT NOT NULL DEFAULT 'text',
                    timestamp TEXT NOT NULL,
                    source_app TEXT,
                    window_title TEXT,
                    surrounding_text TEXT,
                    screenshot_path TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    analysis_data TEXT
                );
                CREATE TABLE IF NOT EXISTS analysis_tasks (
                    id TEXT PRIMARY KEY,
                    clipboard_item_id TEXT NOT NULL,
                    task_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    result TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    FOREIGN KEY (clipboard_item_id) REFERENCES clipboard_items(id)
                );
                CREATE INDEX IF NOT EXISTS idx_tasks_item ON analysis_tasks(clipboard_item_id);
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    session_type TEXT NOT NULL,
                    session_label TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_activity TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active'
                );
                CREATE TABLE IF NOT EXISTS session_items (
                    session_id TEXT NOT NULL,
                    clipboard_item_id TEXT NOT NULL,
                    sequence_order INTEGER NOT NULL,
                    added_at TEXT NOT NULL,
                    PRIMARY KEY (session_id, clipboard_item_id)
                );
                """
            )
            self.conn.commit()

    # Clipboard items

    async def save_clipboard_item(self, item: ClipboardItem) -> None:
        payload = (
            item.id,
            item.content,
            item.content_type,
            item.timestamp.isoformat(),
            item.source_app,
            item.window_title,
            item.surrounding_text,
            str(item.screenshot_path) if item.screenshot_path else None,
            json.dumps(list(item.tags), ensure_ascii=False),
            json.dumps(item.analysis.to_dict(), ensure_ascii=False) if item.analysis else None,
        )
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO clipboard_items (id, content, content_type, timestamp, source_app, window_title,
                    surrounding_text, screenshot_path, tags, analysis_data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    content_type=excluded.content_type,
                    tags=excluded.tags,
                    analysis_data=COALESCE(excluded.analysis_data, clipboard_items.analysis_data)
                """,
                payload,
            )
            self.conn.commit()

    async def get_clipboard_item(self, item_id: str) -> Optional[ClipboardItem]:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM clipboard_items WHERE id = ?", (item_id,))
            row = cur.fetchone()
        if not row:
            return None
        return self._row_to_item(row)

    async def recent_clipboard_items(self, *, limit: int = 20) -> List[ClipboardItem]:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM clipboard_items ORDER BY timestamp DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def add_tags(self, item_id: str, tags: Iterable[str]) -> bool:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT tags FROM clipboard_items WHERE id = ?", (item_id,))
            row = cur.fetchone()
            if not row:
                return False
            merged = list(dict.fromkeys([*json.loads(row["tags"] or "[]"), *tags]))
            cur.execute("UPDATE clipboard_items SET tags = ? WHERE id = ?", (json.dumps(merged), item_id))
            self.conn.commit()
        return True

    async def merge_workflow_results(
        self, item_id: str, workflow_name: str, result: Mapping[str, Any]
    ) -> ComprehensiveAnalysis:
        """Merge ``result`` into the item's stored analysis in one transaction."""

        with self.conn, closing(self.conn.cursor()) as cur:
            cur.execute("SELECT analysis_data FROM clipboard_items WHERE id = ?", (item_id,))
            row = cur.fetchone()
            if not row:
                raise NotFoundError(f"Clipboard item {item_id} not found")
            current = (
                ComprehensiveAnalysis.from_dict(json.loads(row["analysis_data"]))
                if row["analysis_data"]
                else ComprehensiveAnalysis()
            )
            merged = current.merged(workflow_name, result)
            cur.execute(
                "UPDATE clipboard_items SET analysis_data = ?, content_type = ? WHERE id = ?",
                (json.dumps(merged.to_dict(), ensure_ascii=False, default=str), merged.content_type, item_id),
            )
        return merged

    # Tasks

    async def save_task(self, task: AnalysisTask) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO analysis_tasks (id, clipboard_item_id, task_type, status, result, error, created_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.clipboard_item_id,
                    task.task_type.value,
                    task.status.value,
                    task.result,
                    task.error,
                    task.created_at.isoformat(),
                    task.completed_at.isoformat() if task.completed_at else None,
                ),
            )
            self.conn.commit()

    async def update_task(self, task_id: str, **patch: Any) -> bool:
        unknown = set(patch) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"cannot update task fields {sorted(unknown)}")
        if "status" in patch:
            patch["status"] = TaskStatus(patch["status"]).value
            if patch["status"] != TaskStatus.PENDING.value:
                patch["completed_at"] = utc_now().isoformat()
        if not patch:
            return False
        assignments = ", ".join(f"{column} = ?" for column in patch)
        with closing(self.conn.cursor()) as cur:
            cur.execute(f"UPDATE analysis_tasks SET {assignments} WHERE id = ?", (*patch.values(), task_id))
            updated = cur.rowcount > 0
            self.conn.commit()
        return updated

    async def get_task(self, task_id: str) -> Optional[AnalysisTask]:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM analysis_tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
        return self._row_to_task(row) if row else None

    async def tasks_for_item(self, item_id: str) -> List[AnalysisTask]:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "SELECT * FROM analysis_tasks WHERE clipboard_item_id = ? ORDER BY created_at, rowid",
                (item_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def count_tasks(self) -> int:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT COUNT(*) FROM analysis_tasks")
            (count,) = cur.fetchone()
        return int(count)

    # Sessions

    async def save_session(self, session: Session) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO sessions (id, session_type, session_label, created_at, last_activity, status)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    session_label=excluded.session_label,
                    last_activity=excluded.last_activity,
                    status=excluded.status
                """,
                (
                    session.id,
                    session.session_type,
                    session.session_label,
                    session.created_at.isoformat(),
                    session.last_activity.isoformat(),
                    session.status,
                ),
            )
            self.conn.commit()

    async def get_session(self, session_id: str) -> Optional[Session]:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
            row = cur.fetchone()
        if not row:
            return None
        return Session(
            id=row["id"],
            session_type=row["session_type"],
            session_label=row["session_label"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_activity=datetime.fromisoformat(row["last_activity"]),
            status=row["status"],
        )

    async def add_session_item(self, session_id: str, item_id: str) -> SessionItem:
        """Append an item to a session; adding it again returns the existing membership."""

        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
            if not cur.fetchone():
                raise NotFoundError(f"Session {session_id} not found")
            cur.execute("SELECT 1 FROM clipboard_items WHERE id = ?", (item_id,))
            if not cur.fetchone():
                raise NotFoundError(f"Clipboard item {item_id} not found")
            cur.execute(
                "SELECT sequence_order, added_at FROM session_items WHERE session_id = ? AND clipboard_item_id = ?",
                (session_id, item_id),
            )
            row = cur.fetchone()
            if row:
                return SessionItem(
                    session_id=session_id,
                    clipboard_item_id=item_id,
                    sequence_order=row["sequence_order"],
                    added_at=datetime.fromisoformat(row["added_at"]),
                )
            cur.execute(
                "SELECT COALESCE(MAX(sequence_order), 0) FROM session_items WHERE session_id = ?",
                (session_id,),
            )
            (last,) = cur.fetchone()
            member = SessionItem(session_id=session_id, clipboard_item_id=item_id, sequence_order=last + 1)
            cur.execute(
                """
                INSERT INTO session_items (session_id, clipboard_item_id, sequence_order, added_at)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, item_id, member.sequence_order, member.added_at.isoformat()),
            )
            cur.execute(
                "UPDATE sessions SET last_activity = ? WHERE id = ?",
                (member.added_at.isoformat(), session_id),
            )
            self.conn.commit()
        return member

    async def get_session_items(self, session_id: str) -> List[ClipboardItem]:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                SELECT c.* FROM clipboard_items c
                JOIN session_items s ON s.clipboard_item_id = c.id
                WHERE s.session_id = ?
                ORDER BY s.sequence_order
                """,
                (session_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_item(row) for row in rows]

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ClipboardItem:
        analysis = json.loads(row["analysis_data"]) if row["analysis_data"] else None
        return ClipboardItem(
            id=row["id"],
            content=row["content"],
            content_type=row["content_type"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            source_app=row["source_app"] or "unknown",
            window_title=row["window_title"] or "",
            surrounding_text=row["surrounding_text"] or "",
            screenshot_path=Path(row["screenshot_path"]) if row["screenshot_path"] else None,
            tags=json.loads(row["tags"] or "[]"),
            analysis=ComprehensiveAnalysis.from_dict(analysis) if analysis else None,
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> AnalysisTask:
        return AnalysisTask(
            id=row["id"],
            clipboard_item_id=row["clipboard_item_id"],
            task_type=TaskType(row["task_type"]),
            status=TaskStatus(row["status"]),
            result=row["result"],
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        )

    def close(self) -> None:
        self.conn.close()
