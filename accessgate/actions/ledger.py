from __future__ import annotations

import hashlib
import os
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional, Tuple

from accessgate.config import LEDGER_PATH


def completion_key(subject_id: str, rule_id: str, action_id: str) -> str:
    # Idempotency Key: subject + rule + action
    raw_key = f"{subject_id}:{rule_id}:{action_id}"
    return hashlib.sha256(raw_key.encode()).hexdigest()


class CompletionLedger(ABC):
    """
    Remembers which (subject, rule, action) tuples completed so a re-invoked
    execution never applies the same action twice.
    """

    @abstractmethod
    def is_completed(self, subject_id: str, rule_id: str, action_id: str) -> bool:
        pass

    @abstractmethod
    def mark_completed(self, subject_id: str, rule_id: str, action_id: str, detail: str = "") -> None:
        pass


class InMemoryCompletionLedger(CompletionLedger):
    def __init__(self):
        self._entries: Dict[str, Tuple[str, str, str, str]] = {}
        self._lock = Lock()

    def is_completed(self, subject_id: str, rule_id: str, action_id: str) -> bool:
        with self._lock:
            return completion_key(subject_id, rule_id, action_id) in self._entries

    def mark_completed(self, subject_id: str, rule_id: str, action_id: str, detail: str = "") -> None:
        with self._lock:
            self._entries.setdefault(
                completion_key(subject_id, rule_id, action_id),
                (subject_id, rule_id, action_id, detail),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqliteCompletionLedger(CompletionLedger):
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or LEDGER_PATH
        parent = os.path.dirname(self.db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS action_completions (
                    idempotency_key TEXT PRIMARY KEY,
                    subject_id TEXT NOT NULL,
                    rule_id TEXT NOT NULL,
                    action_id TEXT NOT NULL,
                    detail TEXT,
                    completed_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def is_completed(self, subject_id: str, rule_id: str, action_id: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT 1 FROM action_completions WHERE idempotency_key = ?",
                (completion_key(subject_id, rule_id, action_id),),
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def mark_completed(self, subject_id: str, rule_id: str, action_id: str, detail: str = "") -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO action_completions
                    (idempotency_key, subject_id, rule_id, action_id, detail, completed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    completion_key(subject_id, rule_id, action_id),
                    subject_id,
                    rule_id,
                    action_id,
                    detail,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
