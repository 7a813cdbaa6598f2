import sqlite3

from accessgate.actions import Action, ActionExecutor, ActionHandler, ActionType, SqliteCompletionLedger
from accessgate.actions.ledger import InMemoryCompletionLedger, completion_key


class CountingHandler(ActionHandler):
    def __init__(self):
        self.count = 0

    def supported_types(self):
        return {ActionType.GRANT_ROLE}

    def execute(self, action, context):
        self.count += 1


def test_completion_key_is_scoped_to_subject_rule_and_action():
    assert completion_key("u1", "r1", "a") == completion_key("u1", "r1", "a")
    assert completion_key("u1", "r1", "a") != completion_key("u2", "r1", "a")
    assert completion_key("u1", "r1", "a") != completion_key("u1", "r2", "a")


def test_in_memory_ledger_marks_once():
    ledger = InMemoryCompletionLedger()
    ledger.mark_completed("u1", "r1", "a")
    ledger.mark_completed("u1", "r1", "a")
    assert ledger.is_completed("u1", "r1", "a")
    assert not ledger.is_completed("u1", "r1", "b")
    assert len(ledger) == 1


def test_sqlite_ledger_persists_across_instances(tmp_path):
    db_path = str(tmp_path / "nested" / "ledger.db")
    SqliteCompletionLedger(db_path).mark_completed("u1", "r1", "a", detail="granted")

    reopened = SqliteCompletionLedger(db_path)
    assert reopened.is_completed("u1", "r1", "a")
    reopened.mark_completed("u1", "r1", "a")

    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT subject_id, rule_id, action_id, detail FROM action_completions").fetchall()
    finally:
        conn.close()
    assert rows == [("u1", "r1", "a", "granted")]


def test_executor_replays_from_sqlite_ledger(tmp_path):
    db_path = str(tmp_path / "ledger.db")
    handler = CountingHandler()
    action = Action(id="grant-dev", type=ActionType.GRANT_ROLE, target="developer")

    ActionExecutor([handler], ledger=SqliteCompletionLedger(db_path), max_workers=1).execute(
        [action], subject_id="u1", rule_id="eng-joiner"
    )
    report = ActionExecutor([handler], ledger=SqliteCompletionLedger(db_path), max_workers=1).execute(
        [action], subject_id="u1", rule_id="eng-joiner"
    )
    assert handler.count == 1
    assert report.outcomes[0].replayed is True
