from datetime import datetime, timezone

import pytest

from core.errors import ValidationError
from core.models import Choice, EvClass, TrialResult
from persistence.gateway import ATTENTION_CHECKS, BONUS_PAYMENTS, RESULTS, ResultsGateway
from persistence.store import InMemoryDocumentStore
from schemas.rows import RowLog, TrialRow


class TickClock:
    def __init__(self):
        self.second = 0

    def __call__(self):
        self.second += 1
        return datetime(2025, 1, 1, 12, 0, self.second % 60, tzinfo=timezone.utc)


def _rows_text(participant_id, count):
    log = RowLog()
    for n in range(1, count + 1):
        log.append(
            TrialRow.from_result(
                TrialResult(
                    participant_id=participant_id,
                    trial_number=n,
                    choice=Choice.risk,
                    risk_probability=75,
                    risk_reward=400,
                    safe_reward=240,
                    size_condition="risk-large",
                    risk_position="left",
                    safe_position="right",
                    ev=EvClass.risky,
                    trial_id=100 + n,
                )
            )
        )
    return log.to_text()


def _gateway():
    store = InMemoryDocumentStore()
    return ResultsGateway(store, clock=TickClock()), store


def test_save_rows_stores_one_document_per_row():
    gateway, store = _gateway()
    assert gateway.save_rows(_rows_text("P01", 3)) == 3
    docs = store.find(RESULTS)
    assert len(docs) == 3
    assert docs[0]["trial_number"] == 1
    assert docs[0]["confidence"] is None
    assert docs[0]["is_bonus_trial"] is False
    assert docs[0]["timestamp"].startswith("2025-01-01T12:00")


def test_save_rows_rejects_empty_and_malformed():
    gateway, _ = _gateway()
    with pytest.raises(ValidationError):
        gateway.save_rows("")
    with pytest.raises(ValidationError):
        gateway.save_rows("P01,1,only,three\n")
    with pytest.raises(ValidationError):
        gateway.save_rows('P0\r1,1,risk\n')


def test_save_rows_keeps_carriage_return_in_participant_id():
    gateway, store = _gateway()
    assert gateway.save_rows(_rows_text("P\r01", 2)) == 2
    assert [d["participant_id"] for d in store.find(RESULTS)] == ["P\r01", "P\r01"]


def test_bonus_upsert_is_idempotent_and_marks_trial():
    gateway, store = _gateway()
    gateway.save_rows(_rows_text("P01", 3))
    record = {
        "participant_id": "P01",
        "bonus_trial_id": 102,
        "bonus_trial_number": 2,
        "choice_on_bonus": "risk",
        "outcome_amount": 8.0,
        "payment": "pending",
    }
    gateway.save_bonus(record)
    gateway.save_bonus({**record, "payment": "paid"})

    payments = store.find(BONUS_PAYMENTS)
    assert len(payments) == 1
    assert payments[0]["payment"] == "paid"
    marked = store.find(RESULTS, {"is_bonus_trial": True})
    assert [d["trial_number"] for d in marked] == [2]
    assert marked[0]["bonus_amount"] == 8.0


def test_save_attention_checks_requires_participant():
    gateway, store = _gateway()
    with pytest.raises(ValidationError):
        gateway.save_attention_checks(None, [{"user_answer": "x"}])
    assert gateway.save_attention_checks("P01", [{"user_answer": "x"}, {"user_answer": "y"}]) == 2
    docs = store.find(ATTENTION_CHECKS)
    assert all(d["participant_id"] == "P01" and d["saved_at"] for d in docs)


def test_exports_have_fixed_headers():
    gateway, _ = _gateway()
    assert gateway.export_trials() is None
    gateway.save_rows(_rows_text("P01", 2))
    csv_text = gateway.export_trials()
    lines = csv_text.split("\n")
    assert lines[0].endswith("is_bonus_trial,bonus_amount,timestamp")
    assert len(lines) == 3
    assert lines[1].startswith("P01,1,risk-large,risk,,75,400,100,240,")

    gateway.save_bonus({"participant_id": "P01", "bonus_trial_number": 1, "outcome_amount": 8})
    bonus_lines = gateway.export_bonus_payments().split("\n")
    assert bonus_lines[0] == "participant_id,bonus_trial_id,bonus_trial_number,choice_on_bonus,outcome_amount,payment"
    assert bonus_lines[1] == "P01,,1,,8,pending"


def test_verify_access():
    gateway, _ = _gateway()
    gateway.register_export("study-a", "secret")
    assert gateway.verify_access("study-a", "secret") is True
    assert gateway.verify_access("study-a", "wrong") is False
    assert gateway.verify_access("unknown", "secret") is None
