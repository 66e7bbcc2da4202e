import json

import pytest
import requests

from core.config import RetryPolicy
from core.errors import NetworkUnreachable, ServerError, SubmissionError, SubmissionTimeout
from core.models import BonusOutcome, Choice, EvClass, Session, TrialResult
from schemas.rows import TrialRow, iter_decoded_rows
from services.submission.backup import LocalBackupStore
from services.submission.client import SubmissionClient
from services.submission.pipeline import SubmissionPipeline


class DummyClient:
    def __init__(self, failures=0, error=SubmissionTimeout, health_ok=True):
        self.failures = failures
        self.error = error
        self.health_ok = health_ok
        self.saved = []
        self.attention = []
        self.bonus = []
        self.health_calls = 0

    def health(self):
        self.health_calls += 1
        if not self.health_ok:
            raise NetworkUnreachable("probe failed")
        return {"status": "ok"}

    def save(self, rows_text):
        if self.failures > 0:
            self.failures -= 1
            raise self.error("transient")
        self.saved.append(rows_text)
        return {"success": True}

    def save_attention_checks(self, participant_id, rows):
        self.attention.append((participant_id, rows))
        return {"success": True}

    def save_bonus(self, payload):
        self.bonus.append(payload)
        return {"success": True}


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _session(n_rows, participant_id="P01"):
    session = Session(participant_id=participant_id, study_type="ip")
    for _ in range(n_rows):
        _add_row(session)
    return session


def _add_row(session):
    result = TrialResult(
        participant_id=session.participant_id,
        trial_number=session.next_trial_number(),
        choice=Choice.safe,
        risk_probability=50,
        risk_reward=400,
        safe_reward=200,
        size_condition="both-small",
        risk_position="left",
        safe_position="right",
        ev=EvClass.same,
        trial_id=1,
    )
    session.results.append(result)
    session.rows.append(TrialRow.from_result(result))
    return result


def _row_count(text):
    return len(list(iter_decoded_rows(text)))


def test_phase2_save_sends_only_rows_past_watermark():
    client = DummyClient()
    pipeline = SubmissionPipeline(client, sleep=RecordingSleep())
    session = _session(126)

    assert pipeline.submit_trials(session) == 126
    assert session.saved_row_count == 126
    for _ in range(84):
        _add_row(session)
    assert pipeline.submit_trials(session) == 84

    assert [_row_count(t) for t in client.saved] == [126, 84]
    assert session.saved_row_count == 210
    assert pipeline.submit_trials(session) == 0
    assert len(client.saved) == 2


def test_three_failures_back_off_two_four_eight():
    client = DummyClient(failures=3)
    sleep = RecordingSleep()
    pipeline = SubmissionPipeline(client, policy=RetryPolicy(max_attempts=4), sleep=sleep)

    pipeline.submit_trials(_session(5))

    assert sleep.calls == [2, 4, 8]
    assert len(client.saved) == 1
    # one probe before each retry
    assert client.health_calls == 3


def test_failed_probe_adds_settle_delay():
    client = DummyClient(failures=1, health_ok=False)
    sleep = RecordingSleep()
    pipeline = SubmissionPipeline(client, policy=RetryPolicy(max_attempts=2, probe_settle_s=2.0), sleep=sleep)
    pipeline.submit_trials(_session(1))
    assert sleep.calls == [2, 2.0]


@pytest.mark.parametrize("error", [SubmissionTimeout, NetworkUnreachable, ServerError])
def test_exhausted_retries_raise_last_typed_error(error):
    client = DummyClient(failures=10, error=error)
    session = _session(3)
    pipeline = SubmissionPipeline(client, policy=RetryPolicy(max_attempts=3), sleep=RecordingSleep())
    with pytest.raises(error) as info:
        pipeline.submit_trials(session)
    assert info.value.user_message
    assert session.saved_row_count == 0


def test_error_messages_are_distinct():
    messages = {SubmissionTimeout.user_message, NetworkUnreachable.user_message, ServerError.user_message}
    assert len(messages) == 3


def test_finish_saves_everything_and_clears_backup(tmp_path):
    client = DummyClient()
    backup = LocalBackupStore(tmp_path)
    pipeline = SubmissionPipeline(client, backup, sleep=RecordingSleep())
    session = _session(4)
    result = session.results[1]
    session.bonus = BonusOutcome(result, win=True, reward_points=200, bonus_amount=4.0)

    pipeline.finish(session)

    assert len(client.saved) == 1
    assert client.bonus == [
        {
            "participant_id": "P01",
            "bonus_trial_id": 1,
            "bonus_trial_number": 2,
            "choice_on_bonus": "safe",
            "outcome_amount": 4.0,
            "payment": "pending",
        }
    ]
    assert not backup.exists("P01")


def test_failed_finish_keeps_backup(tmp_path):
    client = DummyClient(failures=10)
    backup = LocalBackupStore(tmp_path)
    pipeline = SubmissionPipeline(client, backup, policy=RetryPolicy(max_attempts=2), sleep=RecordingSleep())
    session = _session(2)
    with pytest.raises(SubmissionError):
        pipeline.finish(session)
    assert backup.exists("P01")
    assert backup.status("P01") == "Backup saved locally - please contact researcher"
    saved = backup.load("P01")
    assert saved["subjectId"] == "P01"
    assert len(saved["csvData"]) == 2


def test_backup_failure_is_swallowed(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    backup = LocalBackupStore(blocker / "backups")
    assert backup.save(_session(1)) is False
    assert backup.status("P01") == "No backup available"


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = json.dumps(self._payload)

    def json(self):
        return self._payload


class FakeHttp:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json, timeout))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.mark.parametrize(
    "outcome,error",
    [
        (requests.Timeout("slow"), SubmissionTimeout),
        (requests.ConnectionError("down"), NetworkUnreachable),
        (FakeResponse(503, {"error": "busy"}), ServerError),
    ],
)
def test_client_maps_transport_failures(outcome, error):
    client = SubmissionClient("http://survey.test", session=FakeHttp(outcome))
    with pytest.raises(error):
        client.save("row\n")


def test_client_posts_payloads():
    http = FakeHttp(FakeResponse(200, {"success": True}))
    client = SubmissionClient("http://survey.test/", timeout=5, session=http)
    assert client.save_attention_checks("P01", [{"a": 1}]) == {"success": True}
    method, url, body, timeout = http.calls[0]
    assert (method, url, timeout) == ("POST", "http://survey.test/save-attention", 5)
    assert body == {"participantId": "P01", "data": [{"a": 1}]}


def test_no_attempts_raises_submission_error():
    client = DummyClient()
    pipeline = SubmissionPipeline(client, policy=RetryPolicy(max_attempts=0), sleep=RecordingSleep())
    with pytest.raises(SubmissionError):
        pipeline.submit_trials(_session(1))
    assert client.saved == []
