import importlib

from fastapi.testclient import TestClient

from api.main import create_app
from persistence.gateway import ResultsGateway
from persistence.store import InMemoryDocumentStore

ROWS = (
    "P01,1,both-small,risk,NaN,75,400,100,240,left,right,risky,1.2,NaN,101,FALSE,\n"
    'P01,2,"both-large, test",safe,NaN,25,200,100,60,right,left,safe,0.8,NaN,102,FALSE,\n'
)


def _client():
    gateway = ResultsGateway(InMemoryDocumentStore())
    gateway.register_export("study-a", "secret")
    return TestClient(create_app(gateway))


def test_api_import():
    mod = importlib.import_module("api.main")
    importlib.reload(mod)
    assert hasattr(mod, "app")


def test_health():
    resp = _client().get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_save_and_download_round_trip():
    client = _client()
    resp = client.post("/save", json={"data": ROWS})
    assert resp.status_code == 200
    assert resp.json()["accepted"] == 2

    resp = client.post(
        "/save-bonus",
        json={"participant_id": "P01", "bonus_trial_id": 102, "bonus_trial_number": 2,
              "choice_on_bonus": "safe", "outcome_amount": 1.2, "payment": "pending"},
    )
    assert resp.status_code == 200

    resp = client.get("/study-a/secret/download-trial")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    lines = resp.text.split("\n")
    assert len(lines) == 3
    assert '"both-large, test"' in lines[2]
    assert ",TRUE,1.2," in lines[2]

    bonus = client.get("/study-a/secret/download-bonus")
    assert bonus.status_code == 200
    assert bonus.text.split("\n")[1] == "P01,102,2,safe,1.2,pending"


def test_save_attention_and_download():
    client = _client()
    assert client.post("/save-attention", json={"participantId": "P01"}).status_code == 400
    resp = client.post(
        "/save-attention",
        json={"participantId": "P01", "data": [{"attention_check_number": 1, "user_answer": "apple",
                                                "is_correct": True, "timestamp": "2025-01-01T00:00:00"}]},
    )
    assert resp.status_code == 200
    csv_text = client.get("/study-a/secret/download-attention").text
    assert csv_text.split("\n")[1].startswith("P01,1,,,,apple,TRUE,")


def test_save_rejects_missing_data():
    client = _client()
    assert client.post("/save", json={}).status_code == 400
    assert client.post("/save-bonus", json={"outcome_amount": 1}).status_code == 400


def test_export_access_control():
    client = _client()
    assert client.get("/study-a/wrong/download-trial").status_code == 401
    assert client.get("/nope/secret/download-trial").status_code == 404
    # known path, right password, nothing stored yet
    assert client.get("/study-a/secret/download-attention").status_code == 404
