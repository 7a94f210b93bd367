from fastapi.testclient import TestClient

from chatroom.core.config import EVERYONE, JOINED_TEXT
from chatroom.main import app


def _join(client: TestClient, name: str) -> None:
    r = client.post("/participants", json={"name": name})
    assert r.status_code == 201, r.text


def test_root_running():
    client = TestClient(app)
    r = client.get("/")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "running"
    assert body["message"].startswith("Chat Room Server")


def test_register_lists_participant_and_announces_join():
    with TestClient(app) as client:
        _join(client, "Ana")
        r = client.get("/participants")
        assert r.status_code == 200
        names = [p["name"] for p in r.json()]
        assert names == ["Ana"]
        assert isinstance(r.json()[0]["lastStatus"], int)

        r = client.get("/messages", headers={"User": "Ana"})
        assert r.status_code == 200
        joined = r.json()[0]
        assert joined["from"] == "Ana"
        assert joined["to"] == EVERYONE
        assert joined["text"] == JOINED_TEXT
        assert joined["type"] == "status"


def test_register_rejects_duplicates_and_blank_names():
    with TestClient(app) as client:
        _join(client, "Ana")
        assert client.post("/participants", json={"name": "Ana"}).status_code == 409
        assert client.post("/participants", json={"name": "   "}).status_code == 422
        assert client.post("/participants", json={}).status_code == 422
        assert client.post("/participants", json={"name": 42}).status_code == 422


def test_post_message_requires_a_registered_sender():
    with TestClient(app) as client:
        payload = {"to": EVERYONE, "text": "oi", "type": "message"}
        assert client.post("/messages", json=payload, headers={"User": "Ghost"}).status_code == 422
        assert client.post("/messages", json=payload).status_code == 422
        _join(client, "Ana")
        r = client.post("/messages", json=payload, headers={"User": "Ana"})
        assert r.status_code == 201, r.text
        assert r.json()["from"] == "Ana"


def test_post_message_validates_payload():
    with TestClient(app) as client:
        _join(client, "Ana")
        headers = {"User": "Ana"}
        assert client.post("/messages", json={"to": "", "text": "oi", "type": "message"}, headers=headers).status_code == 422
        assert client.post("/messages", json={"to": EVERYONE, "text": " ", "type": "message"}, headers=headers).status_code == 422
        assert client.post("/messages", json={"to": EVERYONE, "text": "oi", "type": "status"}, headers=headers).status_code == 422
        assert client.post("/messages", json={"to": "x" * 101, "text": "oi", "type": "message"}, headers=headers).status_code == 422


def test_private_messages_are_hidden_from_third_parties():
    with TestClient(app) as client:
        for name in ("Ana", "Bia", "Caio"):
            _join(client, name)
        r = client.post(
            "/messages",
            json={"to": "Bia", "text": "segredo", "type": "private_message"},
            headers={"User": "Ana"},
        )
        assert r.status_code == 201
        seen_by_bia = [m["text"] for m in client.get("/messages", headers={"User": "Bia"}).json()]
        seen_by_caio = [m["text"] for m in client.get("/messages", headers={"User": "Caio"}).json()]
        assert "segredo" in seen_by_bia
        assert "segredo" not in seen_by_caio


def test_messages_limit_validation_and_slicing():
    with TestClient(app) as client:
        _join(client, "Ana")
        for i in range(3):
            client.post("/messages", json={"to": EVERYONE, "text": f"m{i}", "type": "message"}, headers={"User": "Ana"})
        r = client.get("/messages", params={"limit": 2}, headers={"User": "Ana"})
        assert r.status_code == 200
        assert [m["text"] for m in r.json()] == ["m1", "m2"]
        assert client.get("/messages", params={"limit": 0}).status_code == 422
        assert client.get("/messages", params={"limit": -3}).status_code == 422
        assert client.get("/messages", params={"limit": "abc"}).status_code == 422


def test_status_ping_requires_known_user():
    with TestClient(app) as client:
        assert client.post("/status").status_code == 404
        assert client.post("/status", headers={"User": "Ghost"}).status_code == 404
        _join(client, "Ana")
        before = client.get("/participants").json()[0]["lastStatus"]
        r = client.post("/status", headers={"User": "Ana"})
        assert r.status_code == 200
        after = client.get("/participants").json()[0]["lastStatus"]
        assert after >= before


def test_healthz_reports_sweeper_state():
    with TestClient(app) as client:
        r = client.get("/healthz")
        assert r.status_code == 200
        body = r.json()
        assert body["sweeper"]["running"] is True
        assert body["database"]["enabled"] is False
        assert body["database"]["status"] == "disabled"
        assert body["sweeper"]["sweep_period_ms"] > 0
