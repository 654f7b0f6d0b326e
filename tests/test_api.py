"""
HTTP surface: identity header, error envelope, and the main flows end to end.
"""
GLOBAL_STEWARD = "steward-global"


def _as(actor):
    return {"X-Actor-Id": actor}


def _journey(client, owner="owner-a", title="Journey A"):
    r = client.post("/journeys", json={"title": title, "kind": "person"}, headers=_as(owner))
    assert r.status_code == 201
    return r.json()


def _text(journey_id, **extra):
    body = {
        "type": "text",
        "journey_id": journey_id,
        "payload": {"title": "Trial", "body": "x" * 60},
    }
    body.update(extra)
    return body


class TestHealth:
    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_readyz(self, client):
        assert client.get("/readyz").json()["db"] == "ok"

    def test_workflow_states(self, client):
        body = client.get("/workflow/states").json()
        assert body["states"] == ["draft", "submitted_for_review", "approved", "rejected"]
        assert "reset_to_pending" in body["actions"]


class TestIdentity:
    def test_missing_header_is_auth_required(self, client):
        r = client.get("/items")
        assert r.status_code == 401
        assert r.json() == {
            "success": False,
            "error": "auth_required",
            "detail": "Please sign in to continue.",
        }

    def test_system_identity_is_reserved(self, client):
        r = client.get("/items", headers=_as("system"))
        assert r.status_code == 401


class TestItemFlow:
    def test_submit_queue_approve_publish(self, client, notifier):
        journey = _journey(client)
        r = client.post("/items", json=_text(journey["id"], visibility="public"), headers=_as("contributor-1"))
        assert r.status_code == 201
        item = r.json()
        assert item["status"] == "submitted_for_review"

        queue = client.get("/items", params={"status": "submitted_for_review"}, headers=_as(GLOBAL_STEWARD)).json()
        assert [i["id"] for i in queue["items"]] == [item["id"]]
        assert queue["counts"]["submitted_for_review"] == 1

        assert client.get(f"/items/{item['id']}").status_code == 404

        r = client.post(f"/items/{item['id']}/approve", json={"note": "lovely"}, headers=_as(GLOBAL_STEWARD))
        assert r.status_code == 200
        assert r.json()["changed"] is True
        assert r.json()["item"]["status"] == "approved"

        again = client.post(f"/items/{item['id']}/approve", headers=_as(GLOBAL_STEWARD))
        assert again.status_code == 200
        assert again.json()["changed"] is False

        assert client.get(f"/items/{item['id']}").json()["status"] == "approved"

        ledger = client.get("/audit", params={"target_id": item["id"]}, headers=_as(GLOBAL_STEWARD)).json()
        assert [e["action"] for e in ledger] == ["item_created", "item_approved"]
        assert ledger[1]["note"] == "lovely"

    def test_invalid_transition_is_409(self, client):
        journey = _journey(client)
        item = client.post("/items", json=_text(journey["id"]), headers=_as("contributor-1")).json()
        client.post(f"/items/{item['id']}/reject", json={"note": "no"}, headers=_as(GLOBAL_STEWARD))

        r = client.post(f"/items/{item['id']}/approve", headers=_as(GLOBAL_STEWARD))
        assert r.status_code == 409
        assert r.json()["error"] == "invalid_status"

    def test_non_steward_is_403(self, client):
        journey = _journey(client)
        item = client.post("/items", json=_text(journey["id"]), headers=_as("contributor-1")).json()
        r = client.post(f"/items/{item['id']}/approve", headers=_as("contributor-1"))
        assert r.status_code == 403
        assert r.json()["error"] == "permission_denied"

    def test_oversized_document_is_413(self, client):
        journey = _journey(client)
        body = {
            "type": "document",
            "journey_id": journey["id"],
            "payload": {"filename": "minutes.pdf", "content_type": "application/pdf", "size_bytes": 40 * 1024 * 1024},
        }
        r = client.post("/items", json=body, headers=_as("contributor-1"))
        assert r.status_code == 413
        assert r.json()["error"] == "size_exceeded"

        queue = client.get("/items", headers=_as(GLOBAL_STEWARD)).json()
        assert queue["total"] == 0

    def test_bad_payload_is_422_with_fields(self, client):
        journey = _journey(client)
        r = client.post("/items", json=_text(journey["id"], payload={"title": "", "body": "b"}), headers=_as("c"))
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"
        assert "title" in r.json()["fields"]

    def test_malformed_request_is_422(self, client):
        r = client.post("/items", json={"type": "hologram"}, headers=_as("c"))
        assert r.status_code == 422
        assert r.json()["success"] is False
        assert r.json()["error"] == "validation_error"

    def test_allowed_actions(self, client):
        journey = _journey(client)
        item = client.post("/items", json=_text(journey["id"], as_draft=True), headers=_as("contributor-1")).json()
        r = client.get(f"/items/{item['id']}/allowed", headers=_as("contributor-1"))
        assert r.json() == {"item_id": item["id"], "status": "draft", "allowed": ["submit"]}

        r = client.post(f"/items/{item['id']}/submit", headers=_as("contributor-1"))
        assert r.json()["item"]["status"] == "submitted_for_review"


class TestGrantsAndJourneys:
    def test_scoped_steward_flow(self, client):
        a = _journey(client, "owner-a", "A")
        b = _journey(client, "owner-b", "B")
        r = client.post("/grants", json={"user_id": "steward-a", "journey_id": a["id"]}, headers=_as(GLOBAL_STEWARD))
        assert r.status_code == 201
        grant = r.json()

        r = client.post("/grants", json={"user_id": "steward-a", "journey_id": a["id"]}, headers=_as(GLOBAL_STEWARD))
        assert r.status_code == 200

        item_b = client.post("/items", json=_text(b["id"]), headers=_as("contributor-1")).json()
        r = client.post(f"/items/{item_b['id']}/approve", headers=_as("steward-a"))
        assert r.status_code == 403

        r = client.delete(f"/grants/{grant['id']}", headers=_as(GLOBAL_STEWARD))
        assert r.status_code == 200
        assert r.json()["revoked_by"] == GLOBAL_STEWARD

        assert client.get("/grants", headers=_as("steward-a")).status_code == 403

    def test_viewers(self, client):
        a = _journey(client)
        r = client.post(f"/journeys/{a['id']}/viewers", json={"user_id": "cousin", "tier": "family"}, headers=_as("owner-a"))
        assert r.status_code == 200
        assert r.json()["tier"] == "family"

        viewers = client.get(f"/journeys/{a['id']}/viewers", headers=_as("owner-a")).json()
        assert [v["user_id"] for v in viewers] == ["cousin"]

        assert client.delete(f"/journeys/{a['id']}/viewers/cousin", headers=_as("owner-a")).json() == {"success": True}
        assert client.get(f"/journeys/{a['id']}").json()["title"] == "Journey A"

    def test_journey_items(self, client):
        a = _journey(client)
        item = client.post("/items", json=_text(a["id"], visibility="public"), headers=_as("contributor-1")).json()
        assert client.get(f"/journeys/{a['id']}/items").json() == []
        client.post(f"/items/{item['id']}/approve", headers=_as(GLOBAL_STEWARD))
        assert [i["id"] for i in client.get(f"/journeys/{a['id']}/items").json()] == [item["id"]]


class TestMessages:
    def test_contact_message(self, client, notifier):
        r = client.post("/messages", json={"name": "Sam", "email": "sam@example.org", "body": "Hello"})
        assert r.status_code == 201
        assert r.json()["kind"] == "contact"
        assert [rcpt for rcpt, _, _ in notifier.events("contact_received")] == [GLOBAL_STEWARD]

    def test_only_global_stewards_read_messages(self, client):
        client.post("/messages", json={"kind": "join", "name": "Sam", "email": "sam@example.org", "body": "Hi"})
        assert client.get("/messages", headers=_as("someone")).status_code == 403

        messages = client.get("/messages", params={"kind": "join"}, headers=_as(GLOBAL_STEWARD)).json()
        assert [m["name"] for m in messages] == ["Sam"]
