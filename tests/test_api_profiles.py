"""Tests for profile endpoints."""


class TestProfileAPI:
    def test_save_and_get(self, client):
        resp = client.post(
            "/api/profile/save",
            json={"uid": "u1", "displayName": "Sam", "email": "sam@example.com", "personaId": "p-alex"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["profile"]["uid"] == "u1"
        assert body["profile"]["displayName"] == "Sam"
        assert body["profile"]["persona"] == {"id": "p-alex", "name": "Alex", "voiceName": "Kore", "tone": None}
        assert body["profile"]["isSavedToSupabase"] is True

        resp = client.get("/api/profile/u1")
        assert resp.status_code == 200
        assert resp.json()["profile"]["email"] == "sam@example.com"

    def test_save_invalid_email(self, client):
        resp = client.post("/api/profile/save", json={"uid": "u1", "email": "nope"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid email format"}

    def test_save_missing_uid(self, client):
        resp = client.post("/api/profile/save", json={"email": "sam@example.com"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "UID is required"

    def test_save_unknown_persona(self, client):
        resp = client.post(
            "/api/profile/save", json={"uid": "u1", "email": "sam@example.com", "personaId": "x"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid persona ID"

    def test_get_missing(self, client):
        resp = client.get("/api/profile/nobody")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Profile not found"}

    def test_delete(self, client):
        client.post("/api/profile/save", json={"uid": "u1", "displayName": "Sam", "email": "sam@example.com"})

        resp = client.delete("/api/profile/u1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["deletedProfile"] == {"uid": "u1", "displayName": "Sam", "email": "sam@example.com"}

        assert client.delete("/api/profile/u1").status_code == 404
