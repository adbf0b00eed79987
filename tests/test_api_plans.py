"""
HTTP tests for the plan endpoints, entry page and health probes.

Covers:
  - GET/PUT/DELETE /api/v1/plans/<id> with status mapping
  - PATCH /api/v1/plans/<id>/nodes
  - export as JSON and as a CSV download
  - identity: bearer token, opt-in trusted header, invalid bearer treated as anonymous
  - CSV download header stays Latin-1 safe for non-ASCII plan names
  - entry page embeds the resolved permission
  - health probes
"""

import dataclasses


class TestPlanEndpoints:
    def test_list_empty(self, client):
        res = client.get("/api/v1/plans")
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["data"]["plans"] == {}
        assert body["data"]["user"]["permission"] == "view"

    def test_owner_saves_and_reads(self, client, owner_headers, make_plan):
        res = client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {"id": "q1", "node_count": 3}

        res = client.get("/api/v1/plans/q1")
        assert res.status_code == 200
        nodes = res.get_json()["data"]["nodes"]
        assert [n["id"] for n in nodes] == ["n1", "n2", "n3"]

    def test_anonymous_save_forbidden(self, client, make_plan):
        res = client.put("/api/v1/plans/q1", json=make_plan())
        assert res.status_code == 403
        assert res.get_json()["error_type"] == "authorization"

    def test_invalid_bearer_is_anonymous(self, client, make_plan):
        res = client.put("/api/v1/plans/q1", json=make_plan(),
                         headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 403

    def test_trusted_header_identity_when_enabled(self, app, client, make_plan, monkeypatch):
        settings = app.extensions["orgplan"]["settings"]
        monkeypatch.setitem(app.extensions["orgplan"], "settings", dataclasses.replace(
            settings, identity_header="X-Forwarded-Email", identity_jwt_secret=None))
        res = client.put("/api/v1/plans/q1", json=make_plan(),
                         headers={"X-Forwarded-Email": "Owner@Example.com"})
        assert res.status_code == 200

    def test_identity_header_ignored_when_bearer_configured(self, app, client, make_plan, monkeypatch):
        settings = app.extensions["orgplan"]["settings"]
        monkeypatch.setitem(app.extensions["orgplan"], "settings",
                            dataclasses.replace(settings, identity_header="X-Forwarded-Email"))
        spoofed = {"X-Forwarded-Email": "owner@example.com"}
        res = client.put("/api/v1/plans/q1", json=make_plan(), headers=spoofed)
        assert res.status_code == 403
        res = client.post("/api/v1/sharing/users",
                          json={"email": "evil@x.com", "permission": "owner"}, headers=spoofed)
        assert res.status_code == 403

    def test_identity_header_off_by_default(self, client, make_plan):
        res = client.put("/api/v1/plans/q1", json=make_plan(),
                         headers={"X-Forwarded-Email": "owner@example.com"})
        assert res.status_code == 403

    def test_unknown_plan_404(self, client):
        res = client.get("/api/v1/plans/ghost")
        assert res.status_code == 404
        assert res.get_json()["error_type"] == "not_found"

    def test_invalid_body_422(self, client, owner_headers):
        res = client.put("/api/v1/plans/q1", json=[1, 2], headers=owner_headers)
        assert res.status_code == 422

    def test_delete_current_422_and_other_200(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/current", json=make_plan(), headers=owner_headers)
        client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)

        assert client.delete("/api/v1/plans/current", headers=owner_headers).status_code == 422
        assert client.delete("/api/v1/plans/q1", headers=owner_headers).status_code == 200
        assert set(client.get("/api/v1/plans").get_json()["data"]["plans"]) == {"current"}

    def test_batch_update(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)
        res = client.patch("/api/v1/plans/q1/nodes", headers=owner_headers, json={
            "updates": [{"id": "n3", "x": 200, "isArranged": True}, {"id": "missing"}],
        })
        assert res.status_code == 200
        assert res.get_json()["data"] == {"id": "q1", "updated": 1, "ignored": 1}

        node = client.get("/api/v1/plans/q1").get_json()["data"]["nodes"][2]
        assert node["x"] == 200
        assert node["is_arranged"] is True

    def test_batch_update_without_list_422(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)
        res = client.patch("/api/v1/plans/q1/nodes", json={}, headers=owner_headers)
        assert res.status_code == 422


class TestExport:
    def test_export_json(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)
        res = client.get("/api/v1/plans/q1/export")
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["filename"].startswith("Q1 proposal_")
        assert "Carol" in data["csv"]

    def test_export_download(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/q1", json=make_plan(), headers=owner_headers)
        res = client.get("/api/v1/plans/q1/export.csv")
        assert res.status_code == 200
        assert res.mimetype == "text/csv"
        assert res.headers["Content-Disposition"].startswith("attachment;")
        assert "Q1 proposal_" in res.headers["Content-Disposition"]
        assert res.get_data(as_text=True).startswith("ID,Name,Position")

    def test_export_download_non_latin_name(self, client, owner_headers, make_plan):
        client.put("/api/v1/plans/q1", json=make_plan(name="組織案"), headers=owner_headers)
        res = client.get("/api/v1/plans/q1/export.csv")
        assert res.status_code == 200
        disposition = res.headers["Content-Disposition"]
        disposition.encode("latin-1")
        assert "filename*=UTF-8''" in disposition
        assert "%E7%B5%84%E7%B9%94%E6%A1%88_" in disposition

    def test_export_download_missing_plan(self, client):
        assert client.get("/api/v1/plans/ghost/export.csv").status_code == 404


class TestEntryAndHealth:
    def test_entry_page_embeds_permission(self, client, owner_headers):
        res = client.get("/", headers=owner_headers)
        assert res.status_code == 200
        html = res.get_data(as_text=True)
        assert 'data-permission="owner"' in html
        assert 'data-email="owner@example.com"' in html

    def test_entry_page_anonymous_is_view(self, client):
        html = client.get("/").get_data(as_text=True)
        assert 'data-permission="view"' in html

    def test_health_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_health_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["store"]["backend"] == "sql"
        assert checks["cache"] == {"status": "ok", "backend": "memory"}

    def test_unknown_api_route_json_404(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["success"] is False
