"""HTTP-level tests: routing, header scoping and error mapping."""
from conftest import DISTRICT_A, DISTRICT_B, headers


CONTRACT = {
    "title": "Basketball Coach",
    "description": "Varsity, winter season",
    "contract_type": "coaching",
    "amount": "1000.00",
    "start_date": "2026-01-01",
    "end_date": "2099-06-30",
}


def _create_contract(client, district_id=DISTRICT_A, **overrides):
    body = {**CONTRACT, **overrides}
    response = client.post("/api/contracts", json=body, headers=headers(district_id))
    assert response.status_code == 201, response.text
    return response.json()


def _create_request(client, contract_id, district_id=DISTRICT_A, **overrides):
    body = {
        "contract_id": contract_id,
        "employee_id": 42,
        "amount": "200.00",
        "hours_worked": "8",
        "work_date": "2026-02-14",
        "description": "Saturday tournament",
        **overrides,
    }
    response = client.post(
        "/api/requests", json=body,
        headers=headers(district_id, user_id="staff_7", role="staff")
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestEndToEnd:

    def test_contract_request_approve_pay(self, client):
        contract = _create_contract(client)
        assert contract["status"] == "active"

        request = _create_request(client, contract["id"])
        assert request["status"] == "pending"

        approved = client.patch(
            f"/api/requests/{request['id']}/approve",
            json={"comments": "ok", "workflow_step": 1},
            headers=headers()
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert approved.json()["approved_by"] == "admin_1"

        paid = client.patch(
            f"/api/requests/{request['id']}/mark-paid",
            headers=headers(user_id="payroll_3", role="payroll")
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"

        activity = client.get(f"/api/contracts/{contract['id']}/activity", headers=headers())
        assert activity.status_code == 200
        assert [e["event_type"] for e in activity.json()] == ["created", "created", "approved", "paid"]

        detail = client.get(f"/api/requests/{request['id']}", headers=headers())
        timeline = detail.json()["timeline"]
        assert [e["to_status"] for e in timeline] == ["pending", "approved", "paid"]
        assert timeline[1]["metadata"] == {"comments": "ok"}
        assert timeline[2]["actor_role"] == "payroll"


class TestScoping:

    def test_district_header_required(self, client):
        response = client.get("/api/contracts")
        assert response.status_code == 400

    def test_malformed_district_header(self, client):
        response = client.get("/api/contracts", headers={"X-District-ID": "north"})
        assert response.status_code == 400

    def test_actor_headers_required_on_writes(self, client):
        response = client.post("/api/contracts", json=CONTRACT, headers={"X-District-ID": "1"})
        assert response.status_code == 400

    def test_other_district_gets_404(self, client):
        contract = _create_contract(client, district_id=DISTRICT_B)

        response = client.get(f"/api/contracts/{contract['id']}", headers=headers(DISTRICT_A))
        missing = client.get("/api/contracts/99999", headers=headers(DISTRICT_A))

        assert response.status_code == 404
        assert response.json() == missing.json()

    def test_cannot_approve_other_districts_request(self, client):
        contract = _create_contract(client, district_id=DISTRICT_B)
        request = _create_request(client, contract["id"], district_id=DISTRICT_B)

        response = client.patch(f"/api/requests/{request['id']}/approve", headers=headers(DISTRICT_A))
        assert response.status_code == 404

        untouched = client.get(f"/api/requests/{request['id']}", headers=headers(DISTRICT_B))
        assert untouched.json()["status"] == "pending"


class TestErrorMapping:

    def test_invalid_transition_is_400_with_pair(self, client):
        contract = _create_contract(client)
        request = _create_request(client, contract["id"])

        response = client.patch(f"/api/requests/{request['id']}/mark-paid", headers=headers())

        assert response.status_code == 400
        body = response.json()
        assert body["from_status"] == "pending"
        assert body["to_status"] == "paid"

    def test_reject_without_reason_is_400(self, client):
        contract = _create_contract(client)
        request = _create_request(client, contract["id"])

        response = client.patch(
            f"/api/requests/{request['id']}/reject", json={"reason": ""}, headers=headers()
        )
        assert response.status_code == 400
        assert "reason" in response.json()["error"].lower()

        rejected = client.patch(
            f"/api/requests/{request['id']}/reject",
            json={"reason": "budget exceeded"},
            headers=headers()
        )
        assert rejected.status_code == 200
        assert rejected.json()["rejection_reason"] == "budget exceeded"

        timeline = client.get(f"/api/requests/{request['id']}", headers=headers()).json()["timeline"]
        assert timeline[-1]["event_type"] == "rejected"
        assert timeline[-1]["metadata"] == {"rejectionReason": "budget exceeded"}

    def test_generic_status_endpoint(self, client):
        contract = _create_contract(client)
        request = _create_request(client, contract["id"])

        bogus = client.patch(
            f"/api/requests/{request['id']}/status", json={"status": "archived"}, headers=headers()
        )
        assert bogus.status_code == 400

        approved = client.patch(
            f"/api/requests/{request['id']}/status", json={"status": "approved"}, headers=headers()
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

    def test_body_validation_is_400(self, client):
        response = client.post(
            "/api/contracts", json={**CONTRACT, "amount": "-5"}, headers=headers()
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    def test_inverted_dates_rejected(self, client):
        response = client.post(
            "/api/contracts",
            json={**CONTRACT, "start_date": "2026-06-01", "end_date": "2026-01-01"},
            headers=headers()
        )
        assert response.status_code == 400

    def test_delete_referenced_contract_is_409(self, client):
        contract = _create_contract(client)
        _create_request(client, contract["id"])

        response = client.delete(f"/api/contracts/{contract['id']}", headers=headers())
        assert response.status_code == 409

    def test_delete_unreferenced_contract(self, client):
        contract = _create_contract(client)

        response = client.delete(f"/api/contracts/{contract['id']}", headers=headers())
        assert response.status_code == 204
        assert client.get(f"/api/contracts/{contract['id']}", headers=headers()).status_code == 404


class TestContracts:

    def test_list_with_filters(self, client):
        _create_contract(client, title="Basketball Coach")
        inactive = _create_contract(client, title="Tutor")
        client.patch(
            f"/api/contracts/{inactive['id']}/status", json={"status": "inactive"}, headers=headers()
        )

        active = client.get("/api/contracts?status=active", headers=headers())
        assert [c["title"] for c in active.json()] == ["Basketball Coach"]

        searched = client.get("/api/contracts?search=TUT", headers=headers())
        assert [c["title"] for c in searched.json()] == ["Tutor"]

        paged = client.get("/api/contracts?limit=1", headers=headers())
        assert len(paged.json()) == 1

    def test_unknown_status_filter_is_400(self, client):
        response = client.get("/api/contracts?status=archived", headers=headers())
        assert response.status_code == 400

    def test_contract_detail_has_timeline(self, client):
        contract = _create_contract(client)
        client.patch(
            f"/api/contracts/{contract['id']}/status", json={"status": "inactive"}, headers=headers()
        )

        detail = client.get(f"/api/contracts/{contract['id']}", headers=headers()).json()
        assert detail["status"] == "inactive"
        assert [e["event_type"] for e in detail["timeline"]] == ["created", "status_change"]
        assert detail["timeline"][1]["metadata"] == {"trigger": "manual"}

    def test_expire_endpoint(self, client):
        old = _create_contract(client, start_date="2025-01-01", end_date="2025-06-01")
        _create_contract(client)

        response = client.post("/api/contracts/expire?today=2026-01-01", headers=headers())

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [old["id"]]
        assert response.json()[0]["status"] == "expired"

    def test_dashboard_stats(self, client):
        contract = _create_contract(client)
        _create_request(client, contract["id"])
        second = _create_request(client, contract["id"])
        client.patch(f"/api/requests/{second['id']}/approve", headers=headers())

        stats = client.get("/api/dashboard-stats", headers=headers()).json()
        assert stats["contract_stats"] == {"active": 1}
        assert stats["request_stats"] == {"pending": 1, "approved": 1}
        assert len(stats["recent_requests"]) == 2


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestWorkflowSteps:

    def test_request_workflow_step(self, client):
        contract = _create_contract(client)
        request = _create_request(client, contract["id"])

        response = client.post(
            f"/api/requests/{request['id']}/workflow-step",
            json={"step": 1, "action": "Principal review", "metadata": {"school": "North High"}},
            headers=headers()
        )
        assert response.status_code == 201
        assert isinstance(response.json()["event_id"], int)

        detail = client.get(f"/api/requests/{request['id']}", headers=headers()).json()
        assert detail["status"] == "pending"
        step = detail["timeline"][-1]
        assert step["event_type"] == "workflow_step"
        assert step["workflow_step"] == 1
        assert step["metadata"] == {"school": "North High"}

    def test_contract_workflow_step_other_district_404(self, client):
        contract = _create_contract(client, district_id=DISTRICT_B)

        response = client.post(
            f"/api/contracts/{contract['id']}/workflow-step",
            json={"step": 1, "action": "Board approval"},
            headers=headers(DISTRICT_A)
        )
        assert response.status_code == 404

    def test_step_number_validated(self, client):
        contract = _create_contract(client)

        response = client.post(
            f"/api/contracts/{contract['id']}/workflow-step",
            json={"step": 0, "action": "Board approval"},
            headers=headers()
        )
        assert response.status_code == 400


class TestRequestContext:

    def test_client_address_and_agent_on_events(self, client):
        contract = _create_contract(client)

        detail = client.get(f"/api/contracts/{contract['id']}", headers=headers()).json()
        created = detail["timeline"][0]
        assert created["ip_address"] == "testclient"
        assert created["user_agent"] == "testclient"

    def test_user_agent_header_kept(self, client):
        contract = _create_contract(client)
        client.patch(
            f"/api/contracts/{contract['id']}/status",
            json={"status": "inactive"},
            headers={**headers(), "User-Agent": "HR-Portal/2.1"}
        )

        timeline = client.get(f"/api/contracts/{contract['id']}", headers=headers()).json()["timeline"]
        assert timeline[-1]["user_agent"] == "HR-Portal/2.1"


class TestCustomFields:

    FIELD = {
        "field_name": "sport",
        "display_label": "Sport",
        "field_type": "select",
        "category": "contract",
        "section": "details",
        "display_order": 2,
        "options": ["Basketball", "Soccer"],
    }

    def test_create_and_list(self, client):
        created = client.post("/api/custom-fields", json=self.FIELD, headers=headers())
        assert created.status_code == 201
        assert created.json()["created_by"] == "admin_1"
        assert created.json()["district_id"] == DISTRICT_A

        client.post(
            "/api/custom-fields",
            json={**self.FIELD, "field_name": "season", "display_label": "Season", "display_order": 1},
            headers=headers()
        )
        client.post(
            "/api/custom-fields",
            json={**self.FIELD, "field_name": "mileage", "display_label": "Mileage", "section": "travel"},
            headers=headers()
        )

        listed = client.get("/api/custom-fields?section=details&category=contract", headers=headers())
        assert [f["field_name"] for f in listed.json()] == ["season", "sport"]

        other = client.get("/api/custom-fields", headers=headers(DISTRICT_B))
        assert other.json() == []

    def test_duplicate_name_is_400(self, client):
        client.post("/api/custom-fields", json=self.FIELD, headers=headers())

        response = client.post("/api/custom-fields", json=self.FIELD, headers=headers())
        assert response.status_code == 400

    def test_missing_label_is_400(self, client):
        body = {k: v for k, v in self.FIELD.items() if k != "display_label"}

        response = client.post("/api/custom-fields", json=body, headers=headers())
        assert response.status_code == 400
