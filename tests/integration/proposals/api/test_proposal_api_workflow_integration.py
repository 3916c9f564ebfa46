from concurrent.futures import ThreadPoolExecutor

from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers.proposals import reset_proposal_workflow_service_for_tests


def _create_payload(title: str, amount: str = "250000.00") -> dict:
    return {
        "title": title,
        "applicantName": "Alice",
        "amount": amount,
        "description": "Integration coverage",
    }


def setup_function() -> None:
    reset_proposal_workflow_service_for_tests()


def teardown_function() -> None:
    reset_proposal_workflow_service_for_tests()


def test_proposal_lifecycle_end_to_end_with_audit_trail() -> None:
    with TestClient(app) as client:
        created = client.post(
            "/api/proposals",
            json=_create_payload("Solar Farm", "99999999999999999.99"),
            headers={"X-Actor-Id": "alice"},
        )
        proposal_id = created.json()["id"]
        submitted = client.post(f"/api/proposals/{proposal_id}/submit")
        for approver in ["manager", "compliance", "director"]:
            client.post(f"/api/proposals/{proposal_id}/approve", json={"approver": approver})
        detail = client.get(f"/api/proposals/{proposal_id}")
        listed = client.get("/api/proposals", params={"status": "APPROVED"})
        audit = client.get("/api/audit", params={"proposalId": proposal_id})

    assert created.status_code == 201
    assert submitted.json()["status"] == "UNDER_REVIEW"
    assert detail.json()["status"] == "APPROVED"
    assert detail.json()["amount"] == "99999999999999999.99"
    assert detail.json()["version"] == 5
    assert [item["id"] for item in listed.json()] == [proposal_id]
    assert [item["action"] for item in audit.json()] == [
        "PROPOSAL_CREATED",
        "PROPOSAL_SUBMITTED",
        "STEP_APPROVED",
        "STEP_APPROVED",
        "STEP_APPROVED",
        "PROPOSAL_APPROVED",
    ]
    timestamps = [item["timestamp"] for item in audit.json()]
    assert timestamps == sorted(timestamps)


def test_concurrent_http_decisions_resolve_a_step_exactly_once() -> None:
    with TestClient(app) as client:
        proposal_id = client.post("/api/proposals", json=_create_payload("Wind Farm")).json()["id"]
        client.post(f"/api/proposals/{proposal_id}/submit")

        def _decide(index: int) -> int:
            if index % 2:
                body = {"approver": f"r{index}", "comments": "no", "expectedStepIndex": 0}
                return client.post(f"/api/proposals/{proposal_id}/reject", json=body).status_code
            body = {"approver": f"a{index}", "expectedStepIndex": 0}
            return client.post(f"/api/proposals/{proposal_id}/approve", json=body).status_code

        with ThreadPoolExecutor(max_workers=6) as executor:
            statuses = list(executor.map(_decide, range(6)))
        detail = client.get(f"/api/proposals/{proposal_id}").json()
        audit = client.get("/api/audit", params={"proposalId": proposal_id}).json()

    assert statuses.count(200) == 1
    assert statuses.count(409) == 5
    assert len([step for step in detail["steps"] if step["status"] != "PENDING"]) == 1
    decisions = [
        item
        for item in audit
        if item["action"] in {"STEP_APPROVED", "PROPOSAL_REJECTED"}
    ]
    assert len(decisions) == 1


def test_front_end_call_sequence_round_trips() -> None:
    with TestClient(app) as client:
        created = client.post("/api/proposals", json=_create_payload("Hydro Plant", "420000"))
        proposal_id = created.json()["id"]
        submitted = client.post(
            f"/api/proposals/{proposal_id}/submit", json=["PEER_REVIEW", "RISK_REVIEW"]
        )
        approved = client.post(
            f"/api/proposals/{proposal_id}/approve",
            json={"approver": "peer", "comments": None},
        )
        rejected = client.post(
            f"/api/proposals/{proposal_id}/reject",
            json={"approver": "risk", "comments": "exposure too high"},
        )
        proposals = client.get("/api/proposals").json()
        audit = client.get(f"/api/audit?proposalId={proposal_id}").json()

    assert submitted.json()["currentStepIndex"] == 0
    assert approved.json()["currentStepIndex"] == 1
    assert rejected.json()["status"] == "REJECTED"
    assert [step["status"] for step in rejected.json()["steps"]] == ["APPROVED", "REJECTED"]
    assert [proposal["id"] for proposal in proposals] == [proposal_id]
    assert [entry["action"] for entry in audit] == [
        "PROPOSAL_CREATED",
        "PROPOSAL_SUBMITTED",
        "STEP_APPROVED",
        "PROPOSAL_REJECTED",
    ]
