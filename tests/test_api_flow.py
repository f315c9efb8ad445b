from fastapi.testclient import TestClient

from conftest import T0, auth_headers, days


def _create_doc_type(client, admin, code="SRS", order=1, **extra):
    response = client.post(
        "/api/v2/document-types/",
        json={"code": code, "title": f"{code} document", "display_order": order, **extra},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requires_token(client: TestClient):
    response = client.get("/api/v2/document-types/")
    assert response.status_code == 401


def test_document_type_crud(client: TestClient, cast):
    created = _create_doc_type(client, cast.admin, supervisor_weight=25, committee_weight=75)
    assert created["code"] == "SRS"

    response = client.patch(
        f"/api/v2/document-types/{created['id']}",
        json={"title": "Software Requirements"},
        headers=auth_headers(cast.admin),
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Software Requirements"

    listed = client.get("/api/v2/document-types/", headers=auth_headers(cast.leader)).json()
    assert [d["code"] for d in listed] == ["SRS"]

    response = client.delete(f"/api/v2/document-types/{created['id']}", headers=auth_headers(cast.admin))
    assert response.json()["is_active"] is False


def test_service_errors_map_to_json(client: TestClient, cast):
    response = client.post(
        "/api/v2/document-types/",
        json={"code": "SRS", "title": "Requirements"},
        headers=auth_headers(cast.leader),
    )
    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "UNAUTHORIZED"
    assert body["details"]["required_capability"] == "manage_document_types"

    response = client.get("/api/v2/submissions/999", headers=auth_headers(cast.leader))
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"

    response = client.post(
        "/api/v2/document-types/",
        json={"code": "SRS", "title": "Requirements", "committee_weight": 150},
        headers=auth_headers(cast.admin),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_deadline_conflict_returns_409(client: TestClient, cast):
    srs = _create_doc_type(client, cast.admin, "SRS", 1)
    sds = _create_doc_type(client, cast.admin, "SDS", 2)
    batch = client.post(
        "/api/v2/deadlines/batches",
        json={"name": "Spring", "applies_from": T0.isoformat()},
        headers=auth_headers(cast.fyp),
    ).json()

    response = client.put(
        f"/api/v2/deadlines/batches/{batch['id']}/deadlines",
        json={"entries": [
            {"document_type_id": srs["id"], "deadline_date": T0.isoformat()},
            {"document_type_id": sds["id"], "deadline_date": (T0 + days(14)).isoformat()},
        ]},
        headers=auth_headers(cast.fyp),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "SCHEDULING_CONFLICT"

    response = client.put(
        f"/api/v2/deadlines/batches/{batch['id']}/deadlines",
        json={"entries": [
            {"document_type_id": srs["id"], "deadline_date": T0.isoformat()},
            {"document_type_id": sds["id"], "deadline_date": (T0 + days(15)).isoformat()},
        ]},
        headers=auth_headers(cast.fyp),
    )
    assert response.status_code == 200
    assert len(response.json()) == 2

    detail = client.get(f"/api/v2/deadlines/batches/{batch['id']}", headers=auth_headers(cast.fyp))
    assert [d["document_type_id"] for d in detail.json()["deadlines"]] == [srs["id"], sds["id"]]


def test_assign_project_to_batch(client: TestClient, session, cast, make_project):
    batch = client.post(
        "/api/v2/deadlines/batches",
        json={"name": "Spring", "applies_from": T0.isoformat()},
        headers=auth_headers(cast.fyp),
    ).json()
    project = make_project(cast.supervisor, [cast.leader])
    project.created_at = T0 + days(1)
    session.commit()

    response = client.put(
        f"/api/v2/deadlines/projects/{project.id}/batch", json={}, headers=auth_headers(cast.fyp)
    )
    assert response.status_code == 200
    assert response.json()["deadline_batch_id"] == batch["id"]

    response = client.put(
        f"/api/v2/deadlines/projects/{project.id}/batch",
        json={"batch_id": batch["id"]},
        headers=auth_headers(cast.leader),
    )
    assert response.status_code == 403


def test_full_flow_to_released_result(client: TestClient, session, cast, make_project):
    srs = _create_doc_type(client, cast.admin, supervisor_weight=20, committee_weight=80)
    project = make_project(cast.supervisor, [cast.leader, cast.member])

    response = client.post(
        "/api/v2/submissions/",
        json={
            "project_id": project.id,
            "document_type_id": srs["id"],
            "file": {"id": "blob-42", "url": "https://files.example.org/blob-42"},
        },
        headers=auth_headers(cast.member),
    )
    assert response.status_code == 201, response.text
    submission = response.json()
    assert submission["status"] == "pending_review"

    response = client.post(
        f"/api/v2/submissions/{submission['id']}/review",
        json={"approve": False},
        headers=auth_headers(cast.supervisor),
    )
    assert response.status_code == 400

    response = client.post(
        f"/api/v2/submissions/{submission['id']}/review",
        json={"approve": True, "feedback": "Good"},
        headers=auth_headers(cast.supervisor),
    )
    assert response.json()["status"] == "approved"

    response = client.post(f"/api/v2/submissions/{submission['id']}/lock", headers=auth_headers(cast.evaluator1))
    assert response.status_code == 409
    assert response.json()["details"]["current_status"] == "approved"

    response = client.post(f"/api/v2/submissions/{submission['id']}/final", headers=auth_headers(cast.leader))
    assert response.json()["is_final"] is True

    response = client.post(f"/api/v2/submissions/{submission['id']}/lock", headers=auth_headers(cast.evaluator1))
    assert response.status_code == 200
    assert response.json()["status"] == "locked"

    locked = client.get("/api/v2/submissions/locked", headers=auth_headers(cast.evaluator2)).json()
    assert [s["id"] for s in locked] == [submission["id"]]

    response = client.put(
        f"/api/v2/evaluations/{submission['id']}/supervisor-marks",
        json={"score": 80},
        headers=auth_headers(cast.supervisor),
    )
    assert response.status_code == 200
    assert response.json()["result"] is None

    response = client.put(
        f"/api/v2/evaluations/{submission['id']}/marks",
        json={"score": 90, "finalize": True},
        headers=auth_headers(cast.evaluator1),
    )
    assert response.json()["summary"]["finalized_evaluations"] == 1
    assert response.json()["result"] is None

    response = client.put(
        f"/api/v2/evaluations/{submission['id']}/marks",
        json={"score": 90},
        headers=auth_headers(cast.evaluator2),
    )
    assert response.json()["summary"]["evaluation_complete"] is False

    response = client.post(
        f"/api/v2/evaluations/{submission['id']}/marks/finalize",
        headers=auth_headers(cast.evaluator2),
    )
    body = response.json()
    assert body["summary"]["evaluation_complete"] is True
    assert body["result"]["status"] == "computed"
    assert body["result"]["total_score"] == "88.00"

    response = client.get(f"/api/v2/results/{project.id}/released", headers=auth_headers(cast.leader))
    assert response.status_code == 404

    response = client.get(f"/api/v2/results/{project.id}", headers=auth_headers(cast.evaluator1))
    assert response.json()["released"] is False

    first = client.post(f"/api/v2/results/{project.id}/release", headers=auth_headers(cast.evaluator1))
    second = client.post(f"/api/v2/results/{project.id}/release", headers=auth_headers(cast.evaluator2))
    assert first.status_code == second.status_code == 200
    assert first.json()["released_at"] == second.json()["released_at"]
    # 自动计算没有操作人，发布人保留第一次发布者
    assert second.json()["computed_by_id"] is None
    assert second.json()["released_by_id"] == cast.evaluator1.id

    response = client.post(f"/api/v2/results/{project.id}/compute", headers=auth_headers(cast.fyp))
    assert response.json()["status"] == "computed"
    response = client.get(f"/api/v2/results/{project.id}", headers=auth_headers(cast.evaluator1))
    assert response.json()["computed_by_id"] == cast.fyp.id
    assert response.json()["released"] is True

    response = client.get(f"/api/v2/results/{project.id}/released", headers=auth_headers(cast.member))
    assert response.status_code == 200
    assert response.json()["total_score"] == "88.00"


def test_compute_endpoint_reports_not_ready(client: TestClient, cast, make_project):
    srs = _create_doc_type(client, cast.admin)
    project = make_project(cast.supervisor, [cast.leader])

    response = client.post(f"/api/v2/results/{project.id}/compute", headers=auth_headers(cast.evaluator1))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "not_ready"
    assert body["pending"] == [
        {"document_type_id": srs["id"], "doc_type_code": "SRS", "reason": "missing"}
    ]


def test_draft_history_endpoints(client: TestClient, cast, make_project):
    srs = _create_doc_type(client, cast.admin)
    project = make_project(cast.supervisor, [cast.leader])
    payload = {"project_id": project.id, "document_type_id": srs["id"], "file": {"id": "b1"}}

    draft = client.post("/api/v2/submissions/", json={**payload, "draft": True}, headers=auth_headers(cast.leader)).json()
    assert draft["status"] == "draft"
    response = client.delete(f"/api/v2/submissions/{draft['id']}", headers=auth_headers(cast.leader))
    assert response.status_code == 204

    first = client.post("/api/v2/submissions/", json=payload, headers=auth_headers(cast.leader)).json()
    client.post(
        f"/api/v2/submissions/{first['id']}/review",
        json={"approve": False, "feedback": "More detail"},
        headers=auth_headers(cast.supervisor),
    )
    second = client.post("/api/v2/submissions/", json=payload, headers=auth_headers(cast.leader)).json()

    history = client.get(
        f"/api/v2/submissions/projects/{project.id}/document-types/{srs['id']}/history",
        headers=auth_headers(cast.supervisor),
    ).json()
    assert [h["id"] for h in history] == [second["id"], first["id"]]

    response = client.get(f"/api/v2/submissions/projects/{project.id}", headers=auth_headers(cast.outsider))
    assert response.status_code == 403
