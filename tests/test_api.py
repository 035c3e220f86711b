from __future__ import annotations

import pytest
from conftest import EDITOR_HEADERS, make_subject
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from feedback_engine.application import templates as template_service
from feedback_engine.infrastructure.models import AccessGrantORM
from feedback_engine.web.dependencies import get_db_session
from feedback_engine.web.main import create_application

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture()
def subject_id(SessionLocal):
    with SessionLocal() as s:
        sid = make_subject(s, 42)
        s.commit()
    return sid


@pytest.fixture()
def appraisal(client):
    """Active appraisal template at version 3 with one category of two questions."""
    r = client.post("/api/templates", json={"kind": "appraisal", "name": "OJT Appraisal"}, headers=EDITOR_HEADERS)
    assert r.status_code == 201
    r = client.post(
        "/api/template/appraisal/categories",
        json={"name": "Communication", "display_order": 0},
        headers=EDITOR_HEADERS,
    )
    category_id = r.json()["categories"][0]["id"]
    r = client.post(
        "/api/template/appraisal/questions",
        json={"category_id": category_id, "questions": ["Clarity", "Responsiveness"]},
        headers=EDITOR_HEADERS,
    )
    assert r.status_code == 200
    return r.json()


def _issue(client, subject_id, **body):
    r = client.post(f"/api/grant/{subject_id}/appraisal", json=body or None, headers=EDITOR_HEADERS)
    assert r.status_code == 201, r.text
    return r.json()


def _question_ids(snapshot):
    return [q["id"] for c in snapshot["categories"] for q in c["questions"]]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_editor_routes_require_editor_role(client):
    assert client.post("/api/templates", json={"kind": "appraisal"}).status_code == 403
    r = client.post(
        "/api/templates",
        json={"kind": "appraisal"},
        headers={"X-Actor-Id": "s-1", "X-Actor-Role": "student"},
    )
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "forbidden"
    assert r.json()["detail"]["question_ids"] == []
    assert client.post("/api/grant/1/appraisal").status_code == 403
    assert client.get("/api/responses/appraisal").status_code == 403


def test_template_editing_over_http(client, appraisal):
    assert appraisal["version"] == 3
    assert [q["text"] for q in appraisal["categories"][0]["questions"]] == ["Clarity", "Responsiveness"]

    latest = client.get("/api/template/appraisal/latest").json()
    assert latest == appraisal

    v2 = client.get("/api/template/appraisal/versions/2").json()
    assert v2["version"] == 2
    assert v2["categories"][0]["questions"] == []

    r = client.get("/api/template/appraisal/versions/9")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "not_found"

    category_id = appraisal["categories"][0]["id"]
    r = client.patch(
        f"/api/template/appraisal/categories/{category_id}",
        json={"name": "Communication Skills"},
        headers=EDITOR_HEADERS,
    )
    assert r.json()["version"] == 4
    assert r.json()["categories"][0]["name"] == "Communication Skills"

    r = client.put(
        "/api/template/appraisal/categories/order",
        json={"category_ids": [category_id, 999]},
        headers=EDITOR_HEADERS,
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_order"

    r = client.post(
        "/api/template/appraisal/questions",
        json={"category_id": category_id, "questions": ["Fine", ""]},
        headers=EDITOR_HEADERS,
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_question"

    summaries = client.get("/api/templates", params={"kind": "appraisal"}).json()
    assert [(t["name"], t["current_version"], t["is_active"]) for t in summaries] == [("OJT Appraisal", 4, True)]


def test_unknown_kind_and_missing_template(client):
    r = client.post("/api/templates", json={"kind": "exit-interview"}, headers=EDITOR_HEADERS)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_input"

    r = client.get("/api/template/student-feedback/latest")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "not_found"


def test_issue_resolve_sign_and_submit(client, appraisal, subject_id, notifier):
    grant = _issue(client, subject_id, recipient="j.reyes@northwind.example")
    code = grant["code"]
    assert grant["bound_version"] == 3
    assert grant["link"].endswith(f"/appraisal?code={code}")
    assert notifier.sent == [("j.reyes@northwind.example", code, grant["link"])]

    view = client.get(f"/api/grant/{code}").json()
    assert view["template"] == appraisal
    assert view["subject"]["student_name"] == "Maria Santos"

    r = client.post(f"/api/grant/{code}/signature", files={"file": ("sig.png", PNG, "image/png")})
    assert r.status_code == 201
    signature = r.json()
    assert signature["ref"].startswith("blob://")
    assert signature["url"].startswith("http://testserver/blobs/")

    clarity, responsiveness = _question_ids(appraisal)

    r = client.post(
        f"/api/grant/{code}/response",
        json={"answers": {str(clarity): 5}, "signature_ref": signature["ref"]},
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "missing_answers"
    assert r.json()["detail"]["question_ids"] == [responsiveness]

    r = client.post(
        f"/api/grant/{code}/response",
        json={"answers": {str(clarity): 5, str(responsiveness): 4}},
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "missing_signature"

    r = client.post(
        f"/api/grant/{code}/response",
        json={
            "answers": {str(clarity): 5, str(responsiveness): 4},
            "signature_ref": signature["ref"],
            "comments": "Dependable.",
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["aggregate"] == 9
    assert body["total_points"] == 9
    assert body["bound_version"] == 3
    assert body["signature_url"] == signature["url"]
    assert [a["question"] for a in body["answers"]] == ["Clarity", "Responsiveness"]

    r = client.post(
        f"/api/grant/{code}/response",
        json={"answers": {str(clarity): 1, str(responsiveness): 1}, "signature_ref": signature["ref"]},
    )
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "already_submitted"

    r = client.get(f"/api/grant/{code}")
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "already_consumed"


def test_failed_commit_sends_no_access_link(client, appraisal, subject_id, notifier, SessionLocal, monkeypatch):
    def locked_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(Session, "commit", locked_commit)
    r = client.post(
        f"/api/grant/{subject_id}/appraisal",
        json={"recipient": "sup@example.com"},
        headers=EDITOR_HEADERS,
    )
    monkeypatch.undo()

    assert r.status_code == 500
    assert r.json()["detail"]["code"] == "database_error"
    assert notifier.sent == []
    with SessionLocal() as s:
        assert s.query(AccessGrantORM).count() == 0


def test_unexpected_errors_use_the_error_shape(SessionLocal, monkeypatch):
    app = create_application()

    def broken_list_templates(*args, **kwargs):
        raise KeyError("kind")

    def override_get_db_session():
        with SessionLocal() as s:
            yield s

    monkeypatch.setattr(template_service, "list_templates", broken_list_templates)
    app.dependency_overrides[get_db_session] = override_get_db_session
    with TestClient(app, raise_server_exceptions=False) as test_client:
        r = test_client.get("/api/templates")

    assert r.status_code == 500
    assert r.json()["detail"]["code"] == "internal_error"
    assert "missing" in r.json()["detail"]["message"]


def test_signature_upload_rejects_bad_files(client, appraisal, subject_id):
    code = _issue(client, subject_id)["code"]
    r = client.post(f"/api/grant/{code}/signature", files={"file": ("sig.txt", b"hello", "text/plain")})
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_upload"

    r = client.post("/api/grant/nope/signature", files={"file": ("sig.png", PNG, "image/png")})
    assert r.status_code == 404


def test_expired_and_unknown_codes(client, appraisal, subject_id):
    old = _issue(client, subject_id)["code"]
    new = _issue(client, subject_id)["code"]

    r = client.get(f"/api/grant/{old}")
    assert r.status_code == 410
    assert r.json()["detail"]["code"] == "expired"
    assert client.get(f"/api/grant/{new}").status_code == 200

    r = client.post(f"/api/grant/{new}/expire", headers=EDITOR_HEADERS)
    assert r.status_code == 200
    assert r.json()["status"] == "expired"
    assert client.get(f"/api/grant/{new}").status_code == 410

    r = client.get("/api/grant/not-a-code")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "invalid_code"

    assert client.post("/api/grant/777/appraisal", headers=EDITOR_HEADERS).status_code == 404


def test_response_queries_and_exports(client, appraisal, subject_id):
    r = client.get(f"/api/response/{subject_id}/appraisal/latest")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "not_found"

    unanswered = client.get("/api/responses/appraisal/unanswered", headers=EDITOR_HEADERS).json()
    assert [s["subject_id"] for s in unanswered] == [subject_id]

    code = _issue(client, subject_id)["code"]
    clarity, responsiveness = _question_ids(appraisal)
    r = client.post(
        f"/api/grant/{code}/response",
        json={"answers": {str(clarity): 3, str(responsiveness): 2}, "signature_ref": "sig://paper-form"},
    )
    assert r.status_code == 201
    response_id = r.json()["id"]
    assert r.json()["signature_url"] is None

    latest = client.get(f"/api/response/{subject_id}/appraisal/latest").json()
    assert latest["id"] == response_id
    assert latest["aggregate"] == 5

    detail = client.get(f"/api/response/{response_id}", headers=EDITOR_HEADERS).json()
    assert detail["grant_code"] == code
    assert client.get("/api/response/9999", headers=EDITOR_HEADERS).status_code == 404

    listed = client.get("/api/responses/appraisal", headers=EDITOR_HEADERS).json()
    assert [x["id"] for x in listed] == [response_id]
    filtered = client.get(
        "/api/responses/appraisal", params={"subject_id": 999}, headers=EDITOR_HEADERS
    ).json()
    assert filtered == []
    assert client.get("/api/responses/appraisal/unanswered", headers=EDITOR_HEADERS).json() == []

    exported = client.get("/api/responses/appraisal/export.json", headers=EDITOR_HEADERS).json()
    assert exported["kind"] == "appraisal"
    assert exported["response_count"] == 1
    assert [row["Answer"] for row in exported["answers"]] == [3, 2]
    assert exported["answers"][0]["Question"] == "Clarity"

    r = client.get("/api/responses/appraisal/export.xlsx", headers=EDITOR_HEADERS)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "appraisal_responses.xlsx" in r.headers["content-disposition"]
    assert r.content[:2] == b"PK"
