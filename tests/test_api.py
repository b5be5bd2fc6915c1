import pytest
from django.db import DatabaseError
from rest_framework.test import APIClient

from assessments import lifecycle
from assessments.lock_credentials import cookie_name
from assessments.models import Attempt
from cores.models import AuditLog
from .conftest import EXAM_PASSWORD

pytestmark = pytest.mark.django_db


def _enter(client, exam, password=EXAM_PASSWORD):
    return client.post("/api/student/exams/enter/", {"exam_id": exam.pk, "exam_password": password}, format="json")


def _answer(client, attempt_id, question, value, **extra):
    return client.post(
        f"/api/student/attempts/{attempt_id}/answer/", {"question_id": question.pk, "value": value}, format="json", **extra,
    )


def test_login_with_student_id(student):
    response = APIClient().post("/api/auth/login/", {"username": "1001", "password": "Ada@1001"}, format="json")

    assert response.status_code == 200
    assert response.data["user"]["role"] == "STUDENT"
    assert "access" in response.data
    assert AuditLog.objects.filter(action=AuditLog.Action.LOGIN, actor=student).exists()


def test_enter_sets_signed_lock_cookie(student_client, assigned, questions):
    response = _enter(student_client, assigned)

    assert response.status_code == 201
    attempt_id = response.data["attempt_id"]
    cookie = response.cookies[cookie_name(attempt_id)]
    assert cookie["httponly"]
    assert cookie.value == response.data["lock_credential"]

    state = student_client.get(f"/api/student/exams/{assigned.pk}/attempt/")
    assert state.status_code == 200
    assert state.data["attempt"]["status"] == "IN_PROGRESS"
    assert "correct" not in state.data["exam"]["questions"][0]
    assert "lock_token_hash" not in state.data["attempt"]


def test_wrong_password_is_forbidden(student_client, assigned):
    response = _enter(student_client, assigned, password="guess")

    assert response.status_code == 403
    assert response.data["error"] == "INVALID_EXAM_PASSWORD"


def test_second_device_is_rejected(student_client, second_device, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]

    assert _enter(second_device, assigned).status_code == 409
    response = _answer(second_device, attempt_id, questions[0], "B")
    assert response.status_code == 409
    assert response.data["error"] == "ATTEMPT_LOCKED"

    assert _answer(student_client, attempt_id, questions[0], "B").status_code == 200


def test_header_credential_and_tampering(student_client, second_device, assigned, questions):
    entered = _enter(student_client, assigned)
    attempt_id, credential = entered.data["attempt_id"], entered.data["lock_credential"]

    ok = _answer(second_device, attempt_id, questions[0], "C", HTTP_X_ATTEMPT_LOCK=credential)
    assert ok.status_code == 200
    assert ok.data["value"] == {"choice": "C"}

    tampered = _answer(second_device, attempt_id, questions[0], "C", HTTP_X_ATTEMPT_LOCK=credential[:-2] + "xx")
    assert tampered.status_code == 409


def test_credential_is_scoped_to_its_attempt(student_client, second_device, assigned, questions, other_student):
    credential = _enter(student_client, assigned).data["lock_credential"]
    other = lifecycle.enter_exam(assigned.pk, other_student, EXAM_PASSWORD)

    client = APIClient()
    client.force_authenticate(other_student)
    response = _answer(client, other.attempt.pk, questions[0], "B", HTTP_X_ATTEMPT_LOCK=credential)

    assert response.status_code == 409


def test_flagging_without_value_keeps_answer(student_client, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]
    _answer(student_client, attempt_id, questions[0], "B")

    response = student_client.post(
        f"/api/student/attempts/{attempt_id}/answer/", {"question_id": questions[0].pk, "flagged": True}, format="json",
    )

    assert response.status_code == 200
    assert response.data["flagged"] is True
    assert response.data["value"] == {"choice": "B"}


def test_invalid_answer_value(student_client, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]

    response = _answer(student_client, attempt_id, questions[0], ["A", "B"])

    assert response.status_code == 400
    assert response.data["error"] == "INVALID_ANSWER_VALUE"


def test_submit_clears_cookie_and_is_idempotent(student_client, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]
    _answer(student_client, attempt_id, questions[0], "B")

    first = student_client.post(f"/api/student/attempts/{attempt_id}/submit/")
    second = student_client.post(f"/api/student/attempts/{attempt_id}/submit/")

    assert first.status_code == second.status_code == 200
    assert first.data == {"ok": True, "status": "SUBMITTED"}
    assert first.cookies[cookie_name(attempt_id)].value == ""

    reentry = _enter(student_client, assigned)
    assert reentry.status_code == 200
    assert "lock_credential" not in reentry.data


def test_violation_locks_and_entry_reports_reason(student_client, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]

    response = student_client.post(f"/api/student/attempts/{attempt_id}/violation/", {"kind": "COPY"}, format="json")
    assert response.data["status"] == "LOCKED"

    blocked = _enter(student_client, assigned)
    assert blocked.status_code == 423
    assert blocked.data["error"] == "ATTEMPT_LOCKED_BY_ADMIN"
    assert blocked.data["locked_reason"] == "COPY"

    assert _answer(student_client, attempt_id, questions[0], "B").status_code == 423


def test_unknown_violation_kind(student_client, assigned):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]

    response = student_client.post(f"/api/student/attempts/{attempt_id}/violation/", {"kind": "SNEEZE"}, format="json")

    assert response.status_code == 400
    assert response.data["error"] == "INVALID_INPUT"


def test_students_cannot_reach_admin_endpoints(student_client, entered, assigned):
    for url in (
        f"/api/admin/attempts/{entered.attempt.pk}/unlock/",
        f"/api/admin/exams/{assigned.pk}/results/generate/",
        f"/api/admin/exams/{assigned.pk}/questions/",
    ):
        response = student_client.post(url, {}, format="json")
        assert response.status_code == 403
        assert response.data["error"] == "PERMISSION_DENIED"

    assert student_client.get(f"/api/admin/exams/{assigned.pk}/sessions/").status_code == 403


def test_admin_cannot_take_exams(admin_client, assigned):
    assert _enter(admin_client, assigned).status_code == 403


def test_admin_unlock_flow(admin_client, student_client, assigned, questions):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]
    student_client.post(f"/api/student/attempts/{attempt_id}/violation/", {"kind": "TAB_HIDDEN"}, format="json")

    response = admin_client.post(f"/api/admin/attempts/{attempt_id}/unlock/")
    assert response.status_code == 200
    assert response.data["status"] == "IN_PROGRESS"
    assert response.data["violation_count"] == 0

    fresh = _enter(student_client, assigned)
    assert fresh.status_code == 200
    assert fresh.data["lock_credential"]
    assert _answer(student_client, attempt_id, questions[0], "B").status_code == 200


def test_regenerate_endpoint(admin_client, entered, student, assigned):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    response = admin_client.post(f"/api/admin/exams/{assigned.pk}/results/generate/")

    assert response.status_code == 200
    assert response.data == {"attempts_processed": 1, "results_upserted": 1, "failures": []}
    assert AuditLog.objects.get(action=AuditLog.Action.REGENERATE_RESULTS).meta["mode"] == "MANUAL"


def test_regenerate_missing_exam(admin_client):
    response = admin_client.post("/api/admin/exams/999/results/generate/")

    assert response.status_code == 404
    assert response.data["error"] == "EXAM_NOT_FOUND"


def test_manual_grade_endpoint(admin_client, entered, student, questions):
    q1, _ = questions
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    response = admin_client.post(
        f"/api/admin/attempts/{entered.attempt.pk}/grade/", {"question_id": q1.pk, "earned": 2}, format="json",
    )
    assert response.status_code == 200
    assert response.data["score"] == 2

    too_many = admin_client.post(
        f"/api/admin/attempts/{entered.attempt.pk}/grade/", {"question_id": q1.pk, "earned": 5}, format="json",
    )
    assert too_many.status_code == 400
    assert too_many.data["error"] == "INVALID_SCORE"
    assert too_many.data["max_marks"] == 2


def test_sessions_view(admin_client, assigned, questions, student, other_student, expire):
    live = lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)
    stale = lifecycle.enter_exam(assigned.pk, other_student, EXAM_PASSWORD)
    lifecycle.record_answer(live.attempt.pk, student, live.lock_token, questions[0].pk, "A")
    expire(stale.attempt)

    response = admin_client.get(f"/api/admin/exams/{assigned.pk}/sessions/")

    assert response.status_code == 200
    data = response.data
    assert [row["attempt_id"] for row in data["in_progress"]] == [live.attempt.pk]
    row = data["in_progress"][0]
    assert row["has_active_session"] is True
    assert row["answer_count"] == 1
    assert 0 < row["remaining_seconds"] <= 3600
    assert data["locked"] == []
    assert data["exam"]["attempts_by_status"] == {"IN_PROGRESS": 1, "SUBMITTED": 1}
    assert data["exam"]["assignments"] == 2
    assert Attempt.objects.get(pk=stale.attempt.pk).status == Attempt.Status.SUBMITTED


def test_results_visibility_and_export(admin_client, student_client, entered, student, assigned):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    assert student_client.get("/api/student/results/").data == []

    assert admin_client.post(f"/api/admin/exams/{assigned.pk}/results/publish/").status_code == 200
    published = student_client.get("/api/student/results/").data
    assert len(published) == 1
    assert published[0]["exam_id"] == assigned.pk
    assert "breakdown" not in published[0]

    export = admin_client.get(f"/api/admin/exams/{assigned.pk}/results/export/")
    assert export.status_code == 200
    assert export["Content-Type"].startswith("text/csv")
    assert export.content.decode().startswith("username,student_id,")


def test_storage_failure_is_503(monkeypatch, student_client, assigned):
    attempt_id = _enter(student_client, assigned).data["attempt_id"]

    def broken(*args, **kwargs):
        raise DatabaseError("disk I/O error")

    monkeypatch.setattr(lifecycle, "submit_attempt", broken)
    response = student_client.post(f"/api/student/attempts/{attempt_id}/submit/")

    assert response.status_code == 503
    assert response.data == {"error": "STORAGE_UNAVAILABLE"}


def test_admin_question_api(admin_client, exam, questions):
    created = admin_client.post(
        f"/api/admin/exams/{exam.pk}/questions/",
        {"question_type": "MULTIPLE_CHOICE", "prompt": "Pick", "options": ["a", "b"], "correct_choice": "b"},
        format="json",
    )
    assert created.status_code == 201
    assert created.data["order"] == 3
    assert created.data["correct"] == {"choice": "b"}

    invalid = admin_client.patch(f"/api/admin/questions/{created.data['id']}/", {"options": ["a", "c"]}, format="json")
    assert invalid.status_code == 400
    assert invalid.data["error"] == "MCQ_CORRECT_INVALID"

    listed = admin_client.get(f"/api/admin/exams/{exam.pk}/questions/")
    assert [q["order"] for q in listed.data] == [1, 2, 3]


def test_admin_creates_exam_with_hashed_password(admin_client):
    response = admin_client.post(
        "/api/admin/exams/",
        {"title": "Chem", "academic_year": 2026, "duration_minutes": 30, "exam_password": "pw"},
        format="json",
    )

    assert response.status_code == 201
    assert "exam_password" not in response.data
    missing = admin_client.post("/api/admin/exams/", {"title": "X", "academic_year": 2026, "duration_minutes": 30}, format="json")
    assert missing.status_code == 400
