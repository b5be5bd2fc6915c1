from datetime import timedelta

import pytest

from assessments import lifecycle
from assessments.exceptions import (
    AlreadySubmitted, AttemptHasAnswers, AttemptLockedByAdmin, AuthorizationDenied,
    ConcurrencyConflict, InvalidAnswerValue, InvalidState, NotFound,
)
from assessments.models import Answer, Attempt, Result
from cores.models import AuditLog
from exams.models import Exam, Question
from .conftest import EXAM_PASSWORD

pytestmark = pytest.mark.django_db

Status = Attempt.Status


def _reload(attempt):
    return Attempt.objects.get(pk=attempt.pk)


# --- entry --------------------------------------------------------------------

def test_first_entry_creates_in_progress_attempt_with_lock(entered):
    attempt = _reload(entered.attempt)

    assert entered.created is True
    assert attempt.status == Status.IN_PROGRESS
    assert attempt.started_at is not None
    assert entered.lock_token
    assert attempt.lock_token_hash and attempt.lock_token_hash != entered.lock_token


def test_wrong_password_does_not_touch_attempts(assigned, student):
    with pytest.raises(AuthorizationDenied) as exc:
        lifecycle.enter_exam(assigned.pk, student, "nope")

    assert exc.value.get_codes() == "INVALID_EXAM_PASSWORD"
    assert not Attempt.objects.exists()


def test_unassigned_or_inactive_exam_is_denied(exam, student, assigned, django_user_model):
    outsider = django_user_model.objects.create_user(username="Eve", password="x", role="STUDENT")
    with pytest.raises(AuthorizationDenied):
        lifecycle.enter_exam(exam.pk, outsider, EXAM_PASSWORD)

    exam.is_active = False
    exam.save()
    with pytest.raises(AuthorizationDenied):
        lifecycle.enter_exam(exam.pk, student, EXAM_PASSWORD)


def test_reentry_requires_the_lock_token(entered, assigned, student):
    with pytest.raises(ConcurrencyConflict):
        lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)
    with pytest.raises(ConcurrencyConflict):
        lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD, presented_token="forged")

    resumed = lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD, presented_token=entered.lock_token)

    assert resumed.created is False
    assert resumed.attempt.pk == entered.attempt.pk
    assert resumed.lock_token == entered.lock_token
    assert Attempt.objects.filter(exam=assigned, student=student).count() == 1


def test_reentry_after_submission_is_idempotent(entered, assigned, student):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    outcome = lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)

    assert outcome.attempt.status == Status.SUBMITTED
    assert outcome.lock_token is None


def test_locked_attempt_refuses_entry_with_reason(entered, assigned, student):
    lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "TAB_HIDDEN")

    with pytest.raises(AttemptLockedByAdmin) as exc:
        lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD, presented_token=entered.lock_token)

    assert exc.value.extra == {"locked_reason": "TAB_HIDDEN"}


# --- answers ------------------------------------------------------------------

def test_record_answer_upserts_last_write_wins(entered, questions, student):
    q1, _ = questions
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, "A")
    answer = lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, {"choice": "B"}, flagged=True)

    assert Answer.objects.filter(attempt=entered.attempt, question=q1).count() == 1
    assert answer.value == {"choice": "B"}
    assert answer.flagged is True

    # flagged is left alone when not sent
    answer = lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, "C")
    assert answer.flagged is True
    assert not Result.objects.exists()


def test_flag_only_update_keeps_the_stored_choice(entered, questions, student):
    q1, _ = questions
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, "B")

    answer = lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, flagged=True)

    assert answer.flagged is True
    assert Answer.objects.get(pk=answer.pk).value == {"choice": "B"}

    # An explicit None still clears the choice
    answer = lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, None)
    assert Answer.objects.get(pk=answer.pk).value is None


def test_record_answer_from_non_holder_is_a_conflict(entered, questions, student):
    q1, _ = questions

    with pytest.raises(ConcurrencyConflict):
        lifecycle.record_answer(entered.attempt.pk, student, None, q1.pk, "B")
    with pytest.raises(ConcurrencyConflict):
        lifecycle.record_answer(entered.attempt.pk, student, "stale-token", q1.pk, "B")

    assert not Answer.objects.exists()


def test_record_answer_rejects_foreign_questions_and_payloads(entered, student):
    foreign = Question.objects.create(
        exam=Exam.objects.create(title="Other", academic_year=2026, duration_minutes=5, exam_password_hash="x"),
        question_type="TRUE_FALSE", prompt="?", options=["true", "false"], correct={"choice": "true"}, order=1,
    )

    with pytest.raises(NotFound):
        lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, foreign.pk, "true")
    with pytest.raises(InvalidAnswerValue):
        lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, foreign.pk, 42)


def test_other_students_attempt_is_not_found(entered, other_student, questions):
    with pytest.raises(NotFound):
        lifecycle.record_answer(entered.attempt.pk, other_student, entered.lock_token, questions[0].pk, "B")


# --- submission and deadline --------------------------------------------------

def test_submit_is_idempotent_and_grades(entered, questions, student):
    q1, q2 = questions
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q1.pk, "B")
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, q2.pk, "false")

    first = lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)
    second = lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    attempt = _reload(first)
    assert first.status == second.status == Status.SUBMITTED
    assert attempt.submitted_at == second.submitted_at
    assert attempt.time_taken_seconds >= 0
    assert attempt.lock_token_hash is None
    assert (attempt.result.score, attempt.result.max_score) == (2, 3)


def test_submit_requires_lock_ownership(entered, student):
    with pytest.raises(ConcurrencyConflict):
        lifecycle.submit_attempt(entered.attempt.pk, student, None)

    assert _reload(entered.attempt).status == Status.IN_PROGRESS


def test_answering_after_submission_is_invalid(entered, questions, student):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    with pytest.raises(InvalidState):
        lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, questions[0].pk, "B")


def test_expired_attempt_is_submitted_on_read(entered, assigned, student, questions, expire):
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, questions[0].pk, "B")
    expire(entered.attempt)

    state = lifecycle.attempt_state(assigned.pk, student)

    assert state.attempt.status == Status.SUBMITTED
    assert state.attempt.time_taken_seconds == 60 * 60
    # Stamped when the expiry was noticed, not back-dated to the deadline
    assert state.attempt.submitted_at - state.attempt.started_at > timedelta(minutes=60)
    assert state.attempt.lock_token_hash is None
    assert Result.objects.get(attempt=state.attempt).score == 2
    assert AuditLog.objects.filter(action=AuditLog.Action.AUTO_SUBMIT, attempt_id=state.attempt.pk).count() == 1


def test_expired_attempt_is_submitted_even_when_the_mutation_fails(entered, student, questions, expire):
    expire(entered.attempt)

    with pytest.raises(InvalidState):
        lifecycle.record_answer(entered.attempt.pk, student, None, questions[0].pk, "B")

    attempt = _reload(entered.attempt)
    assert attempt.status == Status.SUBMITTED
    assert attempt.time_taken_seconds == 3600


def test_submit_racing_the_deadline_is_a_no_op(entered, student, expire):
    expire(entered.attempt)

    attempt = lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    assert attempt.status == Status.SUBMITTED
    assert attempt.time_taken_seconds == 3600


# --- violations ---------------------------------------------------------------

def test_violation_locks_and_repeats_are_idempotent(entered, student):
    first = lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "FULLSCREEN_EXIT")
    second = lifecycle.report_violation(entered.attempt.pk, student, None, "FULLSCREEN_EXIT")

    assert first.status == second.status == Status.LOCKED
    assert first.locked_reason == "FULLSCREEN_EXIT"
    assert second.locked_at == first.locked_at
    assert _reload(first).lock_token_hash is None
    assert AuditLog.objects.filter(action=AuditLog.Action.CHEAT_VIOLATION).count() == 1


def test_violation_from_stale_tab_is_a_conflict(entered, student):
    with pytest.raises(ConcurrencyConflict):
        lifecycle.report_violation(entered.attempt.pk, student, "stale", "COPY")

    assert _reload(entered.attempt).status == Status.IN_PROGRESS


def test_violation_after_submission_is_rejected(entered, student):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    with pytest.raises(AlreadySubmitted):
        lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "PASTE")


def test_violation_threshold_is_counted_server_side(settings, entered, student):
    settings.EXAM_PLATFORM = {**settings.EXAM_PLATFORM, "VIOLATION_LOCK_THRESHOLD": 3}

    for _ in range(2):
        attempt = lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "TAB_HIDDEN")
        assert attempt.status == Status.IN_PROGRESS
    attempt = lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "CUT")

    assert attempt.status == Status.LOCKED
    assert attempt.violation_count == 3
    assert attempt.locked_reason == "CUT"


# --- admin --------------------------------------------------------------------

def test_admin_unlock_reopens_and_requires_fresh_session(entered, assigned, student, admin_user):
    lifecycle.report_violation(entered.attempt.pk, student, entered.lock_token, "TAB_HIDDEN")

    attempt = lifecycle.admin_unlock(entered.attempt.pk, admin_user)

    assert attempt.status == Status.IN_PROGRESS
    assert attempt.locked_at is None and attempt.locked_reason is None
    assert attempt.lock_token_hash is None

    outcome = lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)
    assert outcome.lock_token and outcome.lock_token != entered.lock_token
    assert outcome.attempt.started_at == entered.attempt.started_at


def test_admin_unlock_on_live_attempt_revokes_the_session(entered, student, admin_user, questions):
    lifecycle.admin_unlock(entered.attempt.pk, admin_user)

    # No token stored: nothing to conflict with until the next entry
    answer = lifecycle.record_answer(entered.attempt.pk, student, None, questions[0].pk, "A")
    assert answer.value == {"choice": "A"}


def test_admin_terminate(entered, student, admin_user):
    attempt = lifecycle.admin_terminate(entered.attempt.pk, admin_user)
    again = lifecycle.admin_terminate(entered.attempt.pk, admin_user)

    assert attempt.status == again.status == Status.LOCKED
    assert attempt.locked_reason == lifecycle.ADMIN_TERMINATE
    assert again.locked_at == attempt.locked_at


def test_admin_terminate_rejects_submitted(entered, student, admin_user):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    with pytest.raises(AlreadySubmitted):
        lifecycle.admin_terminate(entered.attempt.pk, admin_user)


def test_admin_reset_refuses_to_discard_submitted_answers(entered, student, admin_user, questions):
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, questions[0].pk, "B")
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    with pytest.raises(AttemptHasAnswers):
        lifecycle.admin_reset(entered.attempt.pk, admin_user)

    assert _reload(entered.attempt).status == Status.SUBMITTED
    assert Answer.objects.filter(attempt=entered.attempt).count() == 1


def test_admin_reset_of_empty_submission(entered, student, admin_user):
    lifecycle.submit_attempt(entered.attempt.pk, student, entered.lock_token)

    attempt = lifecycle.admin_reset(entered.attempt.pk, admin_user)

    assert attempt.status == Status.NOT_STARTED
    assert not Result.objects.filter(attempt=attempt).exists()
    assert AuditLog.objects.get(action=AuditLog.Action.ADMIN_RESET_ATTEMPT).meta == {"reason": "SUBMITTED_WITHOUT_ANSWERS"}


def test_admin_reset_of_locked_attempt_clears_everything(entered, assigned, student, admin_user, questions):
    lifecycle.record_answer(entered.attempt.pk, student, entered.lock_token, questions[0].pk, "B")
    lifecycle.admin_terminate(entered.attempt.pk, admin_user)

    attempt = lifecycle.admin_reset(entered.attempt.pk, admin_user)

    assert attempt.status == Status.NOT_STARTED
    assert attempt.started_at is None and attempt.locked_at is None and attempt.lock_token_hash is None
    assert not Answer.objects.filter(attempt=attempt).exists()

    outcome = lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)
    assert outcome.attempt.pk == attempt.pk
    assert outcome.attempt.status == Status.IN_PROGRESS
    assert outcome.attempt.started_at is not None


def test_admin_reset_rejects_live_attempt(entered, admin_user):
    with pytest.raises(InvalidState) as exc:
        lifecycle.admin_reset(entered.attempt.pk, admin_user)

    assert exc.value.get_codes() == "ATTEMPT_NOT_RESETTABLE"


def test_admin_operations_on_missing_attempt(admin_user, db):
    with pytest.raises(NotFound):
        lifecycle.admin_unlock(999, admin_user)
