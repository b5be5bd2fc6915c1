"""
Attempt lifecycle.

    NOT_STARTED -> IN_PROGRESS -> SUBMITTED
                   IN_PROGRESS -> LOCKED -> IN_PROGRESS   (admin unlock)
    SUBMITTED / LOCKED -> NOT_STARTED                    (admin reset)

There is no scheduler. Every entry point first runs the evaluate-and-advance
step (``advance``) which submits an attempt whose deadline has passed, and
commits that transition on its own so it survives whatever the operation
decides next. Each operation then re-reads the attempt row under
``select_for_update`` and applies its transition in the same transaction.

The session lock token is a separate concern from the LOCKED status: it names
the browser tab that currently owns an in-progress attempt. Only its digest is
stored; callers present the raw token on every mutating call.
"""
import logging
from collections import namedtuple
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from cores.audit import record_event
from cores.models import AuditLog
from exams.models import ExamAssignment, Question
from users.credentials import digest_lock_token, generate_lock_token, lock_token_matches, verify_secret
from .exceptions import (
    AlreadySubmitted, AttemptHasAnswers, AttemptLockedByAdmin, AuthorizationDenied,
    ConcurrencyConflict, InvalidAnswerValue, InvalidState, NotFound,
)
from .grading import coerce_choice
from .models import Answer, Attempt, Result
from .results import regenerate_attempt_result

logger = logging.getLogger(__name__)

Status = Attempt.Status

VIOLATION_KINDS = ("TAB_HIDDEN", "FULLSCREEN_EXIT", "COPY", "PASTE", "CUT", "CONTEXT_MENU")
ADMIN_TERMINATE = "ADMIN_TERMINATE"
# Answer value omitted by the caller: keep whatever is stored
NOT_SENT = object()

EntryOutcome = namedtuple('EntryOutcome', ['attempt', 'lock_token', 'created'])
AttemptState = namedtuple('AttemptState', ['exam', 'attempt', 'answers'])


def _platform_setting(name):
    return settings.EXAM_PLATFORM[name]


# --- Deadline -----------------------------------------------------------------

def deadline_for(attempt, duration_minutes):
    if attempt.started_at is None:
        return None
    return attempt.started_at + timedelta(minutes=duration_minutes)


def deadline_changes(attempt, duration_minutes, now):
    """
    Field updates that bring an expired in-progress attempt to SUBMITTED.
    Same effect as a student submit at ``now``, except the time taken is
    pinned to the full duration.
    """
    if attempt.status != Status.IN_PROGRESS:
        return {}
    deadline = deadline_for(attempt, duration_minutes)
    if deadline is None or now < deadline:
        return {}
    return {
        'status': Status.SUBMITTED,
        'submitted_at': now,
        'time_taken_seconds': duration_minutes * 60,
        'lock_token_hash': None,
        'lock_updated_at': now,
    }


def _apply(attempt, changes):
    for name, value in changes.items():
        setattr(attempt, name, value)
    attempt.save()


def _grade_quietly(attempt):
    # Grading never undoes a submission
    try:
        with transaction.atomic():
            regenerate_attempt_result(attempt)
    except Exception:
        logger.exception("grade_on_submit_failed attempt_id=%s", attempt.pk)


def advance(attempt, now):
    """Apply the deadline transition to a loaded attempt. Returns True if it fired."""
    changes = deadline_changes(attempt, attempt.exam.duration_minutes, now)
    if not changes:
        return False
    _apply(attempt, changes)
    logger.info("auto_submit attempt_id=%s exam_id=%s", attempt.pk, attempt.exam_id)
    record_event(
        AuditLog.Action.AUTO_SUBMIT,
        exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=attempt.student_id,
        time_taken_seconds=attempt.time_taken_seconds,
    )
    _grade_quietly(attempt)
    return True


def _select_attempt(attempt_id, student=None):
    attempt = (
        Attempt.objects.select_for_update(of=('self',))
        .select_related('exam')
        .filter(pk=attempt_id)
        .first()
    )
    if attempt is None or (student is not None and attempt.student_id != student.pk):
        raise NotFound("NOT_FOUND", "Attempt not found.")
    return attempt


def _checkpoint(attempt_id, student=None, now=None):
    """Commit any pending deadline transition before the operation runs."""
    now = now or timezone.now()
    with transaction.atomic():
        advance(_select_attempt(attempt_id, student), now)
    return now


def _open(attempt_id, now, student=None):
    """Re-read the row locked for the caller's transaction."""
    attempt = _select_attempt(attempt_id, student)
    advance(attempt, now)
    return attempt


def enforce_exam_deadlines(exam, now=None):
    now = now or timezone.now()
    expired = list(
        Attempt.objects.filter(
            exam=exam, status=Status.IN_PROGRESS,
            started_at__lte=now - timedelta(minutes=exam.duration_minutes),
        ).values_list('pk', flat=True)
    )
    for attempt_id in expired:
        _checkpoint(attempt_id, now=now)
    return len(expired)


# --- Guards -------------------------------------------------------------------

def _verify_lock(attempt, presented_token):
    if attempt.lock_token_hash and not lock_token_matches(presented_token, attempt.lock_token_hash):
        logger.warning("lock_conflict attempt_id=%s", attempt.pk)
        raise ConcurrencyConflict()


def _require_in_progress(attempt):
    if attempt.status == Status.LOCKED:
        raise AttemptLockedByAdmin(locked_reason=attempt.locked_reason)
    if attempt.status != Status.IN_PROGRESS:
        raise InvalidState()


def _assigned_exam(exam_id, student):
    assignment = ExamAssignment.objects.select_related('exam').filter(exam_id=exam_id, student=student).first()
    if assignment is None or not assignment.exam.is_active:
        raise AuthorizationDenied()
    return assignment.exam


def _lock(attempt, reason, now):
    attempt.status = Status.LOCKED
    attempt.locked_at = now
    attempt.locked_reason = reason
    attempt.lock_token_hash = None
    attempt.lock_updated_at = now
    attempt.save()


# --- Student operations -------------------------------------------------------

def enter_exam(exam_id, student, exam_password, presented_token=None):
    """
    Password-gated entry. Creates the attempt on first entry, resumes it for
    the tab holding the lock token, and mints a fresh token when no tab owns
    the session. The returned ``lock_token`` is None for submitted attempts.
    """
    exam = _assigned_exam(exam_id, student)
    if not verify_secret(exam_password, exam.exam_password_hash):
        raise AuthorizationDenied("INVALID_EXAM_PASSWORD", "The exam password is incorrect.")

    existing_id = Attempt.objects.filter(exam=exam, student=student).values_list('pk', flat=True).first()
    now = _checkpoint(existing_id, student) if existing_id else timezone.now()

    token = generate_lock_token()
    with transaction.atomic():
        attempt, created = Attempt.objects.select_for_update().get_or_create(
            exam=exam, student=student,
            defaults={
                'status': Status.IN_PROGRESS,
                'started_at': now,
                'lock_token_hash': digest_lock_token(token),
                'lock_updated_at': now,
            },
        )
        if not created:
            advance(attempt, now)
            if attempt.status == Status.SUBMITTED:
                return EntryOutcome(attempt, None, False)
            if attempt.status == Status.LOCKED:
                raise AttemptLockedByAdmin(locked_reason=attempt.locked_reason)
            if attempt.status == Status.IN_PROGRESS and attempt.lock_token_hash:
                _verify_lock(attempt, presented_token)
                token = presented_token
            if attempt.status == Status.NOT_STARTED:
                attempt.status = Status.IN_PROGRESS
                attempt.started_at = now
            attempt.lock_token_hash = digest_lock_token(token)
            attempt.lock_updated_at = now
            attempt.save()

        record_event(
            AuditLog.Action.ENTER_EXAM, actor_id=student.pk,
            exam_id=exam.pk, attempt_id=attempt.pk, target_user_id=student.pk,
            created=created,
        )

    logger.info("enter attempt_id=%s exam_id=%s student_id=%s created=%s", attempt.pk, exam.pk, student.pk, created)
    return EntryOutcome(attempt, token, created)


def attempt_state(exam_id, student, presented_token=None):
    exam = _assigned_exam(exam_id, student)
    attempt_id = Attempt.objects.filter(exam=exam, student=student).values_list('pk', flat=True).first()
    if attempt_id is None:
        raise NotFound("NO_ATTEMPT", "The exam has not been entered yet.")

    _checkpoint(attempt_id, student)
    attempt = Attempt.objects.select_related('exam').get(pk=attempt_id)
    if attempt.status == Status.IN_PROGRESS:
        _verify_lock(attempt, presented_token)

    answers = list(attempt.answers.select_related('question').order_by('question__order'))
    return AttemptState(exam, attempt, answers)


def record_answer(attempt_id, student, presented_token, question_id, value=NOT_SENT, flagged=None):
    """
    Upsert one answer. ``value=None`` clears the choice; leaving ``value`` out
    (a flag-only update) keeps the stored choice.
    """
    defaults = {}
    if value is not NOT_SENT:
        try:
            choice = coerce_choice(value)
        except ValueError:
            raise InvalidAnswerValue() from None
        defaults['value'] = {'choice': choice.choice} if choice is not None else None

    now = _checkpoint(attempt_id, student)
    with transaction.atomic():
        attempt = _open(attempt_id, now, student)
        _require_in_progress(attempt)
        _verify_lock(attempt, presented_token)

        question = Question.objects.filter(pk=question_id, exam_id=attempt.exam_id).first()
        if question is None:
            raise NotFound("QUESTION_NOT_FOUND", "Question not found.")

        defaults['answered_at'] = now
        if flagged is not None:
            defaults['flagged'] = flagged
        answer, _ = Answer.objects.update_or_create(attempt=attempt, question=question, defaults=defaults)

    return answer


def _submit(attempt, now):
    elapsed = int((now - attempt.started_at).total_seconds()) if attempt.started_at else 0
    attempt.status = Status.SUBMITTED
    attempt.submitted_at = now
    attempt.time_taken_seconds = max(0, elapsed)
    attempt.lock_token_hash = None
    attempt.lock_updated_at = now
    attempt.save()


def submit_attempt(attempt_id, student, presented_token):
    """Student submission. Submitting an already submitted attempt is a no-op."""
    now = _checkpoint(attempt_id, student)
    with transaction.atomic():
        attempt = _open(attempt_id, now, student)
        if attempt.status == Status.SUBMITTED:
            return attempt
        _require_in_progress(attempt)
        _verify_lock(attempt, presented_token)

        _submit(attempt, now)
        record_event(
            AuditLog.Action.SUBMIT_ATTEMPT, actor_id=student.pk,
            exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=student.pk,
            time_taken_seconds=attempt.time_taken_seconds,
        )
        _grade_quietly(attempt)

    logger.info("submit attempt_id=%s time_taken=%s", attempt.pk, attempt.time_taken_seconds)
    return attempt


def report_violation(attempt_id, student, presented_token, kind):
    """
    Record a client-reported proctoring violation. The attempt is locked once
    the server-side strike count reaches VIOLATION_LOCK_THRESHOLD.
    """
    if kind not in VIOLATION_KINDS:
        raise InvalidState("INVALID_VIOLATION_KIND", "Unknown violation kind.")

    now = _checkpoint(attempt_id, student)
    with transaction.atomic():
        attempt = _open(attempt_id, now, student)
        if attempt.status == Status.SUBMITTED:
            raise AlreadySubmitted()
        if attempt.status == Status.LOCKED:
            return attempt
        if attempt.status != Status.IN_PROGRESS:
            raise InvalidState()
        _verify_lock(attempt, presented_token)

        attempt.violation_count += 1
        if attempt.violation_count >= _platform_setting('VIOLATION_LOCK_THRESHOLD'):
            _lock(attempt, kind, now)
            operation = "AUTO_LOCK"
        else:
            attempt.save()
            operation = "STRIKE"

        record_event(
            AuditLog.Action.CHEAT_VIOLATION,
            exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=student.pk,
            operation=operation, kind=kind, strikes=attempt.violation_count,
        )

    logger.warning("violation attempt_id=%s kind=%s strikes=%s status=%s", attempt.pk, kind, attempt.violation_count, attempt.status)
    return attempt


# --- Admin operations ---------------------------------------------------------

def admin_unlock(attempt_id, admin):
    """Re-open a locked attempt and drop session ownership so the next entry mints a fresh token."""
    now = _checkpoint(attempt_id)
    with transaction.atomic():
        attempt = _open(attempt_id, now)
        previous = attempt.status
        if attempt.status == Status.LOCKED:
            attempt.status = Status.IN_PROGRESS
            attempt.locked_at = None
            attempt.locked_reason = None
            attempt.violation_count = 0
        attempt.lock_token_hash = None
        attempt.lock_updated_at = now
        attempt.save()

        record_event(
            AuditLog.Action.ADMIN_UNLOCK_ATTEMPT, actor_id=admin.pk,
            exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=attempt.student_id,
            previous_status=previous,
        )

    logger.info("admin_unlock attempt_id=%s previous=%s", attempt.pk, previous)
    return attempt


def admin_terminate(attempt_id, admin):
    now = _checkpoint(attempt_id)
    with transaction.atomic():
        attempt = _open(attempt_id, now)
        if attempt.status == Status.SUBMITTED:
            raise AlreadySubmitted()
        if attempt.status == Status.LOCKED:
            return attempt
        if attempt.status != Status.IN_PROGRESS:
            raise InvalidState()

        _lock(attempt, ADMIN_TERMINATE, now)
        record_event(
            AuditLog.Action.ADMIN_TERMINATE_ATTEMPT, actor_id=admin.pk,
            exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=attempt.student_id,
        )

    logger.info("admin_terminate attempt_id=%s", attempt.pk)
    return attempt


def admin_reset(attempt_id, admin):
    """
    Return a locked attempt, or a submitted attempt with no answers, to
    NOT_STARTED. Answers, result and attempt fields go in one transaction.
    """
    now = _checkpoint(attempt_id)
    with transaction.atomic():
        attempt = _open(attempt_id, now)
        if attempt.status not in (Status.LOCKED, Status.SUBMITTED):
            raise InvalidState("ATTEMPT_NOT_RESETTABLE", "Only locked or submitted attempts can be reset.")
        if attempt.status == Status.SUBMITTED and attempt.answers.exists():
            raise AttemptHasAnswers()

        reason = "LOCKED_ATTEMPT" if attempt.status == Status.LOCKED else "SUBMITTED_WITHOUT_ANSWERS"
        Answer.objects.filter(attempt=attempt).delete()
        Result.objects.filter(attempt=attempt).delete()

        attempt.status = Status.NOT_STARTED
        attempt.started_at = None
        attempt.submitted_at = None
        attempt.time_taken_seconds = None
        attempt.locked_at = None
        attempt.locked_reason = None
        attempt.violation_count = 0
        attempt.lock_token_hash = None
        attempt.lock_updated_at = None
        attempt.save()

        record_event(
            AuditLog.Action.ADMIN_RESET_ATTEMPT, actor_id=admin.pk,
            exam_id=attempt.exam_id, attempt_id=attempt.pk, target_user_id=attempt.student_id,
            reason=reason,
        )

    logger.info("admin_reset attempt_id=%s reason=%s", attempt.pk, reason)
    return attempt
