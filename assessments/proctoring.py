"""Read-only monitoring of live attempts for administrators."""
from django.db.models import Count
from django.utils import timezone

from exams.models import Exam
from .exceptions import NotFound
from .lifecycle import deadline_for, enforce_exam_deadlines
from .models import Attempt


def _student_summary(student):
    return {
        'id': student.pk,
        'username': student.username,
        'first_name': student.first_name,
        'last_name': student.last_name,
        'student_id': student.student_id,
    }


def exam_sessions(exam_id, now=None):
    """
    Exam summary plus in-progress attempts (with remaining time) and locked
    attempts (with reason). Expired attempts are auto-submitted before the
    lists are built, so nothing past its deadline is reported as live.
    """
    exam = Exam.objects.filter(pk=exam_id).annotate(
        assignment_count=Count('assignments', distinct=True),
        question_count=Count('questions', distinct=True),
    ).first()
    if exam is None:
        raise NotFound("EXAM_NOT_FOUND", "Exam not found.")

    now = now or timezone.now()
    enforce_exam_deadlines(exam, now)

    attempts = Attempt.objects.filter(exam=exam).select_related('student').annotate(answer_count=Count('answers'))

    in_progress = []
    for attempt in attempts.filter(status=Attempt.Status.IN_PROGRESS).order_by('-lock_updated_at', '-updated_at'):
        deadline = deadline_for(attempt, exam.duration_minutes)
        in_progress.append({
            'attempt_id': attempt.pk,
            'student': _student_summary(attempt.student),
            'started_at': attempt.started_at,
            'deadline': deadline,
            'remaining_seconds': max(0, int((deadline - now).total_seconds())) if deadline else None,
            'lock_updated_at': attempt.lock_updated_at,
            'has_active_session': bool(attempt.lock_token_hash),
            'violation_count': attempt.violation_count,
            'answer_count': attempt.answer_count,
        })

    locked = [
        {
            'attempt_id': attempt.pk,
            'student': _student_summary(attempt.student),
            'locked_at': attempt.locked_at,
            'locked_reason': attempt.locked_reason,
            'answer_count': attempt.answer_count,
        }
        for attempt in attempts.filter(status=Attempt.Status.LOCKED).order_by('-locked_at')
    ]

    status_counts = {
        row['status']: row['n']
        for row in Attempt.objects.filter(exam=exam).values('status').annotate(n=Count('id')).order_by()
    }

    return {
        'exam': {
            'id': exam.pk,
            'title': exam.title,
            'academic_year': exam.academic_year,
            'duration_minutes': exam.duration_minutes,
            'is_active': exam.is_active,
            'assignments': exam.assignment_count,
            'questions': exam.question_count,
            'attempts_by_status': status_counts,
        },
        'in_progress': in_progress,
        'locked': locked,
        'generated_at': now,
    }
