"""
Results regeneration.

Keeps every submitted attempt's Result in line with the current answer key.
Manual per-question overrides stored in the previous breakdown are laid over
the freshly graded entries, and scores are rescaled to the exam's total marks
when one is configured. Unchanged results are not rewritten, so running the
engine twice leaves identical rows.
"""
import csv
import io
import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction

from exams.models import Exam
from .exceptions import InvalidScore, InvalidState, NotFound
from .grading import GradeQuestion, grade_attempt
from .models import Attempt, Result

logger = logging.getLogger(__name__)

RegenerationReport = namedtuple('RegenerationReport', ['attempts_processed', 'results_upserted', 'failures'])


def _grade_questions(exam):
    return [
        GradeQuestion(id=q.pk, question_type=q.question_type, marks=q.marks, correct=q.correct)
        for q in exam.questions.order_by('order')
    ]


def manual_overrides(breakdown):
    """question_id -> earned for every entry flagged manual."""
    overrides = {}
    if not isinstance(breakdown, list):
        return overrides
    for item in breakdown:
        if not isinstance(item, dict) or item.get('manual') is not True:
            continue
        earned = item.get('earned')
        if isinstance(earned, bool) or not isinstance(earned, int):
            continue
        overrides[item.get('question_id')] = earned
    return overrides


def rescale(score, max_score, total_marks):
    if not total_marks or max_score <= 0 or total_marks == max_score:
        return score, max_score
    scaled = (Decimal(score) * Decimal(total_marks) / Decimal(max_score)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return int(scaled), total_marks


def compute_result(questions, answers, total_marks=None, previous_breakdown=None, overrides=None):
    """
    Pure composition of grading, manual overlay and rescaling.

    ``overrides`` maps question_id to a new manual earned value, or to None to
    drop an existing manual entry.
    """
    graded = grade_attempt(questions, answers)
    manual = manual_overrides(previous_breakdown)
    for question_id, earned in (overrides or {}).items():
        if earned is None:
            manual.pop(question_id, None)
        else:
            manual[question_id] = earned

    breakdown = []
    for item in graded.breakdown:
        if item['question_id'] in manual:
            item = dict(item, earned=manual[item['question_id']], manual=True)
        breakdown.append(item)

    score = sum(item['earned'] for item in breakdown)
    score, max_score = rescale(score, graded.max_score, total_marks)
    return score, max_score, breakdown


def regenerate_attempt_result(attempt, questions=None, overrides=None):
    exam = attempt.exam
    if questions is None:
        questions = _grade_questions(exam)
    answers = {a.question_id: a.value for a in attempt.answers.all()}

    result = Result.objects.filter(attempt=attempt).first()
    score, max_score, breakdown = compute_result(
        questions,
        answers,
        total_marks=exam.total_marks,
        previous_breakdown=result.breakdown if result else None,
        overrides=overrides,
    )

    if result is None:
        return Result.objects.create(attempt=attempt, score=score, max_score=max_score, breakdown=breakdown)

    if (result.score, result.max_score, result.breakdown) != (score, max_score, breakdown):
        result.score = score
        result.max_score = max_score
        result.breakdown = breakdown
        result.save()
    return result


def regenerate_results_for_exam(exam_id):
    """
    Re-grade every submitted attempt of an exam.

    A failure on one attempt is logged and reported; the others still run.
    """
    # Avoid circular import: the lifecycle grades through this module
    from .lifecycle import enforce_exam_deadlines

    exam = Exam.objects.filter(pk=exam_id).first()
    if exam is None:
        raise NotFound("EXAM_NOT_FOUND", "Exam not found.")

    enforce_exam_deadlines(exam)

    questions = _grade_questions(exam)
    attempt_ids = list(
        Attempt.objects.filter(exam=exam, status=Attempt.Status.SUBMITTED).order_by('pk').values_list('pk', flat=True)
    )

    processed = 0
    upserted = 0
    failures = []
    for attempt_id in attempt_ids:
        try:
            with transaction.atomic():
                # Re-read under lock: a reset or manual grade may have landed since the listing
                attempt = (
                    Attempt.objects.select_for_update().select_related('exam')
                    .filter(pk=attempt_id, status=Attempt.Status.SUBMITTED).first()
                )
                if attempt is None:
                    continue
                processed += 1
                regenerate_attempt_result(attempt, questions=questions)
            upserted += 1
        except Exception as exc:
            logger.exception("regenerate_failed exam_id=%s attempt_id=%s", exam.pk, attempt_id)
            failures.append({'attempt_id': attempt_id, 'error': type(exc).__name__})

    logger.info("regenerate exam_id=%s attempts=%s upserted=%s failures=%s", exam.pk, processed, upserted, len(failures))
    return RegenerationReport(processed, upserted, failures)


def set_manual_score(attempt_id, question_id, earned):
    """Set (or clear, with earned=None) an admin override on one question."""
    with transaction.atomic():
        attempt = Attempt.objects.select_for_update().select_related('exam').filter(pk=attempt_id).first()
        if attempt is None:
            raise NotFound("ATTEMPT_NOT_FOUND", "Attempt not found.")
        if attempt.status != Attempt.Status.SUBMITTED:
            raise InvalidState("ATTEMPT_NOT_SUBMITTED", "Only submitted attempts can be graded.")

        question = attempt.exam.questions.filter(pk=question_id).first()
        if question is None:
            raise NotFound("QUESTION_NOT_FOUND", "Question not found.")
        if earned is not None and not 0 <= earned <= question.marks:
            raise InvalidScore(max_marks=question.marks)

        result = regenerate_attempt_result(attempt, overrides={question.pk: earned})

    logger.info("manual_grade attempt_id=%s question_id=%s earned=%s", attempt.pk, question.pk, earned)
    return result


def export_results_csv(exam):
    questions = list(exam.questions.order_by('order').values('id', 'order'))
    results = (
        Result.objects.filter(attempt__exam=exam)
        .select_related('attempt__student')
        .order_by('attempt__student__username')
    )

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(
        ['username', 'student_id', 'first_name', 'last_name', 'score', 'max_score', 'updated_at']
        + [f"Q{q['order']}_earned" for q in questions]
    )
    for result in results:
        student = result.attempt.student
        earned = {
            item.get('question_id'): item.get('earned', 0)
            for item in result.breakdown if isinstance(item, dict)
        }
        writer.writerow(
            [student.username, student.student_id or '', student.first_name, student.last_name,
             result.score, result.max_score, result.updated_at.isoformat()]
            + [earned.get(q['id'], '') for q in questions]
        )
    return buffer.getvalue()
