"""
Answer key administration.

Every successful mutation of an exam's questions is an answer-key change: it is
audited and followed by a results regeneration for the exam.
"""
import logging

from django.db import transaction
from django.db.models import Max

from assessments.exceptions import AnswerKeyInvalid, NotFound
from assessments.results import regenerate_results_for_exam
from cores.audit import record_event
from cores.models import AuditLog
from .models import Question

logger = logging.getLogger(__name__)

MCQ = Question.QuestionType.MULTIPLE_CHOICE
TF = Question.QuestionType.TRUE_FALSE
TRUE_FALSE_OPTIONS = ["true", "false"]


def _current_choice(question):
    correct = question.correct
    if isinstance(correct, dict):
        correct = correct.get('choice', correct.get('value'))
    return correct if isinstance(correct, str) else None


def validate_answer_key(question_type, options, correct_choice):
    """Return (options, correct) in canonical form or raise AnswerKeyInvalid."""
    if question_type == MCQ:
        options = list(options or [])
        if len(options) < 2:
            raise AnswerKeyInvalid("MCQ_OPTIONS_REQUIRED", "Multiple choice questions need at least two options.")
        if len(set(options)) != len(options):
            raise AnswerKeyInvalid("DUPLICATE_CHOICES", "Options must be distinct.")
        if not correct_choice:
            raise AnswerKeyInvalid("MCQ_CORRECT_REQUIRED", "A correct choice is required.")
        if correct_choice not in options:
            raise AnswerKeyInvalid("MCQ_CORRECT_INVALID", "The correct choice must be one of the options.")
        return options, {"choice": correct_choice}

    if question_type == TF:
        choice = (correct_choice or "").strip().lower()
        if choice not in TRUE_FALSE_OPTIONS:
            raise AnswerKeyInvalid("TF_CORRECT_REQUIRED", "The correct choice must be true or false.")
        return list(TRUE_FALSE_OPTIONS), {"choice": choice}

    raise AnswerKeyInvalid("UNSUPPORTED_QUESTION_TYPE", "Unsupported question type.")


def _check_duplicate_prompt(exam, prompt, exclude_id=None):
    duplicates = Question.objects.filter(exam=exam, prompt=prompt)
    if exclude_id is not None:
        duplicates = duplicates.exclude(pk=exclude_id)
    if duplicates.exists():
        raise AnswerKeyInvalid("DUPLICATE_QUESTION", "A question with this prompt already exists.")


def _next_order(exam):
    return (Question.objects.filter(exam=exam).aggregate(m=Max('order'))['m'] or 0) + 1


def answer_key_changed(exam, actor, operation, **meta):
    record_event(AuditLog.Action.UPDATE_ANSWER_KEY, actor_id=actor.pk, exam_id=exam.pk, operation=operation, **meta)
    report = regenerate_results_for_exam(exam.pk)
    record_event(
        AuditLog.Action.REGENERATE_RESULTS, actor_id=actor.pk, exam_id=exam.pk,
        mode="AUTO", reason="ANSWER_KEY_CHANGED",
        attempts=report.attempts_processed, results_upserted=report.results_upserted,
    )
    logger.info("answer_key_changed exam_id=%s operation=%s", exam.pk, operation)
    return report


def create_question(exam, data, actor):
    with transaction.atomic():
        if exam.max_questions is not None and exam.questions.count() >= exam.max_questions:
            raise AnswerKeyInvalid("MAX_QUESTIONS_REACHED", "This exam already has its maximum number of questions.")
        _check_duplicate_prompt(exam, data['prompt'])
        options, correct = validate_answer_key(data['question_type'], data.get('options'), data.get('correct_choice'))
        question = Question.objects.create(
            exam=exam,
            question_type=data['question_type'],
            prompt=data['prompt'],
            image_url=data.get('image_url', ''),
            options=options,
            correct=correct,
            marks=data.get('marks', 1),
            order=_next_order(exam),
        )

    answer_key_changed(exam, actor, "CREATE_QUESTION", question_id=question.pk, type=question.question_type, order=question.order)
    return question


def _move_to_order(question, target):
    """Place question at ``target``, swapping with whoever holds it."""
    if target == question.order:
        return
    holder = Question.objects.filter(exam_id=question.exam_id, order=target).exclude(pk=question.pk).first()
    origin = question.order
    if holder is not None:
        # 0 is never a real display order; park there to keep (exam, order) unique
        Question.objects.filter(pk=question.pk).update(order=0)
        Question.objects.filter(pk=holder.pk).update(order=origin)
    Question.objects.filter(pk=question.pk).update(order=target)
    question.order = target


def update_question(question, data, actor):
    """Partial update. The merged question must satisfy the answer-key rules."""
    exam = question.exam
    with transaction.atomic():
        if data.get('prompt'):
            _check_duplicate_prompt(exam, data['prompt'], exclude_id=question.pk)

        question_type = data.get('question_type', question.question_type)
        options = data['options'] if 'options' in data else question.options
        correct_choice = data['correct_choice'] if 'correct_choice' in data else _current_choice(question)
        question.options, question.correct = validate_answer_key(question_type, options, correct_choice)
        question.question_type = question_type

        for name in ('prompt', 'marks', 'image_url'):
            if name in data:
                setattr(question, name, data[name])
        if 'order' in data:
            _move_to_order(question, data['order'])
        question.save()

    answer_key_changed(exam, actor, "UPDATE_QUESTION", question_id=question.pk)
    return question


def delete_question(question, actor):
    exam = question.exam
    question_id = question.pk
    question.delete()
    answer_key_changed(exam, actor, "DELETE_QUESTION", question_id=question_id)


def reorder_question(exam, question_id, direction, actor):
    """Swap a question with its nearest neighbour above (UP) or below (DOWN)."""
    question = Question.objects.filter(pk=question_id, exam=exam).first()
    if question is None:
        raise NotFound("QUESTION_NOT_FOUND", "Question not found.")

    siblings = Question.objects.filter(exam=exam)
    if direction == "UP":
        neighbour = siblings.filter(order__lt=question.order).order_by('-order').first()
    else:
        neighbour = siblings.filter(order__gt=question.order).order_by('order').first()
    if neighbour is None:
        return question

    origin = question.order
    with transaction.atomic():
        _move_to_order(question, neighbour.order)

    answer_key_changed(exam, actor, "REORDER_QUESTION", question_id=question.pk, **{'from': origin, 'to': question.order})
    return question


def bulk_create_questions(exam, items, actor):
    """
    Create many questions; invalid items are reported by index and skipped.
    Returns (created questions, failures).
    """
    if exam.max_questions is not None:
        remaining = exam.max_questions - exam.questions.count()
        if remaining <= 0:
            raise AnswerKeyInvalid("MAX_QUESTIONS_REACHED", "This exam already has its maximum number of questions.")
        if len(items) > remaining:
            raise AnswerKeyInvalid("MAX_QUESTIONS_EXCEEDED", "Too many questions for this exam.", remaining=remaining)

    created = []
    failures = []
    seen_prompts = set()
    with transaction.atomic():
        order = _next_order(exam)
        for index, item in enumerate(items):
            try:
                if item['prompt'] in seen_prompts:
                    raise AnswerKeyInvalid("DUPLICATE_QUESTION")
                seen_prompts.add(item['prompt'])
                _check_duplicate_prompt(exam, item['prompt'])
                options, correct = validate_answer_key(item['question_type'], item.get('options'), item.get('correct_choice'))
            except AnswerKeyInvalid as exc:
                failures.append({'index': index, 'error': exc.get_codes()})
                continue
            created.append(Question.objects.create(
                exam=exam,
                question_type=item['question_type'],
                prompt=item['prompt'],
                image_url=item.get('image_url', ''),
                options=options,
                correct=correct,
                marks=item.get('marks', 1),
                order=order,
            ))
            order += 1

    if created:
        answer_key_changed(exam, actor, "BULK_CREATE_QUESTIONS", created=len(created), failed=len(failures))
    return created, failures
