from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from assessments import lifecycle
from assessments.models import Attempt
from exams.models import Exam, ExamAssignment, Question
from users.credentials import hash_secret

EXAM_PASSWORD = "open-sesame"


@pytest.fixture(autouse=True)
def fast_hashers(settings):
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


@pytest.fixture
def admin_user(django_user_model):
    return django_user_model.objects.create_user(username="admin", password="pw", role="ADMIN")


@pytest.fixture
def student(django_user_model):
    return django_user_model.objects.create_user(
        username="Ada1001", password="Ada@1001", role="STUDENT", student_id="1001", first_name="Ada",
    )


@pytest.fixture
def other_student(django_user_model):
    return django_user_model.objects.create_user(username="Bob1002", password="Bob@1002", role="STUDENT", student_id="1002")


@pytest.fixture
def exam(db):
    return Exam.objects.create(
        title="Physics Midterm",
        academic_year=2026,
        duration_minutes=60,
        is_active=True,
        exam_password_hash=hash_secret(EXAM_PASSWORD),
    )


@pytest.fixture
def questions(exam):
    q1 = Question.objects.create(
        exam=exam, question_type="MULTIPLE_CHOICE", prompt="Unit of force?",
        options=["A", "B", "C"], correct={"choice": "B"}, marks=2, order=1,
    )
    q2 = Question.objects.create(
        exam=exam, question_type="TRUE_FALSE", prompt="Light is a wave.",
        options=["true", "false"], correct={"choice": "true"}, marks=1, order=2,
    )
    return q1, q2


@pytest.fixture
def assigned(exam, student, other_student):
    ExamAssignment.objects.create(exam=exam, student=student)
    ExamAssignment.objects.create(exam=exam, student=other_student)
    return exam


@pytest.fixture
def entered(assigned, questions, student):
    """A fresh in-progress attempt and the lock token of the tab that owns it."""
    return lifecycle.enter_exam(assigned.pk, student, EXAM_PASSWORD)


@pytest.fixture
def expire():
    def _expire(attempt, minutes_over=1):
        started = timezone.now() - timedelta(minutes=attempt.exam.duration_minutes + minutes_over)
        Attempt.objects.filter(pk=attempt.pk).update(started_at=started)
    return _expire


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(admin_user)
    return client


@pytest.fixture
def student_client(student):
    client = APIClient()
    client.force_authenticate(student)
    return client


@pytest.fixture
def second_device(student):
    client = APIClient()
    client.force_authenticate(student)
    return client
