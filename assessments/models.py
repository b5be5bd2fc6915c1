# assessments/models.py
from django.db import models
from django.conf import settings
from exams.models import Exam, Question

class Attempt(models.Model):
    """Tracks a student's single attempt at an exam."""

    class Status(models.TextChoices):
        NOT_STARTED = "NOT_STARTED", "Not Started"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        SUBMITTED = "SUBMITTED", "Submitted"
        LOCKED = "LOCKED", "Locked"

    exam = models.ForeignKey(Exam, related_name='attempts', on_delete=models.CASCADE)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='attempts', on_delete=models.CASCADE)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NOT_STARTED)

    started_at = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    time_taken_seconds = models.PositiveIntegerField(null=True, blank=True)

    # Attempt-level lockout (violation policy or admin)
    locked_at = models.DateTimeField(null=True, blank=True)
    locked_reason = models.CharField(max_length=40, null=True, blank=True)
    violation_count = models.PositiveIntegerField(default=0)

    # Session continuity: digest of the token held by the tab that owns the session
    lock_token_hash = models.CharField(max_length=64, null=True, blank=True)
    lock_updated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('exam', 'student')

    def __str__(self):
        return f"{self.student} - {self.exam.title} [{self.status}]"

class Answer(models.Model):
    attempt = models.ForeignKey(Attempt, related_name='answers', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, related_name='answers', on_delete=models.CASCADE)

    # Canonical shape is {"choice": "<option>"}, None when cleared
    value = models.JSONField(null=True, blank=True)
    flagged = models.BooleanField(default=False)
    answered_at = models.DateTimeField()

    class Meta:
        unique_together = ('attempt', 'question')

class Result(models.Model):
    attempt = models.OneToOneField(Attempt, related_name='result', on_delete=models.CASCADE)
    score = models.IntegerField(default=0)
    max_score = models.IntegerField(default=0)
    # [{"question_id", "marks", "earned", "correct", "manual"?}, ...]
    breakdown = models.JSONField(default=list)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.attempt_id}: {self.score}/{self.max_score}"
