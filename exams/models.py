# proctor_platform/exams/models.py
from datetime import timedelta

from django.conf import settings
from django.db import models

class Exam(models.Model):
    title = models.CharField(max_length=255)
    academic_year = models.PositiveIntegerField()
    duration_minutes = models.PositiveIntegerField()

    is_active = models.BooleanField(default=False)
    results_published = models.BooleanField(default=False)

    # Optional caps: question count, and the total the score is rescaled to
    max_questions = models.PositiveIntegerField(null=True, blank=True)
    total_marks = models.PositiveIntegerField(null=True, blank=True)

    exam_password_hash = models.CharField(max_length=128)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def duration(self):
        return timedelta(minutes=self.duration_minutes)

    def __str__(self):
        return f"{self.title} ({self.academic_year})"

class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = "MULTIPLE_CHOICE", "Multiple Choice"
        TRUE_FALSE = "TRUE_FALSE", "True / False"

    exam = models.ForeignKey(Exam, related_name='questions', on_delete=models.CASCADE)
    question_type = models.CharField(max_length=20, choices=QuestionType.choices)
    prompt = models.TextField()
    image_url = models.CharField(max_length=500, blank=True)

    # Ordered list of choice strings
    options = models.JSONField(default=list, blank=True)
    # Canonical shape is {"choice": "<option>"}
    correct = models.JSONField(null=True, blank=True)

    marks = models.PositiveIntegerField(default=1)
    order = models.PositiveIntegerField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order']
        unique_together = ('exam', 'order')

    def __str__(self):
        return f"Q{self.order}: {self.prompt[:50]}"

class ExamAssignment(models.Model):
    exam = models.ForeignKey(Exam, related_name='assignments', on_delete=models.CASCADE)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='exam_assignments', on_delete=models.CASCADE)
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('exam', 'student')
