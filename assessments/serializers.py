from rest_framework import serializers

from exams.serializers import StudentQuestionSerializer
from exams.models import Exam
from .lifecycle import VIOLATION_KINDS
from .models import Answer, Attempt, Result

class AnswerSerializer(serializers.ModelSerializer):
    question_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Answer
        fields = ['question_id', 'value', 'flagged', 'answered_at']
        read_only_fields = fields

class AttemptSerializer(serializers.ModelSerializer):
    """Student-facing attempt state; the lock digest never leaves the server."""

    class Meta:
        model = Attempt
        fields = [
            'id', 'exam', 'status', 'started_at', 'submitted_at', 'time_taken_seconds',
            'locked_at', 'locked_reason', 'lock_updated_at',
        ]
        read_only_fields = fields

class AdminAttemptSerializer(AttemptSerializer):
    student = serializers.CharField(source='student.username', read_only=True)

    class Meta(AttemptSerializer.Meta):
        fields = AttemptSerializer.Meta.fields + ['student', 'violation_count']
        read_only_fields = fields

class StudentExamSerializer(serializers.ModelSerializer):
    questions = StudentQuestionSerializer(many=True, read_only=True)

    class Meta:
        model = Exam
        fields = ['id', 'title', 'academic_year', 'duration_minutes', 'is_active', 'questions']
        read_only_fields = fields

class ResultSerializer(serializers.ModelSerializer):
    attempt_id = serializers.IntegerField(read_only=True)
    student = serializers.CharField(source='attempt.student.username', read_only=True)
    status = serializers.CharField(source='attempt.status', read_only=True)

    class Meta:
        model = Result
        fields = ['attempt_id', 'student', 'status', 'score', 'max_score', 'breakdown', 'updated_at']
        read_only_fields = fields

class StudentResultSerializer(serializers.ModelSerializer):
    exam_id = serializers.IntegerField(source='attempt.exam_id', read_only=True)
    exam_title = serializers.CharField(source='attempt.exam.title', read_only=True)
    academic_year = serializers.IntegerField(source='attempt.exam.academic_year', read_only=True)

    class Meta:
        model = Result
        fields = ['exam_id', 'exam_title', 'academic_year', 'score', 'max_score', 'updated_at']
        read_only_fields = fields

class EnterExamSerializer(serializers.Serializer):
    exam_id = serializers.IntegerField()
    exam_password = serializers.CharField()

class AnswerInputSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    value = serializers.JSONField(required=False, allow_null=True)
    flagged = serializers.BooleanField(required=False, allow_null=True, default=None)

class ViolationSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=VIOLATION_KINDS)

class ManualGradeSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    earned = serializers.IntegerField(min_value=0, allow_null=True)
