from rest_framework import serializers

from users.credentials import hash_secret
from .models import Exam, Question

class ExamSerializer(serializers.ModelSerializer):
    exam_password = serializers.CharField(write_only=True, required=False, min_length=1)
    question_count = serializers.IntegerField(source='questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'academic_year', 'duration_minutes', 'is_active', 'results_published',
            'max_questions', 'total_marks', 'exam_password', 'question_count', 'created_at', 'updated_at',
        ]
        read_only_fields = ['results_published', 'created_at', 'updated_at']
        extra_kwargs = {
            'academic_year': {'min_value': 2000},
            'duration_minutes': {'min_value': 1},
            'max_questions': {'min_value': 1},
            'total_marks': {'min_value': 1},
        }

    def validate(self, attrs):
        if self.instance is None and not attrs.get('exam_password'):
            raise serializers.ValidationError({'exam_password': 'This field is required.'})
        return attrs

    def _hash_password(self, validated_data):
        password = validated_data.pop('exam_password', None)
        if password:
            validated_data['exam_password_hash'] = hash_secret(password)
        return validated_data

    def create(self, validated_data):
        return super().create(self._hash_password(validated_data))

    def update(self, instance, validated_data):
        return super().update(instance, self._hash_password(validated_data))

class QuestionSerializer(serializers.ModelSerializer):
    """Admin view of a question, answer key included."""

    class Meta:
        model = Question
        fields = ['id', 'exam', 'question_type', 'prompt', 'image_url', 'options', 'correct', 'marks', 'order', 'created_at', 'updated_at']
        read_only_fields = fields

class StudentQuestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = ['id', 'question_type', 'prompt', 'image_url', 'options', 'marks', 'order']
        read_only_fields = fields

class QuestionInputSerializer(serializers.Serializer):
    question_type = serializers.ChoiceField(choices=Question.QuestionType.choices)
    prompt = serializers.CharField()
    image_url = serializers.CharField(required=False, allow_blank=True, max_length=500)
    marks = serializers.IntegerField(min_value=1, default=1)
    options = serializers.ListField(child=serializers.CharField(), required=False)
    correct_choice = serializers.CharField(required=False, allow_null=True)

class QuestionUpdateSerializer(QuestionInputSerializer):
    question_type = serializers.ChoiceField(choices=Question.QuestionType.choices, required=False)
    prompt = serializers.CharField(required=False)
    marks = serializers.IntegerField(min_value=1, required=False)
    order = serializers.IntegerField(min_value=1, required=False)

class BulkQuestionsSerializer(serializers.Serializer):
    questions = QuestionInputSerializer(many=True, allow_empty=False)

class ReorderSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    direction = serializers.ChoiceField(choices=["UP", "DOWN"])

class AssignStudentsSerializer(serializers.Serializer):
    student_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
