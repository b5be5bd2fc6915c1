import logging

from django.contrib.auth import get_user_model
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from cores.audit import record_event
from cores.models import AuditLog
from users.permissions import IsAdminRole
from . import answer_key
from .models import Exam, ExamAssignment, Question
from .serializers import (
    AssignStudentsSerializer, BulkQuestionsSerializer, ExamSerializer, QuestionInputSerializer,
    QuestionSerializer, QuestionUpdateSerializer, ReorderSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()

class ExamViewSet(mixins.ListModelMixin, mixins.CreateModelMixin, mixins.RetrieveModelMixin,
                  mixins.UpdateModelMixin, viewsets.GenericViewSet):
    queryset = Exam.objects.all().order_by('-academic_year', '-created_at')
    serializer_class = ExamSerializer
    permission_classes = [IsAdminRole]

    @action(detail=True, methods=['get', 'post'], url_path='questions')
    def questions(self, request, pk=None):
        exam = self.get_object()
        if request.method == 'GET':
            return Response(QuestionSerializer(exam.questions.order_by('order'), many=True).data)

        serializer = QuestionInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        question = answer_key.create_question(exam, serializer.validated_data, request.user)
        return Response(QuestionSerializer(question).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='questions/bulk')
    def bulk_questions(self, request, pk=None):
        """
        Create many questions at once.
        Payload: { "questions": [ { "question_type": ..., "prompt": ..., ... }, ... ] }
        """
        exam = self.get_object()
        serializer = BulkQuestionsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        created, failures = answer_key.bulk_create_questions(exam, serializer.validated_data['questions'], request.user)
        return Response(
            {"created": QuestionSerializer(created, many=True).data, "failures": failures},
            status=status.HTTP_201_CREATED if created else status.HTTP_400_BAD_REQUEST,
        )

    @action(detail=True, methods=['post'], url_path='questions/reorder')
    def reorder_questions(self, request, pk=None):
        exam = self.get_object()
        serializer = ReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        question = answer_key.reorder_question(
            exam, serializer.validated_data['question_id'], serializer.validated_data['direction'], request.user,
        )
        return Response(QuestionSerializer(question).data)

    @action(detail=True, methods=['post'], url_path='assign')
    def assign_students(self, request, pk=None):
        """
        Assigns students to this Exam. Non-student ids are ignored.
        Payload: { "student_ids": [1, 2, 3] }
        """
        exam = self.get_object()
        serializer = AssignStudentsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        students = User.objects.filter(pk__in=serializer.validated_data['student_ids'], role=User.Role.STUDENT)
        if not students.exists():
            return Response({"error": "NO_STUDENTS"}, status=status.HTTP_400_BAD_REQUEST)

        ExamAssignment.objects.bulk_create(
            [ExamAssignment(exam=exam, student=s) for s in students], ignore_conflicts=True,
        )
        return Response({"assigned_count": students.count()})

    @action(detail=True, methods=['post'], url_path='results/publish')
    def publish_results(self, request, pk=None):
        return self._set_results_published(request, True, AuditLog.Action.PUBLISH_RESULTS)

    @action(detail=True, methods=['post'], url_path='results/hide')
    def hide_results(self, request, pk=None):
        return self._set_results_published(request, False, AuditLog.Action.HIDE_RESULTS)

    def _set_results_published(self, request, published, audit_action):
        exam = self.get_object()
        exam.results_published = published
        exam.save(update_fields=['results_published', 'updated_at'])
        record_event(audit_action, actor_id=request.user.pk, exam_id=exam.pk)
        logger.info("results_published exam_id=%s published=%s", exam.pk, published)
        return Response({"results_published": published})


class QuestionViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Question.objects.select_related('exam')
    serializer_class = QuestionSerializer
    permission_classes = [IsAdminRole]

    def partial_update(self, request, pk=None):
        question = self.get_object()
        serializer = QuestionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        question = answer_key.update_question(question, serializer.validated_data, request.user)
        return Response(QuestionSerializer(question).data)

    def destroy(self, request, pk=None):
        answer_key.delete_question(self.get_object(), request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
