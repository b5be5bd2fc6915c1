import logging

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import generics, status, views
from rest_framework.response import Response

from cores.audit import record_event
from cores.models import AuditLog
from exams.models import Exam, ExamAssignment
from users.permissions import IsAdminRole, IsStudentRole
from . import lifecycle, proctoring, results
from .lock_credentials import clear_lock_credential, issue_lock_credential, presented_lock_token
from .models import Attempt, Result
from .serializers import (
    AdminAttemptSerializer, AnswerInputSerializer, AnswerSerializer, AttemptSerializer,
    EnterExamSerializer, ManualGradeSerializer, ResultSerializer, StudentExamSerializer,
    StudentResultSerializer, ViolationSerializer,
)

logger = logging.getLogger(__name__)


# --- STUDENT VIEWS ---

class StudentExamListView(views.APIView):
    """Exams assigned to the logged-in student, with their attempt status."""
    permission_classes = [IsStudentRole]

    def get(self, request):
        assignments = ExamAssignment.objects.filter(student=request.user, exam__is_active=True).select_related('exam')
        statuses = dict(Attempt.objects.filter(student=request.user).values_list('exam_id', 'status'))
        return Response([
            {
                "id": a.exam.pk,
                "title": a.exam.title,
                "academic_year": a.exam.academic_year,
                "duration_minutes": a.exam.duration_minutes,
                "attempt_status": statuses.get(a.exam_id, Attempt.Status.NOT_STARTED),
            }
            for a in assignments
        ])

class EnterExamView(views.APIView):
    """
    Password-gated entry. Hands the session lock back as a signed cookie
    (and in the body, for clients using the X-Attempt-Lock header).
    """
    permission_classes = [IsStudentRole]

    def post(self, request):
        serializer = EnterExamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        exam_id = serializer.validated_data['exam_id']

        existing = Attempt.objects.filter(exam_id=exam_id, student=request.user).values_list('pk', flat=True).first()
        presented = presented_lock_token(request, existing) if existing else None

        outcome = lifecycle.enter_exam(exam_id, request.user, serializer.validated_data['exam_password'], presented)
        attempt = outcome.attempt
        response = Response(
            {"attempt_id": attempt.pk, "status": attempt.status},
            status=status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK,
        )
        if outcome.lock_token:
            response.data["lock_credential"] = issue_lock_credential(response, attempt.pk, outcome.lock_token)
        return response

class AttemptStateView(views.APIView):
    permission_classes = [IsStudentRole]

    def get(self, request, exam_id):
        existing = Attempt.objects.filter(exam_id=exam_id, student=request.user).values_list('pk', flat=True).first()
        presented = presented_lock_token(request, existing) if existing else None

        state = lifecycle.attempt_state(exam_id, request.user, presented)
        return Response({
            "exam": StudentExamSerializer(state.exam).data,
            "attempt": AttemptSerializer(state.attempt).data,
            "answers": AnswerSerializer(state.answers, many=True).data,
        })

class RecordAnswerView(views.APIView):
    permission_classes = [IsStudentRole]

    def post(self, request, attempt_id):
        serializer = AnswerInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answer = lifecycle.record_answer(
            attempt_id,
            request.user,
            presented_lock_token(request, attempt_id),
            serializer.validated_data['question_id'],
            serializer.validated_data.get('value', lifecycle.NOT_SENT),
            flagged=serializer.validated_data.get('flagged'),
        )
        return Response(AnswerSerializer(answer).data)

class SubmitAttemptView(views.APIView):
    permission_classes = [IsStudentRole]

    def post(self, request, attempt_id):
        attempt = lifecycle.submit_attempt(attempt_id, request.user, presented_lock_token(request, attempt_id))
        response = Response({"ok": True, "status": attempt.status})
        clear_lock_credential(response, attempt_id)
        return response

class ViolationView(views.APIView):
    permission_classes = [IsStudentRole]

    def post(self, request, attempt_id):
        serializer = ViolationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attempt = lifecycle.report_violation(
            attempt_id, request.user, presented_lock_token(request, attempt_id), serializer.validated_data['kind'],
        )
        response = Response({
            "status": attempt.status,
            "locked_reason": attempt.locked_reason,
            "violation_count": attempt.violation_count,
        })
        if attempt.status == Attempt.Status.LOCKED:
            clear_lock_credential(response, attempt_id)
        return response

class StudentResultsView(generics.ListAPIView):
    """Results of the logged-in student, for exams whose results are published."""
    permission_classes = [IsStudentRole]
    serializer_class = StudentResultSerializer
    pagination_class = None

    def get_queryset(self):
        return (
            Result.objects.filter(attempt__student=self.request.user, attempt__exam__results_published=True)
            .select_related('attempt__exam')
            .order_by('-updated_at')
        )


# --- ADMIN VIEWS ---

class AttemptUnlockView(views.APIView):
    permission_classes = [IsAdminRole]

    def post(self, request, attempt_id):
        attempt = lifecycle.admin_unlock(attempt_id, request.user)
        return Response(AdminAttemptSerializer(attempt).data)

class AttemptTerminateView(views.APIView):
    permission_classes = [IsAdminRole]

    def post(self, request, attempt_id):
        attempt = lifecycle.admin_terminate(attempt_id, request.user)
        return Response(AdminAttemptSerializer(attempt).data)

class AttemptResetView(views.APIView):
    permission_classes = [IsAdminRole]

    def post(self, request, attempt_id):
        attempt = lifecycle.admin_reset(attempt_id, request.user)
        return Response(AdminAttemptSerializer(attempt).data)

class ManualGradeView(views.APIView):
    """
    Admin overrides the marks earned on one question.
    Payload: { "question_id": 1, "earned": 2 }  (earned null clears the override)
    """
    permission_classes = [IsAdminRole]

    def post(self, request, attempt_id):
        serializer = ManualGradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = results.set_manual_score(
            attempt_id, serializer.validated_data['question_id'], serializer.validated_data['earned'],
        )
        record_event(
            AuditLog.Action.MANUAL_GRADE, actor_id=request.user.pk,
            exam_id=result.attempt.exam_id, attempt_id=result.attempt_id, target_user_id=result.attempt.student_id,
            question_id=serializer.validated_data['question_id'], earned=serializer.validated_data['earned'],
        )
        return Response(ResultSerializer(result).data)

class RegenerateResultsView(views.APIView):
    permission_classes = [IsAdminRole]

    def post(self, request, exam_id):
        report = results.regenerate_results_for_exam(exam_id)
        record_event(
            AuditLog.Action.REGENERATE_RESULTS, actor_id=request.user.pk, exam_id=exam_id,
            mode="MANUAL", attempts=report.attempts_processed, results_upserted=report.results_upserted,
        )
        return Response({
            "attempts_processed": report.attempts_processed,
            "results_upserted": report.results_upserted,
            "failures": report.failures,
        })

class ResultsSummaryView(views.APIView):
    permission_classes = [IsAdminRole]

    def get(self, request, exam_id):
        exam = get_object_or_404(Exam, pk=exam_id)
        queryset = Result.objects.filter(attempt__exam=exam).select_related('attempt__student').order_by('-updated_at')
        return Response({
            "exam": {"id": exam.pk, "title": exam.title, "results_published": exam.results_published},
            "results": ResultSerializer(queryset, many=True).data,
        })

class ResultsExportView(views.APIView):
    permission_classes = [IsAdminRole]

    def get(self, request, exam_id):
        exam = get_object_or_404(Exam, pk=exam_id)
        safe_title = "".join(c if c.isalnum() or c in "-_" else "_" for c in exam.title)
        response = HttpResponse(results.export_results_csv(exam), content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="results_{exam.academic_year}_{safe_title}.csv"'
        response['Cache-Control'] = 'no-store'
        return response

class ExamSessionsView(views.APIView):
    """Live proctoring view: in-progress and locked attempts of an exam."""
    permission_classes = [IsAdminRole]

    def get(self, request, exam_id):
        return Response(proctoring.exam_sessions(exam_id))
