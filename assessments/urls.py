from django.urls import path
from .views import (
    StudentExamListView, EnterExamView, AttemptStateView, RecordAnswerView, SubmitAttemptView,
    ViolationView, StudentResultsView, AttemptUnlockView, AttemptTerminateView, AttemptResetView,
    ManualGradeView, RegenerateResultsView, ResultsSummaryView, ResultsExportView, ExamSessionsView,
)

urlpatterns = [
    # --- Student Exam Flow ---
    path('student/exams/', StudentExamListView.as_view(), name='student-exams'),
    path('student/exams/enter/', EnterExamView.as_view(), name='enter-exam'),
    path('student/exams/<int:exam_id>/attempt/', AttemptStateView.as_view(), name='attempt-state'),
    path('student/attempts/<int:attempt_id>/answer/', RecordAnswerView.as_view(), name='attempt-answer'),
    path('student/attempts/<int:attempt_id>/submit/', SubmitAttemptView.as_view(), name='attempt-submit'),
    path('student/attempts/<int:attempt_id>/violation/', ViolationView.as_view(), name='attempt-violation'),
    path('student/results/', StudentResultsView.as_view(), name='student-results'),

    # --- Admin Attempt Control ---
    path('admin/attempts/<int:attempt_id>/unlock/', AttemptUnlockView.as_view(), name='attempt-unlock'),
    path('admin/attempts/<int:attempt_id>/terminate/', AttemptTerminateView.as_view(), name='attempt-terminate'),
    path('admin/attempts/<int:attempt_id>/reset/', AttemptResetView.as_view(), name='attempt-reset'),
    path('admin/attempts/<int:attempt_id>/grade/', ManualGradeView.as_view(), name='attempt-grade'),

    # --- Admin Results & Proctoring ---
    path('admin/exams/<int:exam_id>/results/generate/', RegenerateResultsView.as_view(), name='results-generate'),
    path('admin/exams/<int:exam_id>/results/summary/', ResultsSummaryView.as_view(), name='results-summary'),
    path('admin/exams/<int:exam_id>/results/export/', ResultsExportView.as_view(), name='results-export'),
    path('admin/exams/<int:exam_id>/sessions/', ExamSessionsView.as_view(), name='exam-sessions'),
]
