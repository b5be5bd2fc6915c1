from django.db import models
from django.conf import settings


class AuditLog(models.Model):
    class Action(models.TextChoices):
        LOGIN = 'LOGIN', 'Login'
        ENTER_EXAM = 'ENTER_EXAM', 'Exam Entered'
        SUBMIT_ATTEMPT = 'SUBMIT_ATTEMPT', 'Attempt Submitted'
        AUTO_SUBMIT = 'AUTO_SUBMIT', 'Attempt Auto-Submitted'
        CHEAT_VIOLATION = 'CHEAT_VIOLATION', 'Cheat Violation'
        ADMIN_UNLOCK_ATTEMPT = 'ADMIN_UNLOCK_ATTEMPT', 'Attempt Unlocked'
        ADMIN_TERMINATE_ATTEMPT = 'ADMIN_TERMINATE_ATTEMPT', 'Attempt Terminated'
        ADMIN_RESET_ATTEMPT = 'ADMIN_RESET_ATTEMPT', 'Attempt Reset'
        UPDATE_ANSWER_KEY = 'UPDATE_ANSWER_KEY', 'Answer Key Changed'
        REGENERATE_RESULTS = 'REGENERATE_RESULTS', 'Results Regenerated'
        MANUAL_GRADE = 'MANUAL_GRADE', 'Manual Grade'
        PUBLISH_RESULTS = 'PUBLISH_RESULTS', 'Results Published'
        HIDE_RESULTS = 'HIDE_RESULTS', 'Results Hidden'

    # Null actor means the system itself (deadline, violation policy)
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=40, choices=Action.choices)
    exam_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    attempt_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    target_user_id = models.BigIntegerField(null=True, blank=True)
    meta = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']

    def __str__(self):
        return f"{self.actor_id or 'system'} - {self.action} - {self.timestamp}"
