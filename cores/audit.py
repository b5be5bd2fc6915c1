"""
Best-effort audit sink.

Every state-changing operation emits one record here. The write runs in its own
savepoint so a failing audit insert never poisons the caller's transaction, and
errors are logged instead of raised.
"""
import logging

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def record_event(action, actor_id=None, exam_id=None, attempt_id=None, target_user_id=None, **meta):
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                action=action,
                actor_id=actor_id,
                exam_id=exam_id,
                attempt_id=attempt_id,
                target_user_id=target_user_id,
                meta=meta,
            )
    except DatabaseError:
        logger.warning(
            "audit_write_failed action=%s exam_id=%s attempt_id=%s",
            action, exam_id, attempt_id, exc_info=True,
        )
        return None
