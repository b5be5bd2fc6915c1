"""
Named failure conditions of the exam core.

Each class carries a stable machine code so clients can tell "try again"
(ConcurrencyConflict) apart from "ask an admin" (AttemptLockedByAdmin).
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class ExamCoreError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Exam operation failed."
    default_code = "EXAM_ERROR"

    def __init__(self, code=None, detail=None, **extra):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)
        self.extra = extra


class NotFound(ExamCoreError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "NOT_FOUND"


class AuthorizationDenied(ExamCoreError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action."
    default_code = "NOT_ASSIGNED_OR_INACTIVE"


class InvalidState(ExamCoreError):
    default_detail = "The attempt is not in a state that allows this action."
    default_code = "ATTEMPT_NOT_IN_PROGRESS"


class AlreadySubmitted(InvalidState):
    default_detail = "This attempt has already been submitted."
    default_code = "ALREADY_SUBMITTED"


class AttemptLockedByAdmin(InvalidState):
    status_code = status.HTTP_423_LOCKED
    default_detail = "This attempt is locked. Only an administrator can restore access."
    default_code = "ATTEMPT_LOCKED_BY_ADMIN"


class AttemptHasAnswers(InvalidState):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The attempt has recorded answers and cannot be reset."
    default_code = "ATTEMPT_HAS_ANSWERS"


class ConcurrencyConflict(ExamCoreError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Another session currently holds the lock on this attempt."
    default_code = "ATTEMPT_LOCKED"


class AnswerKeyInvalid(ExamCoreError):
    default_detail = "The answer key data is invalid."
    default_code = "INVALID_ANSWER_KEY"

    # Conflicts with existing data rather than malformed input
    CONFLICT_CODES = {"DUPLICATE_CHOICES", "DUPLICATE_QUESTION", "MAX_QUESTIONS_REACHED", "MAX_QUESTIONS_EXCEEDED"}

    def __init__(self, code=None, detail=None, **extra):
        super().__init__(code=code, detail=detail, **extra)
        if code in self.CONFLICT_CODES:
            self.status_code = status.HTTP_409_CONFLICT


class InvalidAnswerValue(ExamCoreError):
    default_detail = "Answers must be a single choice."
    default_code = "INVALID_ANSWER_VALUE"


class InvalidScore(ExamCoreError):
    default_detail = "Earned marks must be between 0 and the question's marks."
    default_code = "INVALID_SCORE"
