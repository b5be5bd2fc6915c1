"""
Discrete-choice grading.

Everything in this module is pure: no database access, no clock, no logging.
The regeneration engine may call ``grade_attempt`` any number of times and
always gets the same answer for the same inputs.
"""
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
TRUE_FALSE = "TRUE_FALSE"
GRADABLE_TYPES = (MULTIPLE_CHOICE, TRUE_FALSE)


class ChoiceAnswer(NamedTuple):
    choice: str


@dataclass(frozen=True)
class GradeQuestion:
    id: int
    question_type: str
    marks: int
    correct: object = None


@dataclass
class GradeResult:
    score: int
    max_score: int
    breakdown: List[dict] = field(default_factory=list)


def coerce_choice(value) -> Optional[ChoiceAnswer]:
    """
    Adapt the stored or submitted payload shapes into a ChoiceAnswer.

    Accepted: a plain string, ``{"choice": str}``, ``{"value": str}`` and a
    boolean (true/false questions). ``None`` means unanswered. Anything else
    raises ValueError.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return ChoiceAnswer("true" if value else "false")
    if isinstance(value, str):
        return ChoiceAnswer(value.strip())
    if isinstance(value, dict):
        for key in ("choice", "value"):
            inner = value.get(key)
            if isinstance(inner, str):
                return ChoiceAnswer(inner.strip())
            if isinstance(inner, bool):
                return ChoiceAnswer("true" if inner else "false")
    raise ValueError(f"unsupported answer payload: {type(value).__name__}")


def extract_choice(value, question_type) -> str:
    # Lenient read of persisted data: unknown shapes grade as unanswered
    try:
        answer = coerce_choice(value)
    except ValueError:
        return ""
    if answer is None:
        return ""
    if question_type == TRUE_FALSE:
        return answer.choice.lower()
    return answer.choice


def grade_question(question: GradeQuestion, value) -> dict:
    ok = False
    if question.question_type in GRADABLE_TYPES:
        given = extract_choice(value, question.question_type)
        expected = extract_choice(question.correct, question.question_type)
        ok = bool(given) and bool(expected) and given == expected
    return {
        "question_id": question.id,
        "marks": question.marks,
        "earned": question.marks if ok else 0,
        "correct": ok,
    }


def grade_attempt(questions: List[GradeQuestion], answers: Dict[int, object]) -> GradeResult:
    breakdown = [grade_question(q, answers.get(q.id)) for q in questions]
    return GradeResult(
        score=sum(item["earned"] for item in breakdown),
        max_score=sum(q.marks for q in questions),
        breakdown=breakdown,
    )
