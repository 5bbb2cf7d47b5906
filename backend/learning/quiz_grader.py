"""
Quiz grading (pure domain logic).

Intent:
    Score a set of answers against a quiz's answer key. Used at submit time to
    persist the score, and at review time to render per-question correctness.

Behavior:
    - total_count is the number of questions; unanswered questions count as
      incorrect.
    - Selections outside the option range (negative included) are incorrect;
      they are never treated as errors.
    - When a question index is answered more than once, the first answer wins.
    - score_percent rounds half up; a quiz without questions scores 0 and is
      flagged `degenerate`.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuizScore:
    correct_count: int
    total_count: int
    score_percent: int
    degenerate: bool = False


def _as_index(value: Any) -> Optional[int]:
    # bool is an int subclass; True must not select option 1
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _first_answers(answers: Sequence[Mapping[str, Any]] | None) -> Dict[int, Optional[int]]:
    picked: Dict[int, Optional[int]] = {}
    for answer in answers or []:
        if not isinstance(answer, Mapping):
            continue
        q_idx = _as_index(answer.get("question_index"))
        if q_idx is None or q_idx in picked:
            continue
        picked[q_idx] = _as_index(answer.get("selected_option_index"))
    return picked


def _is_correct(question: Mapping[str, Any], selected: Optional[int]) -> bool:
    if selected is None:
        return False
    options = question.get("options") or []
    if selected < 0 or selected >= len(options):
        return False
    return selected == question.get("correct_option_index")


def round_half_up_percent(part: int, whole: int) -> int:
    """Integer percentage of part/whole, rounding .5 up (0 when whole is 0)."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def grade_quiz(questions: Sequence[Mapping[str, Any]], answers: Sequence[Mapping[str, Any]] | None) -> QuizScore:
    total = len(questions)
    if total == 0:
        logger.warning("quiz has no questions; scoring as 0")
        return QuizScore(correct_count=0, total_count=0, score_percent=0, degenerate=True)
    picked = _first_answers(answers)
    correct = sum(1 for idx, question in enumerate(questions) if _is_correct(question, picked.get(idx)))
    return QuizScore(
        correct_count=correct,
        total_count=total,
        score_percent=round_half_up_percent(correct, total),
    )


def review_answers(
    questions: Sequence[Mapping[str, Any]], answers: Sequence[Mapping[str, Any]] | None
) -> List[dict]:
    """Per-question breakdown for a finalized submission."""
    picked = _first_answers(answers)
    review: List[dict] = []
    for idx, question in enumerate(questions):
        selected = picked.get(idx)
        review.append(
            {
                "question_index": idx,
                "selected_option_index": selected,
                "correct_option_index": question.get("correct_option_index"),
                "is_correct": _is_correct(question, selected),
            }
        )
    return review


__all__ = ["QuizScore", "grade_quiz", "review_answers", "round_half_up_percent"]
