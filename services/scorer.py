"""Scoring of a student's answers against a quiz's answer key."""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
from schemas.quiz import Answer, Question


@dataclass(frozen=True)
class AnswerReview:
    question_index: int
    question: str
    selected_option: Optional[str]
    correct_option: str
    is_correct: bool


def normalize_answers(answers: Iterable[Answer]) -> List[Answer]:
    """Keep the last answer given for each question index, ordered by index."""
    latest = {}
    for answer in answers:
        latest[answer.question_index] = answer
    return [latest[i] for i in sorted(latest)]


def is_correct(questions: Sequence[Question], answer: Answer) -> bool:
    # Out-of-range indices (negative included) never match
    if not 0 <= answer.question_index < len(questions):
        return False
    return questions[answer.question_index].correct_option == answer.selected_option


def score_answers(questions: Sequence[Question], answers: Iterable[Answer]) -> int:
    """
    Count the answers whose selected option equals the correct option at their index.

    Duplicate answers for one index are collapsed first (last one wins), so the
    result is always within 0..len(questions).
    """
    return sum(1 for answer in normalize_answers(answers) if is_correct(questions, answer))


def review_answers(questions: Sequence[Question], answers: Iterable[Answer]) -> List[AnswerReview]:
    """Per-question breakdown for the student's result screen."""
    by_index = {a.question_index: a for a in normalize_answers(answers)}
    review = []
    for i, question in enumerate(questions):
        answer = by_index.get(i)
        review.append(AnswerReview(
            question_index=i,
            question=question.text,
            selected_option=answer.selected_option if answer else None,
            correct_option=question.correct_option,
            is_correct=answer is not None and is_correct(questions, answer),
        ))
    return review
