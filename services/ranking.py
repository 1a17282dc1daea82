"""
Leaderboard ordering and class statistics for a single quiz.

Everything here is a pure function over a snapshot of submissions; callers
fetch the snapshot and may get a different answer on the next request as new
submissions arrive.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence
from core.config import settings
from schemas.quiz import SubmissionRecord

GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
)


@dataclass(frozen=True)
class RankedSubmission:
    rank: int
    submission: SubmissionRecord


@dataclass(frozen=True)
class QuizStats:
    submission_count: int
    average_score: float
    max_score: int
    min_score: int
    pass_count: int
    pass_rate: float


def leaderboard_key(submission: SubmissionRecord):
    # score desc, then earlier submission, then lower id
    return (-submission.score, submission.submitted_at, submission.id)


def sort_submissions(submissions: Sequence[SubmissionRecord]) -> List[SubmissionRecord]:
    return sorted(submissions, key=leaderboard_key)


def rank_submissions(submissions: Sequence[SubmissionRecord]) -> List[RankedSubmission]:
    """Total order over the submissions with unique 1-based ranks."""
    return [RankedSubmission(rank=i, submission=s) for i, s in enumerate(sort_submissions(submissions), 1)]


def rank_of(submission_id: int, submissions: Sequence[SubmissionRecord]) -> Optional[int]:
    """Rank of one submission within the quiz's submissions, None if it is not among them."""
    for i, submission in enumerate(sort_submissions(submissions), 1):
        if submission.id == submission_id:
            return i
    return None


def percentage(score: int, total: int) -> float:
    if total <= 0:
        return 0.0
    # multiply first so exact band boundaries stay exact
    return score * 100 / total


def is_passing(score: int, total: int) -> bool:
    return percentage(score, total) >= settings.PASS_THRESHOLD_PERCENT


def grade(score: int, total: int) -> str:
    """Letter grade for a score; each band includes its lower bound."""
    pct = percentage(score, total)
    for threshold, label in GRADE_BANDS:
        if pct >= threshold:
            return label
    return "F"


def compute_stats(submissions: Sequence[SubmissionRecord], total_questions: int) -> Optional[QuizStats]:
    """
    Class statistics for one quiz.

    Returns None when there are no submissions; "no data" is not the same as
    an average of zero and must be shown as such.
    """
    if not submissions:
        return None

    scores = [s.score for s in submissions]
    count = len(scores)
    pass_count = sum(1 for score in scores if is_passing(score, total_questions))

    return QuizStats(
        submission_count=count,
        average_score=sum(scores) / count,
        max_score=max(scores),
        min_score=min(scores),
        pass_count=pass_count,
        pass_rate=pass_count / count * 100,
    )
