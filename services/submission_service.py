from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from pydantic import ValidationError as SchemaError
from models.submission import Submission
from schemas.quiz import Answer, QuizRecord, SubmissionRecord
from services.quiz_service import QuizService
from services.user_service import UserService
from services.leaderboard_feed import LeaderboardFeed
from services.scorer import normalize_answers, score_answers
from services.ranking import RankedSubmission, QuizStats, rank_submissions, compute_stats
from db.guard import storage_guard, rollback_session
from core.exceptions import (
    ValidationError, NotFoundError, AuthorizationError, DuplicateSubmissionError,
)
from core.config import settings
from core.logger import logger


@dataclass(frozen=True)
class SubmissionResult:
    score: int
    total_questions: int
    submission: SubmissionRecord


@dataclass(frozen=True)
class Leaderboard:
    quiz: QuizRecord
    entries: List[RankedSubmission]


@dataclass(frozen=True)
class QuizResults:
    quiz: QuizRecord
    entries: List[RankedSubmission]
    stats: Optional[QuizStats]


@dataclass(frozen=True)
class StudentRank:
    quiz: QuizRecord
    submission: SubmissionRecord
    rank: int
    out_of: int


@dataclass(frozen=True)
class StudentAttempt:
    submission: SubmissionRecord
    quiz: Optional[QuizRecord]
    rank: Optional[int]
    out_of: Optional[int]


def parse_answers(raw) -> List[Answer]:
    if raw is None:
        raise ValidationError("Missing answers")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("Answers must be a list")
    answers = []
    for item in raw:
        if isinstance(item, Answer):
            answers.append(item)
            continue
        try:
            answers.append(Answer.model_validate(item))
        except SchemaError as e:
            raise ValidationError("Each answer needs an integer questionIndex and a selectedOption") from e
    return answers


class SubmissionService:
    def __init__(self, db: AsyncSession, redis=None):
        self.db = db
        self.redis = redis
        self.quizzes = QuizService(db, redis=redis)
        self.users = UserService(db)
        self.feed = LeaderboardFeed(redis)

    async def submit_quiz(self, quiz_id, student_id: str, student_email: str, answers) -> SubmissionResult:
        """
        Score a student's answers and record the attempt.

        Either a submission with its final score is stored, or an error is
        raised and nothing is stored.
        """
        if not quiz_id or not student_id or not student_email or answers is None:
            raise ValidationError("Missing quiz ID, student ID, student email, or answers")
        parsed = parse_answers(answers)

        quiz = await self.quizzes.get_quiz(quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")

        if not settings.ALLOW_MULTIPLE_ATTEMPTS and await self.has_submitted(quiz.id, student_id):
            raise DuplicateSubmissionError()

        # Profile bookkeeping must not block the submission
        try:
            await self.users.ensure_user_profile(student_id, student_email, role="student")
        except Exception as e:
            logger.warning("Error ensuring user is stored", student_id=student_id, error=repr(e))
            await rollback_session(self)

        score = score_answers(quiz.questions, parsed)
        submission = await self.create_submission(
            quiz_id=quiz.id,
            student_id=student_id,
            student_email=student_email,
            answers=normalize_answers(parsed),
            score=score,
        )
        await self.feed.notify_changed(quiz.id, reason="submitted")
        return SubmissionResult(score=submission.score, total_questions=quiz.total_questions, submission=submission)

    @storage_guard()
    async def create_submission(
        self,
        quiz_id: int,
        student_id: str,
        student_email: str,
        answers: List[Answer],
        score: int,
    ) -> SubmissionRecord:
        """Insert a submission; id and timestamp are assigned here."""
        if score < 0:
            raise ValidationError("Score cannot be negative")
        submission = Submission(
            quiz_id=quiz_id,
            student_id=student_id,
            student_email=student_email,
            answers_json=[a.to_document() for a in answers],
            score=score,
            submitted_at=datetime.utcnow(),
        )
        self.db.add(submission)
        await self.db.commit()
        await self.db.refresh(submission)
        logger.info("Submission saved", submission_id=submission.id, quiz_id=quiz_id, student_id=student_id, score=score)
        return SubmissionRecord.from_row(submission)

    @storage_guard(read_only=True)
    async def has_submitted(self, quiz_id: int, student_id: str) -> bool:
        result = await self.db.execute(
            select(Submission.id).filter(Submission.quiz_id == quiz_id, Submission.student_id == student_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    @storage_guard(read_only=True)
    async def get_submission(self, submission_id: int) -> Optional[SubmissionRecord]:
        result = await self.db.execute(select(Submission).filter(Submission.id == submission_id))
        submission = result.scalar_one_or_none()
        return SubmissionRecord.from_row(submission) if submission else None

    @storage_guard(read_only=True)
    async def list_by_quiz(self, quiz_id: int) -> List[SubmissionRecord]:
        result = await self.db.execute(
            select(Submission)
            .filter(Submission.quiz_id == quiz_id)
            .order_by(Submission.score.desc(), Submission.submitted_at.asc(), Submission.id.asc())
        )
        return [SubmissionRecord.from_row(s) for s in result.scalars().all()]

    @storage_guard(read_only=True)
    async def list_by_student(self, student_id: str) -> List[SubmissionRecord]:
        result = await self.db.execute(
            select(Submission)
            .filter(Submission.student_id == student_id)
            .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        )
        return [SubmissionRecord.from_row(s) for s in result.scalars().all()]

    @storage_guard()
    async def delete_submission(self, submission_id: int, actor_id: str) -> SubmissionRecord:
        """Delete an attempt. Only the student who made it may do so."""
        result = await self.db.execute(select(Submission).filter(Submission.id == submission_id))
        submission = result.scalar_one_or_none()
        if not submission:
            raise NotFoundError("Submission not found")
        if submission.student_id != actor_id:
            logger.warning("Submission delete denied", submission_id=submission_id, actor_id=actor_id)
            raise AuthorizationError()

        record = SubmissionRecord.from_row(submission)
        await self.db.execute(
            delete(Submission).where(Submission.id == submission_id, Submission.student_id == actor_id)
        )
        await self.db.commit()
        logger.info("Submission deleted", submission_id=submission_id, quiz_id=record.quiz_id, student_id=actor_id)
        await self.feed.notify_changed(record.quiz_id, reason="deleted")
        return record

    async def get_leaderboard(self, quiz_id: int) -> Leaderboard:
        quiz = await self.quizzes.get_quiz(quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        submissions = await self.list_by_quiz(quiz.id)
        return Leaderboard(quiz=quiz, entries=rank_submissions(submissions))

    async def get_quiz_results(self, quiz_id: int, owner_id: str) -> QuizResults:
        """Teacher view: ranked submissions plus class statistics."""
        quiz = await self.quizzes.get_owned_quiz(quiz_id, owner_id)
        submissions = await self.list_by_quiz(quiz.id)
        return QuizResults(
            quiz=quiz,
            entries=rank_submissions(submissions),
            stats=compute_stats(submissions, quiz.total_questions),
        )

    async def get_student_rank(self, quiz_id: int, student_id: str) -> StudentRank:
        """Rank of the student's most recent attempt at a quiz."""
        leaderboard = await self.get_leaderboard(quiz_id)
        own = [e for e in leaderboard.entries if e.submission.student_id == student_id]
        if not own:
            raise NotFoundError("No submission found for this quiz")
        latest = max(own, key=lambda e: (e.submission.submitted_at, e.submission.id))
        return StudentRank(
            quiz=leaderboard.quiz,
            submission=latest.submission,
            rank=latest.rank,
            out_of=len(leaderboard.entries),
        )

    async def get_student_attempts(self, student_id: str) -> List[StudentAttempt]:
        """Student dashboard: every attempt with its current rank in its quiz."""
        submissions = await self.list_by_student(student_id)
        quizzes = await self.quizzes.get_quizzes([s.quiz_id for s in submissions])

        ranks = {}
        for quiz_id in quizzes:
            ranked = rank_submissions(await self.list_by_quiz(quiz_id))
            for entry in ranked:
                ranks[entry.submission.id] = (entry.rank, len(ranked))

        attempts = []
        for submission in submissions:
            rank, out_of = ranks.get(submission.id, (None, None))
            attempts.append(StudentAttempt(
                submission=submission,
                quiz=quizzes.get(submission.quiz_id),
                rank=rank,
                out_of=out_of,
            ))
        return attempts
