from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from models.quiz import Quiz
from models.submission import Submission
from schemas.quiz import QuizRecord, DIFFICULTIES, parse_questions
from db.guard import storage_guard
from services.leaderboard_feed import LeaderboardFeed
from utils.join_code import generate_join_code, normalize_join_code
from core.exceptions import ValidationError, NotFoundError, AuthorizationError, DependencyError
from core.logger import logger
from core.config import settings

class QuizService:
    def __init__(self, db: AsyncSession, redis=None):
        self.db = db
        self.redis = redis

    def _validate(self, subject: str, difficulty: str, questions: list, time_limit_minutes: int):
        if not subject or not subject.strip():
            raise ValidationError("Subject is required")
        if difficulty not in DIFFICULTIES:
            raise ValidationError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
        if not isinstance(time_limit_minutes, int) or time_limit_minutes <= 0:
            raise ValidationError("Time limit must be a positive number of minutes")
        parsed = parse_questions(questions)
        if len(parsed) > settings.MAX_QUESTIONS_PER_QUIZ:
            raise ValidationError(f"A quiz can have at most {settings.MAX_QUESTIONS_PER_QUIZ} questions")
        return [q.to_document() for q in parsed]

    async def _join_code_taken(self, code: str) -> bool:
        result = await self.db.execute(select(Quiz.id).filter(Quiz.join_code == code))
        return result.scalar_one_or_none() is not None

    async def _has_submissions(self, quiz_id: int) -> bool:
        result = await self.db.execute(select(Submission.id).filter(Submission.quiz_id == quiz_id).limit(1))
        return result.scalar_one_or_none() is not None

    @storage_guard()
    async def create_quiz(
        self,
        owner_id: str,
        subject: str,
        difficulty: str,
        questions: list,
        time_limit_minutes: int,
        prompt: Optional[str] = None,
    ) -> QuizRecord:
        documents = self._validate(subject, difficulty, questions, time_limit_minutes)

        for attempt in range(1, settings.JOIN_CODE_ATTEMPTS + 1):
            code = generate_join_code()
            if await self._join_code_taken(code):
                logger.info("Join code collision", attempt=attempt)
                continue

            quiz = Quiz(
                owner_id=owner_id,
                subject=subject.strip(),
                difficulty=difficulty,
                prompt=prompt,
                questions_json=documents,
                join_code=code,
                time_limit_minutes=time_limit_minutes,
            )
            self.db.add(quiz)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another writer took the code between the check and the insert
                await self.db.rollback()
                logger.info("Join code collision on insert", attempt=attempt)
                continue

            await self.db.refresh(quiz)
            logger.info("Quiz saved", owner_id=owner_id, quiz_id=quiz.id, join_code=code, questions=len(documents))
            return QuizRecord.from_row(quiz)

        logger.error("Could not allocate a join code", owner_id=owner_id)
        raise DependencyError("Could not allocate a join code, please try again")

    @storage_guard(read_only=True)
    async def get_quiz(self, quiz_id: int) -> Optional[QuizRecord]:
        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id))
        quiz = result.scalar_one_or_none()
        return QuizRecord.from_row(quiz) if quiz else None

    @storage_guard(read_only=True)
    async def get_quiz_by_join_code(self, code: str) -> Optional[QuizRecord]:
        code = normalize_join_code(code)
        if not code:
            return None
        result = await self.db.execute(select(Quiz).filter(Quiz.join_code == code))
        quiz = result.scalar_one_or_none()
        return QuizRecord.from_row(quiz) if quiz else None

    @storage_guard(read_only=True)
    async def get_quizzes(self, quiz_ids: List[int]) -> dict:
        """Map of quiz id to record for the ids that still exist."""
        if not quiz_ids:
            return {}
        result = await self.db.execute(select(Quiz).filter(Quiz.id.in_(set(quiz_ids))))
        return {q.id: QuizRecord.from_row(q) for q in result.scalars().all()}

    @storage_guard(read_only=True)
    async def list_owner_quizzes(self, owner_id: str) -> List[QuizRecord]:
        result = await self.db.execute(
            select(Quiz).filter(Quiz.owner_id == owner_id).order_by(Quiz.created_at.desc(), Quiz.id.desc())
        )
        return [QuizRecord.from_row(q) for q in result.scalars().all()]

    async def get_owned_quiz(self, quiz_id: int, owner_id: str) -> QuizRecord:
        """Fetch a quiz, ensuring it belongs to the caller."""
        quiz = await self.get_quiz(quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        if quiz.owner_id != owner_id:
            logger.warning("Quiz access denied", quiz_id=quiz_id, actor_id=owner_id)
            raise AuthorizationError()
        return quiz

    @storage_guard()
    async def update_quiz(
        self,
        quiz_id: int,
        owner_id: str,
        subject: str,
        difficulty: str,
        questions: list,
        time_limit_minutes: int,
    ) -> QuizRecord:
        """
        Update an existing quiz. Join code and owner never change.

        Once a student has submitted, only subject, difficulty and time limit
        may change; stored scores were computed against the current questions.
        """
        documents = self._validate(subject, difficulty, questions, time_limit_minutes)
        await self.get_owned_quiz(quiz_id, owner_id)

        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id))
        quiz = result.scalar_one()
        if documents != quiz.questions_json and await self._has_submissions(quiz_id):
            logger.warning("Question edit refused, quiz has submissions", quiz_id=quiz_id, owner_id=owner_id)
            raise ValidationError("Questions cannot be changed after students have submitted")
        quiz.subject = subject.strip()
        quiz.difficulty = difficulty
        quiz.questions_json = documents
        quiz.time_limit_minutes = time_limit_minutes
        quiz.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(quiz)
        logger.info("Quiz updated", quiz_id=quiz_id, owner_id=owner_id)
        return QuizRecord.from_row(quiz)

    @storage_guard()
    async def delete_quiz(self, quiz_id: int, owner_id: str) -> int:
        """Delete a quiz and its submissions in one transaction. Returns the number of submissions removed."""
        await self.get_owned_quiz(quiz_id, owner_id)

        result = await self.db.execute(delete(Submission).where(Submission.quiz_id == quiz_id))
        removed = result.rowcount or 0
        await self.db.execute(delete(Quiz).where(Quiz.id == quiz_id, Quiz.owner_id == owner_id))
        await self.db.commit()
        logger.info("Quiz deleted", quiz_id=quiz_id, owner_id=owner_id, submissions_removed=removed)
        await LeaderboardFeed(self.redis).forget(quiz_id)
        return removed
