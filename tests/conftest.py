"""
Pytest configuration and fixtures for QuizRoom tests.
"""
import sys
import os
from datetime import datetime, timedelta
import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("GROQ_API_KEY", "")

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from models.base import Base
import models.quiz  # noqa: F401
import models.submission  # noqa: F401
import models.user  # noqa: F401
from schemas.quiz import Question, SubmissionRecord


class FakeRedis:
    """In-memory stand-in for the few Redis commands the app uses."""

    def __init__(self):
        self.data = {}
        self.published = []

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        return True

    async def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 0


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def sample_questions():
    """Four questions whose answers are A, B, C, D in order"""
    return [
        {"question": "First letter?", "options": ["A", "X", "Y", "Z"], "answer": "A"},
        {"question": "Second letter?", "options": ["X", "B", "Y", "Z"], "answer": "B"},
        {"question": "Third letter?", "options": ["X", "Y", "C", "Z"], "answer": "C"},
        {"question": "Fourth letter?", "options": ["X", "Y", "Z", "D"], "answer": "D"},
    ]


@pytest.fixture
def questions(sample_questions):
    return [Question.model_validate(q) for q in sample_questions]


@pytest.fixture
def make_submission():
    """Build a SubmissionRecord with just the fields ranking cares about."""
    base = datetime(2026, 1, 1, 9, 0, 0)

    def _make(id, score, seconds=0, student_id=None, quiz_id=1):
        return SubmissionRecord(
            id=id,
            quiz_id=quiz_id,
            student_id=student_id or f"student-{id}",
            student_email=f"student{id}@example.com",
            answers=[],
            score=score,
            submitted_at=base + timedelta(seconds=seconds),
        )
    return _make
