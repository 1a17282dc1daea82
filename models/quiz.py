from sqlalchemy import Column, Integer, String, Text, JSON
from models.base import Base, TimestampMixin

class Quiz(Base, TimestampMixin):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(128), index=True, nullable=False)
    subject = Column(String(255), nullable=False)
    difficulty = Column(String(16), nullable=False)
    prompt = Column(Text, nullable=True)
    # [{"question": ..., "options": [...], "answer": ...}]
    questions_json = Column(JSON, nullable=False)
    join_code = Column(String(16), unique=True, index=True, nullable=False)
    time_limit_minutes = Column(Integer, nullable=False)
