from datetime import datetime
from sqlalchemy import Column, Integer, String, JSON, DateTime, Index
from models.base import Base

class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    # Weak reference: no FK, quiz deletion removes submissions explicitly
    quiz_id = Column(Integer, index=True, nullable=False)
    student_id = Column(String(128), index=True, nullable=False)
    student_email = Column(String(255), nullable=False)
    # [{"questionIndex": ..., "selectedOption": ...}]
    answers_json = Column(JSON, nullable=False)
    score = Column(Integer, nullable=False)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

# Leaderboard order: score desc, submitted_at asc, id asc
Index("idx_submissions_quiz_rank", Submission.quiz_id, Submission.score, Submission.submitted_at)
Index("idx_submissions_student_quiz", Submission.student_id, Submission.quiz_id)
