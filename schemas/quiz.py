"""
Typed records for quizzes, submissions and users.

Rows coming out of storage are converted through these models so that a
document missing an invariant-bearing field (for example a question whose
answer is not one of its options) is rejected instead of trusted.
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError
from core.exceptions import ValidationError

OPTIONS_PER_QUESTION = 4
DIFFICULTIES = ("easy", "medium", "hard")

Difficulty = Literal["easy", "medium", "hard"]
Role = Literal["teacher", "student"]


class Question(BaseModel):
    """A multiple-choice question. Stored as {"question", "options", "answer"}."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    text: str = Field(..., alias="question", min_length=1)
    options: List[str] = Field(..., min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION)
    correct_option: str = Field(..., alias="answer")

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, text: str) -> str:
        if not text.strip():
            raise ValueError("question must not be blank")
        return text

    @field_validator("options")
    @classmethod
    def options_distinct(cls, options: List[str]) -> List[str]:
        if any(not opt.strip() for opt in options):
            raise ValueError("options must not be blank")
        if len(set(options)) != len(options):
            raise ValueError("options must be distinct")
        return options

    @model_validator(mode="after")
    def answer_is_an_option(self):
        if self.correct_option not in self.options:
            raise ValueError("answer must be one of the options")
        return self

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class Answer(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    question_index: int = Field(..., alias="questionIndex")
    selected_option: str = Field(..., alias="selectedOption")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class QuizRecord(BaseModel):
    id: int
    owner_id: str
    subject: str
    difficulty: Difficulty
    prompt: Optional[str] = None
    questions: List[Question] = Field(..., min_length=1)
    join_code: str
    time_limit_minutes: int = Field(..., gt=0)
    created_at: datetime
    updated_at: datetime

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @classmethod
    def from_row(cls, row) -> "QuizRecord":
        try:
            return cls(
                id=row.id,
                owner_id=row.owner_id,
                subject=row.subject,
                difficulty=row.difficulty,
                prompt=row.prompt,
                questions=row.questions_json or [],
                join_code=row.join_code,
                time_limit_minutes=row.time_limit_minutes,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
        except SchemaError as e:
            raise ValidationError(f"Stored quiz {row.id} is malformed: {e.error_count()} invalid field(s)") from e


class SubmissionRecord(BaseModel):
    id: int
    quiz_id: int
    student_id: str
    student_email: str
    answers: List[Answer]
    score: int = Field(..., ge=0)
    submitted_at: datetime

    @classmethod
    def from_row(cls, row) -> "SubmissionRecord":
        try:
            return cls(
                id=row.id,
                quiz_id=row.quiz_id,
                student_id=row.student_id,
                student_email=row.student_email,
                answers=row.answers_json or [],
                score=row.score,
                submitted_at=row.submitted_at,
            )
        except SchemaError as e:
            raise ValidationError(f"Stored submission {row.id} is malformed") from e


class UserRecord(BaseModel):
    id: str
    email: str
    role: Role
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "UserRecord":
        try:
            return cls(id=row.id, email=row.email, role=row.role, created_at=row.created_at)
        except SchemaError as e:
            raise ValidationError(f"Stored user {row.id} is malformed") from e


def parse_questions(raw: list) -> List[Question]:
    """Validate raw question documents, raising ValidationError on the first bad one."""
    if not raw:
        raise ValidationError("A quiz needs at least one question")
    questions = []
    for i, item in enumerate(raw):
        try:
            questions.append(item if isinstance(item, Question) else Question.model_validate(item))
        except SchemaError as e:
            raise ValidationError(
                f"Invalid question {i}: each question needs text, 4 distinct options and an answer that is one of them"
            ) from e
    return questions
