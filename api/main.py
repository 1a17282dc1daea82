from fastapi import FastAPI, Depends, Header, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from redis.exceptions import RedisError
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
import structlog

from db.session import get_db, get_redis
from core.config import settings
from core.exceptions import QuizRoomError, AuthorizationError, DependencyError, NotFoundError, RateLimitError
from core.security import Identity, verify_token
from schemas.quiz import QuizRecord
from services.quiz_service import QuizService
from services.submission_service import SubmissionService
from services.leaderboard_feed import LeaderboardFeed
from services.ai_service import AIService
from services.scorer import review_answers
from services.ranking import RankedSubmission, percentage, grade
from utils.exporter import generate_results_csv, results_filename

logger = structlog.get_logger()

# API Documentation
API_DESCRIPTION = """
## QuizRoom API

Teachers create quizzes (optionally drafted by AI), students join with a room
code and submit answers, teachers review ranked results.

### Authentication

All `/api` endpoints require a signed token issued by the auth provider:

- Header: `X-Auth-Token: <token>`
- Or: `Authorization: Bearer <token>`

### Rankings

Leaderboards are ordered by score (highest first), then by submission time
(earliest first). Each response carries a `version` that changes whenever a
submission for the quiz is added or removed.
"""

TAGS_METADATA = [
    {"name": "quizzes", "description": "Quiz authoring for teachers."},
    {"name": "submissions", "description": "Joining quizzes and submitting answers."},
    {"name": "results", "description": "Leaderboards, ranks and class statistics."},
    {"name": "info", "description": "Public information endpoints."},
]

app = FastAPI(
    title="QuizRoom API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def add_cache_headers(request: Request, call_next):
    response = await call_next(request)

    # Scores and rankings change with every submission
    if request.url.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "no-store")

    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizRoomError)
async def quizroom_error_handler(request: Request, exc: QuizRoomError):
    if isinstance(exc, DependencyError):
        logger.warning("Dependency failure", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled API error", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Unexpected error"})


# === Pydantic Models with Documentation ===

class QuestionIn(BaseModel):
    """A question as written by the teacher or drafted by AI."""
    question: str = Field(..., description="The question text", max_length=1000)
    options: List[str] = Field(..., description="Exactly 4 distinct options")
    answer: str = Field(..., description="The correct option, copied from options")

    class Config:
        json_schema_extra = {
            "example": {
                "question": "What does JavaScript primarily add to HTML pages?",
                "options": ["Styling", "Structure", "Interactivity", "SEO Optimization"],
                "answer": "Interactivity"
            }
        }


class PublicQuestion(BaseModel):
    """A question as shown to a student, without the answer."""
    question: str
    options: List[str]


class GenerateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    difficulty: str = Field(..., description="easy, medium or hard")
    numQuestions: int = Field(..., ge=1)
    prompt: str = Field(..., min_length=1, max_length=2000)


class GenerateResponse(BaseModel):
    questions: List[QuestionIn]


class QuizWrite(BaseModel):
    """Request body for creating or updating a quiz."""
    subject: str = Field(..., max_length=255, examples=["JavaScript basics"])
    difficulty: str = Field(..., description="easy, medium or hard")
    questions: List[QuestionIn] = Field(..., description="List of quiz questions")
    timeLimitMinutes: int = Field(10, description="Time allowed to answer, in minutes")
    prompt: Optional[str] = Field(None, description="Prompt the quiz was generated from")


class QuizCreated(BaseModel):
    quizId: int
    joinCode: str


class QuizSummary(BaseModel):
    id: int
    subject: str
    difficulty: str
    joinCode: str
    questionsCount: int
    timeLimitMinutes: int
    createdAt: datetime


class QuizDetail(QuizSummary):
    prompt: Optional[str] = None
    questions: List[QuestionIn]
    updatedAt: datetime


class PublicQuiz(BaseModel):
    id: int
    subject: str
    difficulty: str
    joinCode: str
    timeLimitMinutes: int
    questions: List[PublicQuestion]


class AnswerIn(BaseModel):
    questionIndex: int
    selectedOption: str


class SubmitRequest(BaseModel):
    """Missing fields are reported as 400 by the submission workflow."""
    quizId: Optional[int] = None
    studentId: Optional[str] = None
    studentEmail: Optional[str] = None
    answers: Optional[List[AnswerIn]] = None


class SubmitResponse(BaseModel):
    score: int
    totalQuestions: int


class AnswerReviewOut(BaseModel):
    questionIndex: int
    question: str
    selectedOption: Optional[str] = None
    correctOption: str
    isCorrect: bool


class SubmissionDetail(BaseModel):
    submissionId: int
    quizId: int
    score: int
    totalQuestions: int
    percentage: float
    grade: str
    submittedAt: datetime
    review: List[AnswerReviewOut]


class AttemptOut(BaseModel):
    submissionId: int
    quizId: int
    subject: Optional[str] = None
    score: int
    totalQuestions: Optional[int] = None
    percentage: Optional[float] = None
    grade: Optional[str] = None
    rank: Optional[int] = None
    outOf: Optional[int] = None
    submittedAt: datetime


class LeaderboardRow(BaseModel):
    rank: int
    submissionId: int
    studentId: str
    displayName: str
    score: int
    percentage: float
    submittedAt: datetime


class LeaderboardResponse(BaseModel):
    quizId: int
    subject: str
    totalQuestions: int
    version: int
    entries: List[LeaderboardRow]


class RankResponse(BaseModel):
    quizId: int
    submissionId: int
    score: int
    totalQuestions: int
    grade: str
    rank: int
    outOf: int


class StatsOut(BaseModel):
    submissionCount: int
    averageScore: float = Field(..., description="Mean score, rounded to one decimal")
    maxScore: int
    minScore: int
    passCount: int
    passRate: float = Field(..., description="Percent of submissions at or above the pass mark")


class ResultRow(BaseModel):
    rank: int
    submissionId: int
    studentId: str
    studentEmail: str
    score: int
    percentage: float
    grade: str
    submittedAt: datetime


class ResultsResponse(BaseModel):
    quizId: int
    subject: str
    totalQuestions: int
    stats: Optional[StatsOut] = Field(None, description="null when there are no submissions yet")
    entries: List[ResultRow]


class SuccessResponse(BaseModel):
    """Generic success response."""
    status: str = Field(default="success", description="Operation status")


# === Auth ===

def get_current_user(
    request: Request,
    x_auth_token: str = Header(None),
    authorization: str = Header(None),
) -> Identity:
    token = x_auth_token
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()

    identity = verify_token(token)
    if identity:
        return identity

    logger.warning("Auth failed: Missing or invalid credentials", path=request.url.path)
    raise HTTPException(status_code=401, detail="Unauthorized")


def require_teacher(user: Identity = Depends(get_current_user)) -> Identity:
    if user.role != "teacher":
        raise AuthorizationError()
    return user


def require_student(user: Identity = Depends(get_current_user)) -> Identity:
    if user.role != "student":
        raise AuthorizationError()
    return user


# === Serializers ===

def _quiz_summary(quiz: QuizRecord) -> dict:
    return {
        "id": quiz.id,
        "subject": quiz.subject,
        "difficulty": quiz.difficulty,
        "joinCode": quiz.join_code,
        "questionsCount": quiz.total_questions,
        "timeLimitMinutes": quiz.time_limit_minutes,
        "createdAt": quiz.created_at,
    }


def _quiz_detail(quiz: QuizRecord) -> dict:
    return {
        **_quiz_summary(quiz),
        "prompt": quiz.prompt,
        "questions": [q.to_document() for q in quiz.questions],
        "updatedAt": quiz.updated_at,
    }


def _display_name(email: str, student_id: str) -> str:
    if email and "@" in email:
        return email.split("@", 1)[0]
    return f"Student {student_id[-4:]}"


def _stats_out(stats) -> Optional[dict]:
    if stats is None:
        return None
    return {
        "submissionCount": stats.submission_count,
        "averageScore": round(stats.average_score, 1),
        "maxScore": stats.max_score,
        "minScore": stats.min_score,
        "passCount": stats.pass_count,
        "passRate": round(stats.pass_rate, 1),
    }


def _result_row(entry: RankedSubmission, total: int) -> dict:
    s = entry.submission
    return {
        "rank": entry.rank,
        "submissionId": s.id,
        "studentId": s.student_id,
        "studentEmail": s.student_email,
        "score": s.score,
        "percentage": round(percentage(s.score, total), 1),
        "grade": grade(s.score, total),
        "submittedAt": s.submitted_at,
    }


# === Quizzes ===

@app.post(
    "/api/quizzes/generate",
    response_model=GenerateResponse,
    tags=["quizzes"],
    summary="Draft questions with AI",
    description="Asks the AI provider for questions. Nothing is saved; the teacher edits and then creates the quiz.",
    responses={429: {"description": "Please wait before generating again."}, 503: {"description": "AI provider failed"}},
)
async def generate_quiz(
    body: GenerateRequest,
    user: Identity = Depends(require_teacher),
    redis = Depends(get_redis),
):
    cooldown_key = f"rl:generate:{user.user_id}"
    try:
        allowed = await redis.set(cooldown_key, 1, ex=settings.AI_GENERATION_COOLDOWN_SECONDS, nx=True)
    except (RedisError, OSError) as e:
        logger.warning("Cooldown check failed", error=str(e))
        allowed = True
    if not allowed:
        raise RateLimitError()

    questions, error = await AIService().generate_quiz(body.subject, body.difficulty, body.numQuestions, body.prompt)
    if error:
        logger.warning("Quiz generation failed", user_id=user.user_id, error=error)
        raise DependencyError("Failed to generate quiz. Please ensure the prompt is clear and try again.")
    return {"questions": questions}


@app.post(
    "/api/quizzes",
    response_model=QuizCreated,
    status_code=201,
    tags=["quizzes"],
    summary="Create quiz",
    responses={400: {"description": "Invalid quiz"}},
)
async def create_quiz(body: QuizWrite, user: Identity = Depends(require_teacher), db: AsyncSession = Depends(get_db)):
    service = QuizService(db)
    quiz = await service.create_quiz(
        owner_id=user.user_id,
        subject=body.subject,
        difficulty=body.difficulty,
        questions=[q.model_dump() for q in body.questions],
        time_limit_minutes=body.timeLimitMinutes,
        prompt=body.prompt,
    )
    return {"quizId": quiz.id, "joinCode": quiz.join_code}


@app.get("/api/quizzes", response_model=List[QuizSummary], tags=["quizzes"], summary="List own quizzes")
async def list_quizzes(user: Identity = Depends(require_teacher), db: AsyncSession = Depends(get_db)):
    """Get all quizzes for the current teacher, newest first."""
    quizzes = await QuizService(db).list_owner_quizzes(user.user_id)
    return [_quiz_summary(q) for q in quizzes]


@app.get(
    "/api/quizzes/{quiz_id}",
    response_model=QuizDetail,
    tags=["quizzes"],
    summary="Get quiz with answer key",
    responses={403: {"description": "Not the owner"}, 404: {"description": "Quiz not found"}},
)
async def get_quiz(quiz_id: int, user: Identity = Depends(require_teacher), db: AsyncSession = Depends(get_db)):
    quiz = await QuizService(db).get_owned_quiz(quiz_id, user.user_id)
    return _quiz_detail(quiz)


@app.put(
    "/api/quizzes/{quiz_id}",
    response_model=QuizDetail,
    tags=["quizzes"],
    summary="Update quiz",
    responses={403: {"description": "Not the owner"}, 404: {"description": "Quiz not found"}},
)
async def update_quiz(
    quiz_id: int,
    body: QuizWrite,
    user: Identity = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    quiz = await QuizService(db).update_quiz(
        quiz_id,
        user.user_id,
        subject=body.subject,
        difficulty=body.difficulty,
        questions=[q.model_dump() for q in body.questions],
        time_limit_minutes=body.timeLimitMinutes,
    )
    return _quiz_detail(quiz)


@app.delete(
    "/api/quizzes/{quiz_id}",
    response_model=SuccessResponse,
    tags=["quizzes"],
    summary="Delete quiz and its submissions",
)
async def delete_quiz(
    quiz_id: int,
    user: Identity = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
    redis = Depends(get_redis),
):
    await QuizService(db, redis=redis).delete_quiz(quiz_id, user.user_id)
    return {"status": "success"}


# === Submissions ===

@app.get(
    "/api/join/{join_code}",
    response_model=PublicQuiz,
    tags=["submissions"],
    summary="Find a quiz by room code",
    responses={404: {"description": "Quiz not found"}},
)
async def join_quiz(join_code: str, user: Identity = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    quiz = await QuizService(db).get_quiz_by_join_code(join_code)
    if not quiz:
        raise NotFoundError("Quiz not found")
    return {
        "id": quiz.id,
        "subject": quiz.subject,
        "difficulty": quiz.difficulty,
        "joinCode": quiz.join_code,
        "timeLimitMinutes": quiz.time_limit_minutes,
        "questions": [{"question": q.text, "options": q.options} for q in quiz.questions],
    }


@app.post(
    "/api/submissions",
    response_model=SubmitResponse,
    status_code=201,
    tags=["submissions"],
    summary="Submit answers",
    responses={
        400: {"description": "Missing quiz ID, student ID, student email, or answers"},
        404: {"description": "Quiz not found"},
        409: {"description": "Already submitted (when repeats are disabled)"},
    },
)
async def submit_quiz(
    body: SubmitRequest,
    user: Identity = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    redis = Depends(get_redis),
):
    if body.studentId and body.studentId != user.user_id:
        raise AuthorizationError()

    answers = [a.model_dump() for a in body.answers] if body.answers is not None else None
    result = await SubmissionService(db, redis=redis).submit_quiz(
        body.quizId, body.studentId, body.studentEmail, answers
    )
    return {"score": result.score, "totalQuestions": result.total_questions}


@app.get("/api/submissions/me", response_model=List[AttemptOut], tags=["submissions"], summary="List own attempts")
async def list_my_submissions(user: Identity = Depends(require_student), db: AsyncSession = Depends(get_db)):
    attempts = await SubmissionService(db).get_student_attempts(user.user_id)
    rows = []
    for attempt in attempts:
        s, quiz = attempt.submission, attempt.quiz
        total = quiz.total_questions if quiz else None
        rows.append({
            "submissionId": s.id,
            "quizId": s.quiz_id,
            "subject": quiz.subject if quiz else None,
            "score": s.score,
            "totalQuestions": total,
            "percentage": round(percentage(s.score, total), 1) if quiz else None,
            "grade": grade(s.score, total) if quiz else None,
            "rank": attempt.rank,
            "outOf": attempt.out_of,
            "submittedAt": s.submitted_at,
        })
    return rows


@app.get(
    "/api/submissions/{submission_id}",
    response_model=SubmissionDetail,
    tags=["submissions"],
    summary="Review one attempt",
    responses={403: {"description": "Not your submission"}, 404: {"description": "Submission or quiz not found"}},
)
async def get_submission(submission_id: int, user: Identity = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    service = SubmissionService(db)
    submission = await service.get_submission(submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    if submission.student_id != user.user_id:
        raise AuthorizationError()
    quiz = await service.quizzes.get_quiz(submission.quiz_id)
    if not quiz:
        raise NotFoundError("Quiz not found")

    total = quiz.total_questions
    return {
        "submissionId": submission.id,
        "quizId": quiz.id,
        "score": submission.score,
        "totalQuestions": total,
        "percentage": round(percentage(submission.score, total), 1),
        "grade": grade(submission.score, total),
        "submittedAt": submission.submitted_at,
        "review": [
            {
                "questionIndex": r.question_index,
                "question": r.question,
                "selectedOption": r.selected_option,
                "correctOption": r.correct_option,
                "isCorrect": r.is_correct,
            }
            for r in review_answers(quiz.questions, submission.answers)
        ],
    }


@app.delete(
    "/api/submissions/{submission_id}",
    response_model=SuccessResponse,
    tags=["submissions"],
    summary="Delete own attempt",
    responses={403: {"description": "Not your submission"}, 404: {"description": "Submission not found"}},
)
async def delete_submission(
    submission_id: int,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis = Depends(get_redis),
):
    await SubmissionService(db, redis=redis).delete_submission(submission_id, user.user_id)
    return {"status": "success"}


# === Results ===

@app.get(
    "/api/quizzes/{quiz_id}/leaderboard",
    response_model=LeaderboardResponse,
    tags=["results"],
    summary="Quiz leaderboard",
    description="Poll this endpoint for live updates; `version` changes when submissions change.",
)
async def get_leaderboard(
    quiz_id: int,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis = Depends(get_redis),
):
    leaderboard = await SubmissionService(db).get_leaderboard(quiz_id)
    total = leaderboard.quiz.total_questions
    return {
        "quizId": leaderboard.quiz.id,
        "subject": leaderboard.quiz.subject,
        "totalQuestions": total,
        "version": await LeaderboardFeed(redis).get_version(quiz_id),
        "entries": [
            {
                "rank": e.rank,
                "submissionId": e.submission.id,
                "studentId": e.submission.student_id,
                "displayName": _display_name(e.submission.student_email, e.submission.student_id),
                "score": e.submission.score,
                "percentage": round(percentage(e.submission.score, total), 1),
                "submittedAt": e.submission.submitted_at,
            }
            for e in leaderboard.entries
        ],
    }


@app.get(
    "/api/quizzes/{quiz_id}/rank",
    response_model=RankResponse,
    tags=["results"],
    summary="Own rank in a quiz",
    responses={404: {"description": "Quiz not found or not attempted"}},
)
async def get_my_rank(quiz_id: int, user: Identity = Depends(require_student), db: AsyncSession = Depends(get_db)):
    rank = await SubmissionService(db).get_student_rank(quiz_id, user.user_id)
    total = rank.quiz.total_questions
    return {
        "quizId": rank.quiz.id,
        "submissionId": rank.submission.id,
        "score": rank.submission.score,
        "totalQuestions": total,
        "grade": grade(rank.submission.score, total),
        "rank": rank.rank,
        "outOf": rank.out_of,
    }


@app.get(
    "/api/quizzes/{quiz_id}/results",
    response_model=ResultsResponse,
    tags=["results"],
    summary="Teacher results",
    responses={403: {"description": "Not the owner"}, 404: {"description": "Quiz not found"}},
)
async def get_results(quiz_id: int, user: Identity = Depends(require_teacher), db: AsyncSession = Depends(get_db)):
    results = await SubmissionService(db).get_quiz_results(quiz_id, user.user_id)
    total = results.quiz.total_questions
    return {
        "quizId": results.quiz.id,
        "subject": results.quiz.subject,
        "totalQuestions": total,
        "stats": _stats_out(results.stats),
        "entries": [_result_row(e, total) for e in results.entries],
    }


@app.get(
    "/api/quizzes/{quiz_id}/results.csv",
    tags=["results"],
    summary="Export results as CSV",
    response_class=Response,
)
async def export_results(quiz_id: int, user: Identity = Depends(require_teacher), db: AsyncSession = Depends(get_db)):
    results = await SubmissionService(db).get_quiz_results(quiz_id, user.user_id)
    return Response(
        content=generate_results_csv(results.quiz, results.entries),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{results_filename(results.quiz)}"'},
    )


@app.get("/health", tags=["info"], summary="Health check")
async def health():
    return {"status": "ok", "env": settings.ENV}
