import pytest
from unittest.mock import patch
from sqlalchemy import select, func
from models.quiz import Quiz
from models.submission import Submission
from services.quiz_service import QuizService
from services.submission_service import SubmissionService
from core.exceptions import ValidationError, NotFoundError, AuthorizationError, DependencyError
from core.config import settings


async def create(db, sample_questions, owner="teacher-1", **kwargs):
    params = dict(subject="Letters", difficulty="easy", questions=sample_questions, time_limit_minutes=10)
    params.update(kwargs)
    return await QuizService(db).create_quiz(owner, **params)


async def test_create_quiz_assigns_join_code(db, sample_questions):
    quiz = await create(db, sample_questions, prompt="alphabet")
    assert quiz.id
    assert len(quiz.join_code) == settings.JOIN_CODE_LENGTH
    assert quiz.join_code == quiz.join_code.upper()
    assert quiz.total_questions == 4
    assert quiz.questions[2].correct_option == "C"
    assert quiz.prompt == "alphabet"


async def test_join_code_lookup_is_case_insensitive(db, sample_questions):
    quiz = await create(db, sample_questions)
    service = QuizService(db)
    found = await service.get_quiz_by_join_code(quiz.join_code.lower())
    assert found.id == quiz.id
    assert await service.get_quiz_by_join_code("NOPE00") is None
    assert await service.get_quiz_by_join_code("") is None


async def test_join_code_collision_retries(db, sample_questions):
    first = await create(db, sample_questions)
    codes = iter([first.join_code, first.join_code, "ZZZ999"])
    with patch("services.quiz_service.generate_join_code", side_effect=lambda: next(codes)):
        second = await create(db, sample_questions)
    assert second.join_code == "ZZZ999"


async def test_join_code_exhaustion_is_dependency_error(db, sample_questions):
    first = await create(db, sample_questions)
    with patch("services.quiz_service.generate_join_code", return_value=first.join_code):
        with pytest.raises(DependencyError):
            await create(db, sample_questions)


@pytest.mark.parametrize("bad", [
    [],
    [{"question": "Q", "options": ["A", "B", "C"], "answer": "A"}],
    [{"question": "Q", "options": ["A", "A", "B", "C"], "answer": "A"}],
    [{"question": "Q", "options": ["A", "B", "C", "D"], "answer": "E"}],
    [{"question": "", "options": ["A", "B", "C", "D"], "answer": "A"}],
    [{"question": "   ", "options": ["A", "B", "C", "D"], "answer": "A"}],
    [{"options": ["A", "B", "C", "D"], "answer": "A"}],
])
async def test_invalid_questions_rejected(db, bad):
    with pytest.raises(ValidationError):
        await create(db, bad)


async def test_invalid_difficulty_and_time_limit(db, sample_questions):
    with pytest.raises(ValidationError):
        await create(db, sample_questions, difficulty="impossible")
    with pytest.raises(ValidationError):
        await create(db, sample_questions, time_limit_minutes=0)


async def test_list_owner_quizzes_only_returns_own(db, sample_questions):
    await create(db, sample_questions, owner="teacher-1")
    await create(db, sample_questions, owner="teacher-1", subject="More letters")
    await create(db, sample_questions, owner="teacher-2")
    quizzes = await QuizService(db).list_owner_quizzes("teacher-1")
    assert len(quizzes) == 2
    assert {q.owner_id for q in quizzes} == {"teacher-1"}


async def test_update_requires_owner(db, sample_questions):
    quiz = await create(db, sample_questions)
    service = QuizService(db)
    with pytest.raises(AuthorizationError):
        await service.update_quiz(quiz.id, "teacher-2", "X", "hard", sample_questions, 5)
    updated = await service.update_quiz(quiz.id, "teacher-1", "Renamed", "hard", sample_questions[:2], 5)
    assert updated.subject == "Renamed"
    assert updated.total_questions == 2
    assert updated.join_code == quiz.join_code


async def test_questions_locked_once_submitted(db, sample_questions, redis):
    quiz = await create(db, sample_questions)
    submissions = SubmissionService(db, redis=redis)
    await submissions.submit_quiz(quiz.id, "s1", "s1@example.com", [
        {"questionIndex": i, "selectedOption": opt} for i, opt in enumerate("ABCD")
    ])
    service = QuizService(db)

    with pytest.raises(ValidationError, match="cannot be changed"):
        await service.update_quiz(quiz.id, "teacher-1", "Letters", "easy", sample_questions[:1], 10)

    updated = await service.update_quiz(quiz.id, "teacher-1", "Renamed", "hard", sample_questions, 15)
    assert updated.subject == "Renamed"
    assert updated.time_limit_minutes == 15
    assert updated.total_questions == 4

    results = await submissions.get_quiz_results(quiz.id, "teacher-1")
    assert results.stats.max_score <= results.quiz.total_questions


async def test_delete_quiz_removes_its_submissions(db, sample_questions, redis):
    quiz = await create(db, sample_questions)
    other = await create(db, sample_questions)
    submissions = SubmissionService(db, redis=redis)
    await submissions.submit_quiz(quiz.id, "s1", "s1@example.com", [])
    await submissions.submit_quiz(other.id, "s1", "s1@example.com", [])

    with pytest.raises(AuthorizationError):
        await QuizService(db, redis=redis).delete_quiz(quiz.id, "intruder")

    removed = await QuizService(db, redis=redis).delete_quiz(quiz.id, "teacher-1")
    assert removed == 1
    assert await QuizService(db).get_quiz(quiz.id) is None
    remaining = (await db.execute(select(func.count(Submission.id)))).scalar()
    assert remaining == 1

    with pytest.raises(NotFoundError):
        await QuizService(db).delete_quiz(quiz.id, "teacher-1")


async def test_malformed_stored_quiz_is_rejected(db):
    db.add(Quiz(
        owner_id="t", subject="Broken", difficulty="easy", questions_json=[{"question": "Q", "options": ["A"], "answer": "B"}],
        join_code="BROKEN", time_limit_minutes=5,
    ))
    await db.commit()
    with pytest.raises(ValidationError):
        await QuizService(db).get_quiz_by_join_code("BROKEN")
