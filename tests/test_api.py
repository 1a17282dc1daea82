import csv
import io
import pytest
import httpx
from unittest.mock import AsyncMock, patch
from api.main import app
from db.session import get_db, get_redis
from core.security import issue_token


def auth(user_id, role):
    return {"X-Auth-Token": issue_token(user_id, role)}


TEACHER = auth("teacher-1", "teacher")
OTHER_TEACHER = auth("teacher-2", "teacher")
ALICE = auth("alice", "student")
BOB = auth("bob", "student")


@pytest.fixture
async def client(session_factory, redis):
    async def override_db():
        async with session_factory() as session:
            yield session

    async def override_redis():
        yield redis

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_redis] = override_redis
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def created_quiz(client, sample_questions):
    resp = await client.post("/api/quizzes", headers=TEACHER, json={
        "subject": "Letters", "difficulty": "easy", "questions": sample_questions, "timeLimitMinutes": 5,
    })
    assert resp.status_code == 201
    return resp.json()


def submission(quiz_id, student_id, *options):
    return {
        "quizId": quiz_id,
        "studentId": student_id,
        "studentEmail": f"{student_id}@example.com",
        "answers": [{"questionIndex": i, "selectedOption": opt} for i, opt in enumerate(options)],
    }


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_requires_token(client):
    assert (await client.get("/api/quizzes")).status_code == 401
    assert (await client.get("/api/quizzes", headers={"X-Auth-Token": "alice:student:1:bad"})).status_code == 401


async def test_bearer_header_accepted(client):
    resp = await client.get("/api/quizzes", headers={"Authorization": f"Bearer {issue_token('teacher-1', 'teacher')}"})
    assert resp.status_code == 200


async def test_students_cannot_author(client, sample_questions):
    resp = await client.post("/api/quizzes", headers=ALICE, json={
        "subject": "Letters", "difficulty": "easy", "questions": sample_questions,
    })
    assert resp.status_code == 403
    assert resp.json() == {"error": "Not permitted"}


async def test_invalid_quiz_is_400(client, sample_questions):
    bad = [dict(sample_questions[0], answer="Nope")]
    resp = await client.post("/api/quizzes", headers=TEACHER, json={
        "subject": "Letters", "difficulty": "easy", "questions": bad,
    })
    assert resp.status_code == 400
    assert "Invalid question 0" in resp.json()["error"]


async def test_join_hides_answer_key(client, created_quiz):
    resp = await client.get(f"/api/join/{created_quiz['joinCode'].lower()}", headers=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == created_quiz["quizId"]
    assert len(body["questions"]) == 4
    assert all(set(q) == {"question", "options"} for q in body["questions"])

    assert (await client.get("/api/join/NOPE00", headers=ALICE)).status_code == 404


async def test_submit_and_rank_scenario(client, created_quiz):
    quiz_id = created_quiz["quizId"]
    resp = await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A", "B", "X", "D"))
    assert resp.status_code == 201
    assert resp.json() == {"score": 3, "totalQuestions": 4}

    resp = await client.post("/api/submissions", headers=BOB, json=submission(quiz_id, "bob", "A", "B", "C", "D"))
    assert resp.json() == {"score": 4, "totalQuestions": 4}

    board = (await client.get(f"/api/quizzes/{quiz_id}/leaderboard", headers=ALICE)).json()
    assert [(e["rank"], e["displayName"]) for e in board["entries"]] == [(1, "bob"), (2, "alice")]
    assert board["version"] == 2
    assert resp.headers["cache-control"] == "no-store"

    rank = (await client.get(f"/api/quizzes/{quiz_id}/rank", headers=ALICE)).json()
    assert rank["rank"] == 2 and rank["outOf"] == 2 and rank["grade"] == "B"


async def test_submit_validation_and_not_found(client, created_quiz):
    resp = await client.post("/api/submissions", headers=ALICE, json={"quizId": created_quiz["quizId"], "studentId": "alice"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing quiz ID, student ID, student email, or answers"

    resp = await client.post("/api/submissions", headers=ALICE, json=submission(999, "alice", "A"))
    assert resp.status_code == 404
    assert resp.json()["error"] == "Quiz not found"


async def test_submit_as_someone_else_forbidden(client, created_quiz):
    resp = await client.post("/api/submissions", headers=ALICE, json=submission(created_quiz["quizId"], "bob", "A"))
    assert resp.status_code == 403
    resp = await client.post("/api/submissions", headers=TEACHER, json=submission(created_quiz["quizId"], "teacher-1", "A"))
    assert resp.status_code == 403


async def test_delete_submission_ownership(client, created_quiz):
    quiz_id = created_quiz["quizId"]
    await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A"))
    mine = (await client.get("/api/submissions/me", headers=ALICE)).json()
    submission_id = mine[0]["submissionId"]
    assert mine[0]["rank"] == 1 and mine[0]["outOf"] == 1 and mine[0]["subject"] == "Letters"

    resp = await client.delete(f"/api/submissions/{submission_id}", headers=BOB)
    assert resp.status_code == 403
    assert resp.json() == {"error": "Not permitted"}

    resp = await client.delete(f"/api/submissions/{submission_id}", headers=ALICE)
    assert resp.status_code == 200

    assert (await client.get("/api/submissions/me", headers=ALICE)).json() == []
    board = (await client.get(f"/api/quizzes/{quiz_id}/leaderboard", headers=ALICE)).json()
    assert board["entries"] == []
    assert (await client.delete(f"/api/submissions/{submission_id}", headers=ALICE)).status_code == 404


async def test_submission_review(client, created_quiz):
    quiz_id = created_quiz["quizId"]
    await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A", "X"))
    submission_id = (await client.get("/api/submissions/me", headers=ALICE)).json()[0]["submissionId"]

    detail = (await client.get(f"/api/submissions/{submission_id}", headers=ALICE)).json()
    assert detail["score"] == 1
    assert [r["isCorrect"] for r in detail["review"]] == [True, False, False, False]
    assert detail["review"][1]["correctOption"] == "B"

    assert (await client.get(f"/api/submissions/{submission_id}", headers=BOB)).status_code == 403


async def test_results_for_owner_only(client, created_quiz):
    quiz_id = created_quiz["quizId"]
    empty = (await client.get(f"/api/quizzes/{quiz_id}/results", headers=TEACHER)).json()
    assert empty["stats"] is None
    assert empty["entries"] == []

    await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A", "B", "C"))
    await client.post("/api/submissions", headers=BOB, json=submission(quiz_id, "bob", "A"))

    assert (await client.get(f"/api/quizzes/{quiz_id}/results", headers=OTHER_TEACHER)).status_code == 403

    results = (await client.get(f"/api/quizzes/{quiz_id}/results", headers=TEACHER)).json()
    assert results["stats"] == {
        "submissionCount": 2, "averageScore": 2.0, "maxScore": 3, "minScore": 1, "passCount": 1, "passRate": 50.0,
    }
    assert [(e["studentEmail"], e["grade"], e["percentage"]) for e in results["entries"]] == [
        ("alice@example.com", "B", 75.0),
        ("bob@example.com", "F", 25.0),
    ]


async def test_results_csv_export(client, created_quiz):
    quiz_id = created_quiz["quizId"]
    await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A", "B", "C", "D"))
    resp = await client.get(f"/api/quizzes/{quiz_id}/results.csv", headers=TEACHER)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert created_quiz["joinCode"] in resp.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0][0] == "Rank"
    assert rows[1][:6] == ["1", "alice@example.com", "4", "4", "100.0", "A+"]


async def test_update_and_delete_quiz(client, created_quiz, sample_questions):
    quiz_id = created_quiz["quizId"]
    body = {"subject": "Renamed", "difficulty": "medium", "questions": sample_questions[:2], "timeLimitMinutes": 3}
    assert (await client.put(f"/api/quizzes/{quiz_id}", headers=OTHER_TEACHER, json=body)).status_code == 403
    updated = (await client.put(f"/api/quizzes/{quiz_id}", headers=TEACHER, json=body)).json()
    assert updated["subject"] == "Renamed" and updated["questionsCount"] == 2

    detail = (await client.get(f"/api/quizzes/{quiz_id}", headers=TEACHER)).json()
    assert detail["questions"][0]["answer"] == "A"

    assert (await client.delete(f"/api/quizzes/{quiz_id}", headers=OTHER_TEACHER)).status_code == 403
    assert (await client.delete(f"/api/quizzes/{quiz_id}", headers=TEACHER)).status_code == 200
    assert (await client.get(f"/api/quizzes/{quiz_id}", headers=TEACHER)).status_code == 404
    assert (await client.get("/api/quizzes", headers=TEACHER)).json() == []


async def test_question_edit_after_submission_is_400(client, created_quiz, sample_questions):
    quiz_id = created_quiz["quizId"]
    await client.post("/api/submissions", headers=ALICE, json=submission(quiz_id, "alice", "A", "B", "C", "D"))
    body = {"subject": "Letters", "difficulty": "easy", "questions": sample_questions[:1], "timeLimitMinutes": 5}
    resp = await client.put(f"/api/quizzes/{quiz_id}", headers=TEACHER, json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Questions cannot be changed after students have submitted"}


async def test_generate_quiz_with_cooldown(client, sample_questions):
    body = {"subject": "Letters", "difficulty": "easy", "numQuestions": 4, "prompt": "the alphabet"}
    with patch("api.main.AIService") as MockService:
        MockService.return_value.generate_quiz = AsyncMock(return_value=(sample_questions, None))
        resp = await client.post("/api/quizzes/generate", headers=TEACHER, json=body)
        assert resp.status_code == 200
        assert resp.json()["questions"][0]["answer"] == "A"

        again = await client.post("/api/quizzes/generate", headers=TEACHER, json=body)
        assert again.status_code == 429


async def test_generate_quiz_failure_is_503(client):
    body = {"subject": "Letters", "difficulty": "easy", "numQuestions": 4, "prompt": "the alphabet"}
    with patch("api.main.AIService") as MockService:
        MockService.return_value.generate_quiz = AsyncMock(return_value=([], "API error: 500"))
        resp = await client.post("/api/quizzes/generate", headers=TEACHER, json=body)
    assert resp.status_code == 503
    assert "Failed to generate quiz" in resp.json()["error"]
