import csv
import io
from typing import List
from schemas.quiz import QuizRecord
from services.ranking import RankedSubmission, percentage, grade

RESULTS_HEADER = ["Rank", "Student", "Score", "Total", "Percentage", "Grade", "Submitted At"]

def generate_results_csv(quiz: QuizRecord, entries: List[RankedSubmission]) -> str:
    """Leaderboard of a quiz as CSV text, one row per submission in rank order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(RESULTS_HEADER)

    total = quiz.total_questions
    for entry in entries:
        s = entry.submission
        writer.writerow([
            entry.rank,
            s.student_email or f"Student {s.student_id[-4:]}",
            s.score,
            total,
            f"{percentage(s.score, total):.1f}",
            grade(s.score, total),
            s.submitted_at.isoformat(timespec="seconds"),
        ])

    return buffer.getvalue()

def results_filename(quiz: QuizRecord) -> str:
    safe_subject = "".join(ch if ch.isalnum() else "_" for ch in quiz.subject).strip("_") or "quiz"
    return f"{safe_subject}_{quiz.join_code}_results.csv"
