import asyncio
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select, func
from db.session import AsyncSessionLocal
from models.submission import Submission


async def find_duplicates():
    """Report students who submitted the same quiz more than once."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(
                Submission.quiz_id,
                Submission.student_id,
                func.count(Submission.id).label("attempts"),
                func.max(Submission.score).label("best_score"),
            )
            .group_by(Submission.quiz_id, Submission.student_id)
            .having(func.count(Submission.id) > 1)
            .order_by(Submission.quiz_id, func.count(Submission.id).desc())
        )
        rows = result.all()

    if not rows:
        print("No duplicate attempts found.")
        return

    print(f"{len(rows)} student/quiz pairs with repeated attempts:")
    for row in rows:
        print(f"  quiz={row.quiz_id} student={row.student_id} attempts={row.attempts} best={row.best_score}")

    extra = sum(row.attempts - 1 for row in rows)
    print(f"Leaderboards contain {extra} extra entries from repeats.")

if __name__ == "__main__":
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(find_duplicates())
