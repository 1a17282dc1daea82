import asyncio
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select, or_
from db.session import AsyncSessionLocal
from models.submission import Submission
from models.user import User
from core.logger import logger


def placeholder_email(student_id: str) -> str:
    return f"student-{student_id[-4:]}@placeholder.com"


async def backfill_emails():
    """Fill blank student emails on old submissions, preferring the user's profile email."""
    async with AsyncSessionLocal() as session:
        try:
            result = await session.execute(
                select(Submission).filter(or_(Submission.student_email == "", Submission.student_email.is_(None)))
            )
            submissions = result.scalars().all()
            print(f"Found {len(submissions)} submissions without a student email.")

            if not submissions:
                return

            student_ids = {s.student_id for s in submissions}
            users = await session.execute(select(User.id, User.email).filter(User.id.in_(student_ids)))
            known = {row.id: row.email for row in users.all()}

            from_profile = 0
            for submission in submissions:
                email = known.get(submission.student_id)
                if email:
                    from_profile += 1
                submission.student_email = email or placeholder_email(submission.student_id)

            await session.commit()
            print(f"✅ Updated {len(submissions)} submissions ({from_profile} from profiles, "
                  f"{len(submissions) - from_profile} placeholders).")

        except Exception as e:
            await session.rollback()
            print(f"❌ Error backfilling emails: {e}")
            logger.error("Error backfilling emails", error=str(e))

if __name__ == "__main__":
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(backfill_emails())
