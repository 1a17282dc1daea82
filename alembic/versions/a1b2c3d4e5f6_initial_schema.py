"""create users, quizzes and submissions

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'quizzes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.String(128), nullable=False),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('difficulty', sa.String(16), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('questions_json', sa.JSON(), nullable=False),
        sa.Column('join_code', sa.String(16), nullable=False),
        sa.Column('time_limit_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_quizzes_id', 'quizzes', ['id'])
    op.create_index('ix_quizzes_owner_id', 'quizzes', ['owner_id'])
    # Join codes must be unique across all quizzes
    op.create_index('ix_quizzes_join_code', 'quizzes', ['join_code'], unique=True)

    op.create_table(
        'submissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(128), nullable=False),
        sa.Column('student_email', sa.String(255), nullable=False),
        sa.Column('answers_json', sa.JSON(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_submissions_id', 'submissions', ['id'])
    op.create_index('ix_submissions_quiz_id', 'submissions', ['quiz_id'])
    op.create_index('ix_submissions_student_id', 'submissions', ['student_id'])
    op.create_index('idx_submissions_quiz_rank', 'submissions', ['quiz_id', 'score', 'submitted_at'])
    op.create_index('idx_submissions_student_quiz', 'submissions', ['student_id', 'quiz_id'])


def downgrade() -> None:
    op.drop_table('submissions')
    op.drop_table('quizzes')
    op.drop_table('users')
