"""attempt_engine_baseline

Quizzes, question pools, attempts, answers and the student progress
snapshot, created from quiz_engine/db/schema.sql.

Revision ID: 9c1d2e3f4a5b
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "9c1d2e3f4a5b"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _statements(schema_sql: str):
    """Split schema.sql into executable statements, dropping comment lines."""
    for statement in schema_sql.split(";"):
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            yield cleaned


def upgrade() -> None:
    """Create the schema; every statement is IF NOT EXISTS, so re-running is safe."""
    schema_path = Path(__file__).resolve().parents[2] / "quiz_engine" / "db" / "schema.sql"
    for statement in _statements(schema_path.read_text()):
        op.execute(sa.text(statement))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in [
        "student_progress",
        "attempt_answers",
        "quiz_attempts",
        "questions",
        "quizzes",
    ]:
        op.drop_table(table)
