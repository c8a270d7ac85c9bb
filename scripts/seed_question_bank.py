#!/usr/bin/env python3
"""
Seed a quiz with the built-in 12 question bank.

Usage:
    python scripts/seed_question_bank.py --quiz-id demo --class-id class-1 --questions 5
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from quiz_engine.db import quizzes as quiz_db
from quiz_engine.db.database import SCHEMA_PATH, connect
from quiz_engine.models.quiz import Difficulty
from quiz_engine.services.question_bank import DEFAULT_QUESTION_BANK


async def seed(args) -> int:
    db = await connect(args.database)
    try:
        await db.executescript(SCHEMA_PATH.read_text())
        existing = await quiz_db.get_quiz(db, args.quiz_id)
        if existing:
            print(f"Quiz {args.quiz_id} already exists, nothing to do")
            return 0

        await quiz_db.create_quiz(
            db,
            args.quiz_id,
            class_id=args.class_id,
            title=args.title,
            question_count=args.questions,
            starting_difficulty=Difficulty(args.start),
            time_limit_minutes=args.time_limit,
        )
        count = await quiz_db.add_questions(db, args.quiz_id, DEFAULT_QUESTION_BANK)
        print(f"Created quiz {args.quiz_id} with {count} questions")
        return 0
    finally:
        await db.close()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--database", default=None, help="SQLite path (defaults to DATABASE_PATH)")
    parser.add_argument("--quiz-id", required=True)
    parser.add_argument("--class-id", default=None)
    parser.add_argument("--title", default="Adaptive practice quiz")
    parser.add_argument("--questions", type=int, default=None, help="questions per attempt")
    parser.add_argument("--start", default="easy", choices=[d.value for d in Difficulty])
    parser.add_argument("--time-limit", type=int, default=None, help="minutes")
    sys.exit(asyncio.run(seed(parser.parse_args())))


if __name__ == "__main__":
    main()
