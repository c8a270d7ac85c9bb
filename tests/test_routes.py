"""
HTTP tests for the attempt, analytics and guest quiz routes.

The app runs against a temporary SQLite database by pointing settings at it,
so completion hooks that open their own connection after the response see the
same file. The client is not used as a context manager, so startup migrations
are skipped.
"""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from quiz_engine.config import settings
from quiz_engine.server import app
from quiz_engine.services.recommendations import FALLBACK_RECOMMENDATIONS


@pytest.fixture
def client(seeded_db_path, monkeypatch):
    monkeypatch.setattr(settings, "database_path", seeded_db_path)
    return TestClient(app)


def _execute(db_path, sql):
    conn = sqlite3.connect(db_path)
    conn.execute(sql)
    conn.commit()
    conn.close()


def _start(client, student_id="student-1", quiz_id="quiz-1"):
    return client.post("/api/attempts", json={"quiz_id": quiz_id, "student_id": student_id})


def _answer_all(client, attempt_id, first_question_id, value=0):
    """Answer every question with `value` until the attempt completes."""
    question_id = first_question_id
    for _ in range(10):
        resp = client.post(f"/api/attempts/{attempt_id}/answer", json={"question_id": question_id, "answer": value})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        if body["status"] == "completed":
            return body
        question_id = body["next_question"]["id"]
    raise AssertionError("attempt never completed")


class TestAttemptRoutes:

    def test_start_returns_first_question_without_answer(self, client):
        resp = _start(client)
        assert resp.status_code == 201
        body = resp.json()
        assert body["question_number"] == 1
        assert body["question_count"] == 3
        assert body["current_question"]["difficulty"] == "easy"
        assert "correct_answer" not in body["current_question"]

    def test_second_start_conflicts(self, client):
        first = _start(client).json()
        resp = _start(client)
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "already_attempted"
        assert body["existing_attempt_id"] == first["attempt_id"]

    def test_unknown_quiz(self, client):
        resp = client.post("/api/attempts", json={"quiz_id": "nope", "student_id": "s1"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "quiz_not_found"

    def test_full_attempt(self, client, seeded_db_path):
        started = _start(client).json()
        final = _answer_all(client, started["attempt_id"], started["current_question"]["id"])
        assert final["result"]["correct_count"] == 3
        assert final["result"]["percentage"] == 100.0

        detail = client.get(f"/api/attempts/{started['attempt_id']}").json()
        assert detail["status"] == "completed"
        assert detail["score"] == 3
        assert len(detail["answers"]) == 3
        assert detail["recommendations"] == FALLBACK_RECOMMENDATIONS

        conn = sqlite3.connect(seeded_db_path)
        row = conn.execute(
            "SELECT quizzes_attempted, average_score FROM student_progress WHERE student_id = 'student-1'"
        ).fetchone()
        conn.close()
        assert row == (1, 100.0)

    def test_answer_conflicts(self, client):
        started = _start(client).json()
        attempt_id = started["attempt_id"]
        qid = started["current_question"]["id"]

        resp = client.post(f"/api/attempts/{attempt_id}/answer", json={"question_id": "h1", "answer": 0})
        assert resp.status_code == 409
        assert resp.json()["current_question_id"] == qid

        assert client.post(f"/api/attempts/{attempt_id}/answer", json={"question_id": qid, "answer": 0}).status_code == 200
        resp = client.post(f"/api/attempts/{attempt_id}/answer", json={"question_id": qid, "answer": 0})
        assert resp.status_code == 409
        assert resp.json()["error"] == "duplicate_answer"

    def test_answer_body_is_validated(self, client):
        started = _start(client).json()
        resp = client.post(f"/api/attempts/{started['attempt_id']}/answer", json={"question_id": "e1"})
        assert resp.status_code == 422

    def test_complete_twice(self, client):
        started = _start(client).json()
        first = client.post(f"/api/attempts/{started['attempt_id']}/complete")
        second = client.post(f"/api/attempts/{started['attempt_id']}/complete")
        assert first.status_code == second.status_code == 200
        assert first.json()["completed_at"] == second.json()["completed_at"]
        assert first.json()["percentage"] == 0.0

        resp = client.post(
            f"/api/attempts/{started['attempt_id']}/answer",
            json={"question_id": started["current_question"]["id"], "answer": 0},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "attempt_already_completed"

    def test_unknown_attempt(self, client):
        assert client.get("/api/attempts/missing").status_code == 404
        resp = client.post("/api/attempts/missing/answer", json={"question_id": "e1", "answer": 0})
        assert resp.status_code == 404
        assert resp.json()["error"] == "attempt_not_found"

    def test_delete_then_restart(self, client):
        started = _start(client).json()
        resp = client.delete(f"/api/attempts/{started['attempt_id']}")
        assert resp.status_code == 200
        assert client.get(f"/api/attempts/{started['attempt_id']}").status_code == 404
        assert _start(client).status_code == 201


class TestAttemptListings:

    def _complete(self, client, student_id, quiz_id="quiz-1"):
        started = _start(client, student_id, quiz_id).json()
        _answer_all(client, started["attempt_id"], started["current_question"]["id"])
        return started["attempt_id"]

    def test_quiz_attempts_newest_completed_first(self, client):
        self._complete(client, "s1")
        self._complete(client, "s2")
        _start(client, "s3")

        resp = client.get("/api/attempts/quiz/quiz-1")
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["student_id"] for r in rows] == ["s2", "s1", "s3"]
        assert [r["status"] for r in rows] == ["completed", "completed", "in_progress"]
        assert rows[0]["percentage"] == 100.0

    def test_quiz_attempts_unknown_quiz(self, client):
        resp = client.get("/api/attempts/quiz/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "quiz_not_found"

    def test_student_attempts_across_class_quizzes(self, client, seeded_db_path):
        _execute(
            seeded_db_path,
            """INSERT INTO quizzes (id, class_id, title, question_count, starting_difficulty)
               VALUES ('quiz-2', 'class-1', 'Second quiz', 1, 'easy')""",
        )
        _execute(
            seeded_db_path,
            """INSERT INTO questions (id, quiz_id, prompt, options_json, correct_answer, difficulty)
               VALUES ('e1', 'quiz-2', 'Question e1?', '["A", "B", "C", "D"]', '0', 'easy')""",
        )
        self._complete(client, "s1")
        self._complete(client, "s2")
        self._complete(client, "s1", quiz_id="quiz-2")

        rows = client.get("/api/attempts/class/class-1/students/s1").json()
        assert [r["quiz_id"] for r in rows] == ["quiz-2", "quiz-1"]
        assert {r["student_id"] for r in rows} == {"s1"}

        assert client.get("/api/attempts/class/class-9/students/s1").json() == []


class TestAnalyticsRoutes:

    def test_quiz_and_class_analytics(self, client):
        for student_id, value in (("s1", 0), ("s2", 3)):
            started = _start(client, student_id).json()
            _answer_all(client, started["attempt_id"], started["current_question"]["id"], value)

        quiz = client.get("/api/analytics/quiz/quiz-1", params={"pass_threshold": 60}).json()
        assert quiz["completed_attempts"] == 2
        assert quiz["highest_score"] == 100.0
        assert quiz["pass_rate"] == 50.0

        questions = client.get("/api/analytics/quiz/quiz-1/questions").json()
        assert {q["question_id"] for q in questions} == {"e1", "e2", "m1", "h1"}

        klass = client.get("/api/analytics/class/class-1").json()
        assert klass["total_students"] == 2
        assert klass["total_quizzes"] == 1

        at_risk = client.get("/api/analytics/class/class-1/at-risk", params={"threshold": 50}).json()
        assert [s["student_id"] for s in at_risk["students"]] == ["s2"]

        progress = client.get("/api/analytics/class/class-1/students/s1/progress").json()
        assert progress["quizzes_attempted"] == 1
        assert progress["average_score"] == 100.0

    def test_progress_drops_deleted_attempt(self, client, seeded_db_path):
        started = _start(client, "s1").json()
        _answer_all(client, started["attempt_id"], started["current_question"]["id"])
        url = "/api/analytics/class/class-1/students/s1/progress"
        assert client.get(url).json()["quizzes_attempted"] == 1

        assert client.delete(f"/api/attempts/{started['attempt_id']}").status_code == 200
        conn = sqlite3.connect(seeded_db_path)
        row = conn.execute(
            "SELECT quizzes_attempted FROM student_progress WHERE student_id = 's1'"
        ).fetchone()
        conn.close()
        assert row == (0,)

        progress = client.get(url).json()
        assert progress["quizzes_attempted"] == 0
        assert progress["average_score"] == 0.0

    def test_unknown_quiz(self, client):
        resp = client.get("/api/analytics/quiz/nope")
        assert resp.status_code == 404

    def test_threshold_out_of_range(self, client):
        resp = client.get("/api/analytics/class/class-1/at-risk", params={"threshold": 150})
        assert resp.status_code == 422


class TestStoreOutage:

    def test_quiz_lookup_failure_is_retryable(self, client, seeded_db_path):
        _execute(seeded_db_path, "ALTER TABLE quizzes RENAME TO quizzes_old")

        for resp in (_start(client), client.get("/api/analytics/class/class-1")):
            assert resp.status_code == 503
            assert resp.json()["error"] == "store_unavailable"
            assert resp.headers["Retry-After"] == "1"


class TestGuestQuizRoutes:

    def test_guest_session_flow(self, client):
        resp = client.post("/api/quiz/start")
        assert resp.status_code == 201
        body = resp.json()
        session_id = body["session_id"]
        question_id = body["current_question"]["id"]
        assert body["total_questions"] == 10

        assert client.get(f"/api/quiz/results/{session_id}").status_code == 404

        for _ in range(12):
            resp = client.post(
                "/api/quiz/answer",
                json={"session_id": session_id, "question_id": question_id, "answer": 1},
            )
            assert resp.status_code == 200, resp.text
            step = resp.json()
            if step["status"] == "completed":
                break
            question_id = step["next_question"]["id"]

        results = client.get(f"/api/quiz/results/{session_id}").json()
        assert results["total_questions"] == 10
        assert len(results["answers"]) == 10
        assert results["recommendations"] == FALLBACK_RECOMMENDATIONS

    def test_unknown_session(self, client):
        resp = client.post("/api/quiz/answer", json={"session_id": "nope", "question_id": "q1", "answer": 0})
        assert resp.status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
