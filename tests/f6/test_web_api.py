"""Tests for the Web API (F6)."""

import pytest
from fastapi.testclient import TestClient

from examprep import __version__
from examprep.core.adaptive_testing import get_adaptive_testing_service
from examprep.core.journeys import create_journey
from examprep.core.progress import record_topic_result
from examprep.core.question_bank import save_questions
from examprep.web.api import create_app


@pytest.fixture
def client(data_dir, mock_llm):
    """Test client with LLM recommendations disabled and a mocked generator."""
    config = data_dir / "config" / "app_config_v1.yaml"
    config.parent.mkdir(parents=True)
    config.write_text("recommendations:\n  use_llm: false\n", encoding="utf-8")
    get_adaptive_testing_service()._llm_client = mock_llm
    return TestClient(create_app())


@pytest.fixture
def stocked(data_dir, question_pool):
    save_questions("alice", question_pool, data_dir)
    return question_pool


def create_test(client, **overrides) -> dict:
    body = {"title": "Algebra", "subjects": ["Mathematics", "Physics"], "question_count": 5}
    body.update(overrides)
    response = client.post("/api/users/alice/tests", json=body)
    assert response.status_code == 201, response.text
    return response.json()["test"]


def start_session(client, test_id: str) -> dict:
    response = client.post("/api/users/alice/sessions", json={"test_id": test_id})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == __version__


class TestPersonas:
    def test_list(self, client):
        data = client.get("/api/personas").json()
        assert data["count"] == 3
        assert {p["id"] for p in data["personas"]} == {"student", "working_professional", "freelancer"}

    def test_get_one(self, client):
        data = client.get("/api/personas/student").json()
        assert data["study_goal_minutes"] == 480
        assert data["preferred_mission_minutes"] == 30

    def test_not_found(self, client):
        response = client.get("/api/personas/astronaut")
        assert response.status_code == 404
        assert "astronaut" in response.json()["detail"]


class TestStudyGoal:
    def test_working_professional_schedule(self, client):
        response = client.post(
            "/api/study-goal",
            json={"persona": "working_professional", "work_schedule": {}, "goal_minutes": 1000},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["recommended_goal"] == 415
        assert data["validated_goal"] == 300
        assert "Weekend Intensive Sessions" in data["time_slots"]

    def test_student_goal_raised_to_minimum(self, client):
        data = client.post("/api/study-goal", json={"persona": "student", "goal_minutes": 100}).json()
        assert data["recommended_goal"] == 480
        assert data["validated_goal"] == 240

    def test_negative_goal_rejected(self, client):
        assert client.post("/api/study-goal", json={"goal_minutes": -5}).status_code == 422


class TestTests:
    def test_create_and_list(self, client, stocked):
        test = create_test(client)
        assert test["status"] == "active"
        assert test["total_questions"] == 5
        assert test["algorithm_type"] == "HYBRID"

        listing = client.get("/api/users/alice/tests").json()
        assert listing["count"] == 1
        assert listing["tests"][0]["test_id"] == test["test_id"]
        assert client.get("/api/users/alice/tests", params={"status": "completed"}).json()["count"] == 0

    def test_validation(self, client):
        response = client.post("/api/users/alice/tests", json={"title": "x", "subjects": []})
        assert response.status_code == 422

    def test_inverted_range_is_bad_request(self, client, stocked):
        response = client.post(
            "/api/users/alice/tests",
            json={"title": "x", "subjects": ["Mathematics"], "difficulty_range": ["expert", "beginner"]},
        )
        assert response.status_code == 400

    def test_get_errors(self, client, stocked):
        test = create_test(client)
        assert client.get(f"/api/users/bob/tests/{test['test_id']}").status_code == 403
        assert client.get("/api/users/alice/tests/test_missing").status_code == 404
        assert client.get("/api/users/bob/tests/*").status_code == 404

    def test_retake(self, client, stocked):
        test = create_test(client)
        response = client.post(f"/api/users/alice/tests/{test['test_id']}/retake")
        assert response.status_code == 201
        assert response.json()["test"]["title"] == "Algebra (Retake)"

    def test_from_journey(self, client, stocked, data_dir):
        journey = create_journey(
            "alice", "Finals", goals=[{"title": "Algebra", "linked_subjects": ["Mathematics"]}], data_dir=data_dir
        )
        response = client.post(f"/api/users/alice/tests/from-journey/{journey.journey_id}")
        assert response.status_code == 201
        assert response.json()["test"]["linked_journey_id"] == journey.journey_id

        assert client.post("/api/users/alice/tests/from-journey/journey_missing").status_code == 400


class TestSessions:
    def test_full_session(self, client, stocked):
        test = create_test(client)
        session = start_session(client, test["test_id"])
        assert session["status"] == "active"
        question = session["current_question"]
        assert question["question_id"] == "int0"
        assert "correct_answer" not in question

        url = f"/api/users/alice/sessions/{session['session_id']}/answers"
        data = None
        for _ in range(20):
            response = client.post(
                url, json={"question_id": question["question_id"], "answer": "A", "response_time_ms": 20000}
            )
            assert response.status_code == 200, response.text
            data = response.json()
            assert data["is_correct"]
            if data["test_completed"]:
                break
            question = data["next_question"]

        assert data["test_completed"]
        assert data["performance"]["accuracy"] == 100.0

        detail = client.get(f"/api/users/alice/tests/{test['test_id']}").json()
        assert detail["status"] == "completed"
        assert detail["accuracy"] == 100.0
        assert detail["adaptive_metrics"]["algorithm_type"] == "HYBRID"

        again = client.post(url, json={"question_id": "beg0", "answer": "A", "response_time_ms": 1})
        assert again.status_code == 400

    def test_pause_resume_and_recover(self, client, stocked):
        test = create_test(client)
        session = start_session(client, test["test_id"])
        base = f"/api/users/alice/sessions/{session['session_id']}"

        paused = client.post(f"{base}/pause", json={"reason": "break"}).json()
        assert paused["is_paused"]
        assert paused["status"] == "paused"

        blocked = client.post(f"{base}/answers", json={"question_id": "int0", "answer": "A", "response_time_ms": 1})
        assert blocked.status_code == 400

        recovered = client.post("/api/users/alice/sessions/recover", json={"test_id": test["test_id"]})
        assert recovered.status_code == 200
        assert recovered.json()["session_id"] == session["session_id"]

        resumed = client.post(f"{base}/resume").json()
        assert resumed["status"] == "active"
        assert resumed["current_question"]["question_id"] == "int0"

    def test_session_errors(self, client, stocked):
        test = create_test(client)
        assert client.get("/api/users/alice/sessions/sess_missing").status_code == 404
        assert client.post("/api/users/bob/sessions", json={"test_id": test["test_id"]}).status_code == 403
        recover = client.post("/api/users/alice/sessions/recover", json={"test_id": test["test_id"]})
        assert recover.status_code == 404

        session = start_session(client, test["test_id"])
        response = client.post(
            f"/api/users/alice/sessions/{session['session_id']}/answers",
            json={"question_id": "int0", "answer": "A", "response_time_ms": 1, "confidence": 9},
        )
        assert response.status_code == 422


class TestRecommendations:
    def test_list_and_presets(self, client):
        record_topic_result("alice", "Mathematics", 10, 4)
        record_topic_result("alice", "Physics", 10, 9)

        data = client.get("/api/users/alice/recommendations").json()
        assert data["count"] == 2
        assert data["recommendations"][0]["title"] == "Master Mathematics"

        quick = client.get("/api/users/alice/recommendations", params={"preset": "quick"}).json()
        assert all(r["question_count"] <= 15 for r in quick["recommendations"])

        assert client.get("/api/users/alice/recommendations", params={"preset": "bogus"}).status_code == 400

    def test_accept(self, client, stocked):
        response = client.post(
            "/api/users/alice/recommendations/accept",
            json={"recommendation": {"title": "Quick maths", "subjects": ["Mathematics"], "question_count": 3}},
        )
        assert response.status_code == 201
        test = response.json()["test"]
        assert test["title"] == "Quick maths"
        assert test["algorithm_type"] == "CAT"

    def test_accept_invalid(self, client):
        response = client.post(
            "/api/users/alice/recommendations/accept", json={"recommendation": {"subjects": ["Mathematics"]}}
        )
        assert response.status_code == 400


class TestMissions:
    def test_mission_lifecycle(self, client):
        created = client.post("/api/users/alice/missions", json={"track": "exam", "frequency": "daily"})
        assert created.status_code == 201
        mission = created.json()["mission"]
        assert mission["template_id"] == "exam_daily_mock_questions"
        base = f"/api/users/alice/missions/{mission['mission_id']}"

        progress = client.post(
            f"{base}/progress",
            json={"submissions": [{"step": 1, "is_correct": True, "time_spent_seconds": 30}]},
        ).json()
        assert progress["mission"]["status"] == "in_progress"
        assert progress["mission"]["progress"]["current_step"] == 1

        done = client.post(f"{base}/complete", json={"submissions": []})
        assert done.status_code == 200
        assert done.json()["message"] == "Mission passed with 100%"
        assert done.json()["mission"]["results"]["passed"]

        assert client.post(f"{base}/complete", json={"submissions": []}).status_code == 400
        assert client.get("/api/users/alice/missions").json()["count"] == 1
        assert client.get(base).json()["mission"]["status"] == "completed"

    def test_mission_errors(self, client):
        assert client.post("/api/users/alice/missions", json={"frequency": "hourly"}).status_code == 422
        assert client.post("/api/users/alice/missions", json={"track": "arts"}).status_code == 400
        assert client.get("/api/users/alice/missions/mission_missing").status_code == 404


class TestApp:
    def test_cors_origins(self, data_dir):
        client = TestClient(create_app(cors_origins=["http://localhost:5173"]))
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    def test_routes_mounted(self, client):
        paths = client.app.openapi()["paths"]
        assert "/api/users/{user_id}/missions" in paths
        assert "/api/study-goal" in paths
