from __future__ import annotations

import unittest
from dataclasses import replace

from fastapi.testclient import TestClient

from leaderboard_node.config.runtime import RuntimeSettings
from leaderboard_node.db.memory import InMemoryParticipantRepository, InMemoryScoreRecordRepository
from leaderboard_node.entities.participant import Participant
from leaderboard_node.entities.score_record import ScoreUpdatePolicy
from leaderboard_node.errors import LLMGatewayError, StoreUnavailableError
from leaderboard_node.workers.api_worker import create_app, memory_repositories

SETTINGS = RuntimeSettings(
    store_backend="memory",
    top_k=3,
    score_update_policy=ScoreUpdatePolicy.LATEST,
    admin_clear_enabled=False,
    store_retries=1,
    store_retry_backoff_seconds=0.0,
    api_host="127.0.0.1",
    api_port=3000,
    log_level="INFO",
)


class FakeChatService:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple] = []

    def _maybe_fail(self):
        if self.fail:
            raise LLMGatewayError("provider down")

    def chat_gemini(self, message, history=None):
        self.calls.append(("gemini", message, history))
        self._maybe_fail()
        return f"gemini: {message}"

    def chat_openai(self, message, history=None):
        self.calls.append(("openai", message, history))
        self._maybe_fail()
        return f"openai: {message}"

    def analyze_sentence(self, sentence):
        self.calls.append(("analyze", sentence))
        self._maybe_fail()
        return {"sentence": sentence, "errors": []}


class UnavailableScoreRepository(InMemoryScoreRecordRepository):
    def list_all(self, sort_key="best_score", direction="desc"):
        raise StoreUnavailableError("list_all", ConnectionError("db down"))


class ApiTestCase(unittest.TestCase):
    settings = SETTINGS

    def setUp(self):
        self.scores = InMemoryScoreRecordRepository()
        self.participants = InMemoryParticipantRepository()
        self.chat = FakeChatService()
        app = create_app(
            settings=self.settings,
            repository_provider=memory_repositories(self.scores, self.participants),
            chat_service=self.chat,
        )
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

    def _submit(self, **body):
        return self.client.post("/leaderboard", json=body)


class TestHealth(ApiTestCase):
    def test_root_and_healthz(self):
        root = self.client.get("/")
        self.assertEqual(root.status_code, 200)
        self.assertEqual(root.text, "API running")
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})


class TestSubmitScore(ApiTestCase):
    def test_first_submission_creates(self):
        resp = self._submit(userId="u1", userName="Alice", userImage="a.png", country="BD", score=100)

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["outcome"], "CREATED")
        self.assertTrue(body["best_improved"])
        self.assertEqual(body["leaderboard"]["participant_id"], "u1")
        self.assertEqual(body["leaderboard"]["display_name"], "Alice")
        self.assertEqual(body["leaderboard"]["image_ref"], "a.png")
        self.assertEqual(body["leaderboard"]["best_score"], 100)

    def test_lower_then_higher(self):
        self._submit(participant_id="u1", score=100)

        lower = self._submit(participant_id="u1", score=80).json()
        self.assertEqual(lower["outcome"], "UPDATED")
        self.assertEqual(lower["leaderboard"]["current_score"], 80)
        self.assertEqual(lower["leaderboard"]["best_score"], 100)

        higher = self._submit(participant_id="u1", score=150).json()
        self.assertEqual(higher["leaderboard"]["best_score"], 150)

    def test_numeric_user_id_is_accepted(self):
        resp = self._submit(userId=42, score=1)
        self.assertEqual(resp.json()["leaderboard"]["participant_id"], "42")

    def test_missing_fields_return_400(self):
        missing_score = self._submit(userId="u1")
        self.assertEqual(missing_score.status_code, 400)
        self.assertEqual(missing_score.json()["message"], "Error updating leaderboard")

        missing_id = self._submit(score=5)
        self.assertEqual(missing_id.status_code, 400)
        self.assertEqual(self.scores.list_all(), [])

    def test_overflowing_score_returns_400(self):
        self._submit(userId="u1", score=10)

        resp = self.client.post(
            "/leaderboard",
            content='{"userId": "u2", "score": 1e999}',
            headers={"Content-Type": "application/json"},
        )

        self.assertEqual(resp.status_code, 400)
        self.assertIsNone(self.scores.find_by_participant("u2"))
        self.assertEqual(self.client.get("/leaderboard/u1").json()["user_data"]["rank"], 1)


class TestBestOnlySubmit(ApiTestCase):
    settings = replace(SETTINGS, score_update_policy=ScoreUpdatePolicy.BEST_ONLY)

    def test_lower_score_not_improved(self):
        self._submit(userId="u1", score=100)
        body = self._submit(userId="u1", score=10).json()

        self.assertEqual(body["outcome"], "NOT_IMPROVED")
        self.assertEqual(body["leaderboard"]["current_score"], 100)


class TestReadLeaderboard(ApiTestCase):
    def setUp(self):
        super().setUp()
        for pid, score in (("a", 10), ("b", 40), ("c", 30), ("d", 20), ("e", 5)):
            self._submit(userId=pid, score=score)

    def test_full_ranking(self):
        body = self.client.get("/leaderboard").json()

        self.assertEqual([e["participant_id"] for e in body["leaderboard"]], ["b", "c", "d", "a", "e"])
        self.assertEqual([e["rank"] for e in body["leaderboard"]], [1, 2, 3, 4, 5])

    def test_top_uses_configured_size(self):
        body = self.client.get("/leaderboard/top").json()
        self.assertEqual([e["participant_id"] for e in body["leaderboard"]], ["b", "c", "d"])

        body = self.client.get("/leaderboard/top", params={"k": 1}).json()
        self.assertEqual(len(body["leaderboard"]), 1)

    def test_top_rejects_invalid_k(self):
        self.assertEqual(self.client.get("/leaderboard/top", params={"k": 0}).status_code, 422)

    def test_top_joins_participant_details(self):
        self.participants.create(Participant(id="b", name="Bea", email="bea@example.com", country="GB"))

        first = self.client.get("/leaderboard/top").json()["leaderboard"][0]
        self.assertEqual(first["name"], "Bea")
        self.assertEqual(first["country"], "GB")

    def test_participant_view(self):
        resp = self.client.get("/leaderboard/e")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["user_data"]["rank"], 5)
        self.assertEqual(len(body["top10"]), 3)

    def test_unknown_participant_returns_404(self):
        self.assertEqual(self.client.get("/leaderboard/ghost").status_code, 404)


class TestAdminClear(ApiTestCase):
    def test_disabled_by_default(self):
        self._submit(userId="u1", score=1)

        resp = self.client.delete("/admin/leaderboard")

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(len(self.scores.list_all()), 1)


class TestAdminClearEnabled(ApiTestCase):
    settings = replace(SETTINGS, admin_clear_enabled=True)

    def test_clear_deletes_everything(self):
        self._submit(userId="u1", score=1)
        self._submit(userId="u2", score=2)

        resp = self.client.delete("/admin/leaderboard")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"deleted_count": 2})
        self.assertEqual(self.client.get("/leaderboard").json()["leaderboard"], [])


class TestUsers(ApiTestCase):
    def test_create_and_list(self):
        resp = self.client.post("/users", json={"name": "Alice", "email": "Alice@Example.com", "age": 15})

        self.assertEqual(resp.status_code, 201)
        user = resp.json()["user"]
        self.assertEqual(user["email"], "alice@example.com")
        self.assertEqual(user["country"], "Unknown")

        listed = self.client.get("/users").json()
        self.assertEqual([u["id"] for u in listed], [user["id"]])

    def test_missing_name_returns_400(self):
        resp = self.client.post("/users", json={"email": "x@example.com"})
        self.assertEqual(resp.status_code, 400)

    def test_duplicate_email_returns_409(self):
        self.client.post("/users", json={"name": "Alice", "email": "alice@example.com"})
        resp = self.client.post("/users", json={"name": "Alice 2", "email": "alice@example.com"})
        self.assertEqual(resp.status_code, 409)


class TestChatRoutes(ApiTestCase):
    def test_gemini_chat(self):
        history = [{"role": "user", "parts": [{"text": "hello"}]}]
        resp = self.client.post("/chat", json={"message": "hi", "history": history})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"text": "gemini: hi", "role": "model"})
        self.assertEqual(self.chat.calls[0], ("gemini", "hi", history))

    def test_openai_chat(self):
        resp = self.client.post("/chat-openai", json={"message": "hi"})
        self.assertEqual(resp.json(), {"text": "openai: hi", "role": "assistant"})

    def test_missing_message_returns_400(self):
        self.assertEqual(self.client.post("/chat", json={}).status_code, 400)
        self.assertEqual(self.client.post("/chat-openai", json={"message": ""}).status_code, 400)
        self.assertEqual(self.client.post("/analyze-sentence", json={}).status_code, 400)
        self.assertEqual(self.chat.calls, [])

    def test_analyze_sentence(self):
        resp = self.client.post("/analyze-sentence", json={"sentence": "She go home."})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True, "analysis": {"sentence": "She go home.", "errors": []}})

    def test_provider_failure_returns_500(self):
        self.chat.fail = True

        chat = self.client.post("/chat", json={"message": "hi"})
        self.assertEqual(chat.status_code, 500)
        self.assertEqual(chat.json()["text"], "Sorry, I encountered an error.")

        analysis = self.client.post("/analyze-sentence", json={"sentence": "x"})
        self.assertEqual(analysis.status_code, 500)
        self.assertFalse(analysis.json()["success"])


class TestStoreUnavailable(unittest.TestCase):
    def test_returns_503(self):
        app = create_app(
            settings=SETTINGS,
            repository_provider=memory_repositories(scores=UnavailableScoreRepository()),
            chat_service=FakeChatService(),
        )
        with TestClient(app) as client:
            resp = client.get("/leaderboard")

        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json(), {"detail": "Leaderboard store unavailable"})


if __name__ == "__main__":
    unittest.main()
