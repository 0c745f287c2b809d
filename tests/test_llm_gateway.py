from __future__ import annotations

import json
import unittest
from unittest.mock import MagicMock, patch

import requests

from leaderboard_node.config.llm import LLMSettings
from leaderboard_node.errors import LLMGatewayError
from leaderboard_node.services.llm_gateway import ChatService, GeminiClient, OpenAIClient
from leaderboard_node.services.prompts import TUTOR_SYSTEM_PROMPT, build_analysis_prompt

POST = "leaderboard_node.services.llm_gateway.requests.post"


def _response(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def _openai_reply(content: str) -> MagicMock:
    return _response({"choices": [{"message": {"role": "assistant", "content": content}}]})


def _settings(**overrides) -> LLMSettings:
    values = dict(
        gemini_api_key="g-key",
        gemini_model="gemini-test",
        gemini_base_url="https://gemini.test/v1beta",
        openai_api_key="o-key",
        openai_model="gpt-test",
        openai_base_url="https://openai.test/v1",
        timeout_seconds=5.0,
        retries=2,
    )
    values.update(overrides)
    return LLMSettings(**values)


class TestGeminiClient(unittest.TestCase):
    def test_generate_posts_contents_and_joins_parts(self):
        client = GeminiClient("g-key", "gemini-test", "https://gemini.test/v1beta", timeout=5, retries=1)
        payload = {"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}}]}

        with patch(POST, return_value=_response(payload)) as post:
            text = client.generate([{"role": "user", "parts": [{"text": "hi"}]}])

        self.assertEqual(text, "Hello there")
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://gemini.test/v1beta/models/gemini-test:generateContent")
        self.assertEqual(kwargs["headers"], {"x-goog-api-key": "g-key"})
        self.assertEqual(kwargs["timeout"], 5)

    def test_missing_key_raises_without_calling(self):
        client = GeminiClient("", "gemini-test", "https://gemini.test/v1beta")
        with patch(POST) as post:
            with self.assertRaises(LLMGatewayError):
                client.generate([])
        post.assert_not_called()

    def test_empty_candidates_raises(self):
        client = GeminiClient("g-key", "gemini-test", "https://gemini.test/v1beta", retries=1)
        with patch(POST, return_value=_response({"candidates": []})):
            with self.assertRaises(LLMGatewayError):
                client.generate([])


class TestOpenAIClient(unittest.TestCase):
    @patch("leaderboard_node.services.llm_gateway.time.sleep")
    def test_retries_then_succeeds(self, _sleep):
        client = OpenAIClient("o-key", "gpt-test", "https://openai.test/v1", retries=3)
        replies = [requests.ConnectionError("reset"), _openai_reply("ok")]

        with patch(POST, side_effect=replies) as post:
            text = client.complete([{"role": "user", "content": "hi"}])

        self.assertEqual(text, "ok")
        self.assertEqual(post.call_count, 2)
        self.assertEqual(post.call_args.kwargs["headers"], {"Authorization": "Bearer o-key"})

    @patch("leaderboard_node.services.llm_gateway.time.sleep")
    def test_exhausted_retries_raise_gateway_error(self, _sleep):
        client = OpenAIClient("o-key", "gpt-test", "https://openai.test/v1", retries=2)

        with patch(POST, side_effect=requests.Timeout("slow")) as post:
            with self.assertRaises(LLMGatewayError):
                client.complete([])
        self.assertEqual(post.call_count, 2)

    def test_response_format_is_forwarded(self):
        client = OpenAIClient("o-key", "gpt-test", "https://openai.test/v1", retries=1)

        with patch(POST, return_value=_openai_reply("{}")) as post:
            client.complete([], response_format={"type": "json_object"})

        self.assertEqual(post.call_args.kwargs["json"]["response_format"], {"type": "json_object"})
        self.assertEqual(post.call_args.kwargs["json"]["model"], "gpt-test")


class TestChatService(unittest.TestCase):
    def setUp(self):
        self.service = ChatService.from_settings(_settings())

    def test_gemini_prompt_leads_and_message_is_last(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "answer"}]}}]}
        history = [{"role": "model", "parts": [{"text": "earlier"}]}]

        with patch(POST, return_value=_response(payload)) as post:
            self.assertEqual(self.service.chat_gemini("question", history), "answer")

        contents = post.call_args.kwargs["json"]["contents"]
        self.assertEqual(contents[0]["parts"][0]["text"], TUTOR_SYSTEM_PROMPT)
        self.assertEqual(contents[1], history[0])
        self.assertEqual(contents[-1], {"role": "user", "parts": [{"text": "question"}]})

    def test_openai_chat_uses_system_role(self):
        with patch(POST, return_value=_openai_reply("answer")) as post:
            self.assertEqual(self.service.chat_openai("question"), "answer")

        messages = post.call_args.kwargs["json"]["messages"]
        self.assertEqual(messages[0], {"role": "system", "content": TUTOR_SYSTEM_PROMPT})
        self.assertEqual(messages[-1], {"role": "user", "content": "question"})

    def test_analyze_sentence_parses_json(self):
        analysis = {"original": "She go home.", "voice": "active"}

        with patch(POST, return_value=_openai_reply(json.dumps(analysis))) as post:
            self.assertEqual(self.service.analyze_sentence("She go home."), analysis)

        messages = post.call_args.kwargs["json"]["messages"]
        self.assertEqual(messages[-1]["content"], build_analysis_prompt("She go home."))

    def test_analyze_sentence_rejects_invalid_json(self):
        with patch(POST, return_value=_openai_reply("not json")):
            with self.assertRaises(LLMGatewayError):
                self.service.analyze_sentence("x")


class TestPrompts(unittest.TestCase):
    def test_analysis_prompt_embeds_sentence(self):
        prompt = build_analysis_prompt("The cat sat.")
        self.assertIn("The cat sat.", prompt)
        self.assertIn('"sentenceType"', prompt)


if __name__ == "__main__":
    unittest.main()
