"""Tests for the LLM client JSON handling and the prompt registry."""

from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError

from examprep.config.app_config import CONFIG_FILE
from examprep.llm.client import (
    LOCAL_API_KEY,
    LLMClient,
    LLMConfig,
    LLMConnectionError,
    LLMError,
    LLMResponseError,
    extract_json,
)
from examprep.prompts.registry import get_prompt, list_prompts, load_template


def _completion(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.model = "test-model"
    response.usage = None
    return response


@pytest.fixture
def client() -> LLMClient:
    llm = LLMClient(config=LLMConfig(provider="lmstudio", base_url="http://localhost:1234/v1"))
    llm._client = MagicMock()
    return llm


class TestJsonExtraction:
    def test_parses_array(self, client):
        assert client._try_parse_json('[{"a": 1}]') == [{"a": 1}]

    def test_strips_think_block(self, client):
        content = '<think>reasoning [not json]</think>\n{"ok": true}'
        assert client._try_parse_json(content) == {"ok": True}

    def test_extracts_code_fence(self, client):
        content = 'Here you go:\n```json\n[1, 2, 3]\n```'
        assert client._try_parse_json(content) == [1, 2, 3]

    def test_array_embedded_in_text(self, client):
        content = 'Questions: [{"question": "x"}] done'
        assert client._try_parse_json(content) == [{"question": "x"}]

    def test_garbage_returns_none(self, client):
        assert client._try_parse_json("no json here") is None

    def test_object_before_array(self):
        assert extract_json('<thinking>[draft]</thinking> {"items": [1]}') == {"items": [1]}


class TestLLMConfig:
    def test_local_provider_defaults(self):
        config = LLMConfig.from_app_config()
        assert config.provider == "lmstudio"
        assert config.model == "llama-3.2-3b-instruct"
        assert config.api_key == LOCAL_API_KEY
        assert config.temperature == 0.7

    def test_generation_settings_from_config(self, data_dir):
        path = data_dir / CONFIG_FILE
        path.parent.mkdir(parents=True)
        path.write_text("llm:\n  temperature: 0.2\n  json_repair_retries: 2\n", encoding="utf-8")
        config = LLMConfig.from_app_config()
        assert config.temperature == 0.2
        assert config.json_repair_retries == 2
        assert config.max_tokens == 4096

    def test_cloud_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        config = LLMConfig.from_app_config("openai")
        assert config.api_key == "sk-test"
        assert config.model == "gpt-4o-mini"

    def test_unknown_provider(self):
        with pytest.raises(LLMError, match="not configured"):
            LLMConfig.from_app_config("mistral")


class TestChat:
    def test_connection_error_mapped(self, client):
        request = httpx.Request("POST", "http://localhost:1234/v1/chat/completions")
        client._client.chat.completions.create.side_effect = APIConnectionError(request=request)
        with pytest.raises(LLMConnectionError, match="lmstudio"):
            client.simple_json(system_prompt="s", user_message="u")

    def test_json_mode_only_for_supporting_providers(self, client):
        client._client.chat.completions.create.return_value = _completion("[]")
        client.simple_json(system_prompt="s", user_message="u")
        assert "response_format" not in client._client.chat.completions.create.call_args.kwargs

        client.config.provider = "openai"
        client.simple_json(system_prompt="s", user_message="u")
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}


class TestChatJson:
    def test_repairs_once(self, client):
        client._client.chat.completions.create.side_effect = [
            _completion("not json"),
            _completion('{"fixed": 1}'),
        ]
        result = client.simple_json(system_prompt="s", user_message="u")
        assert result == {"fixed": 1}
        assert client._client.chat.completions.create.call_count == 2
        retry_messages = client._client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in retry_messages] == ["system", "user", "assistant", "user"]
        assert "not json" in retry_messages[-1]["content"]

    def test_raises_after_failed_repair(self, client):
        client._client.chat.completions.create.side_effect = [
            _completion("bad"),
            _completion("still bad"),
        ]
        with pytest.raises(LLMResponseError):
            client.simple_json(system_prompt="s", user_message="u")


class TestPromptRegistry:
    def test_lists_bundled_prompts(self):
        prompts = list_prompts()
        assert "questions/generate_adaptive" in prompts
        assert "recommendations/generate_tests" in prompts

    def test_substitutes_variables(self):
        prompt = get_prompt(
            "questions/generate_adaptive",
            question_count="7",
            subjects="Chemistry",
        )
        assert "Generate 7" in prompt
        assert "Chemistry" in prompt

    def test_missing_prompt_raises(self):
        with pytest.raises(FileNotFoundError):
            get_prompt("nope/missing")

    def test_placeholders_exclude_json_examples(self):
        template = load_template("recommendations/generate_tests")
        assert template.placeholders == {"count", "context", "max_questions", "max_minutes"}

    def test_unfilled_placeholder_kept(self):
        prompt = get_prompt("recommendations/generate_tests", count="2")
        assert "{context}" in prompt
        assert "{count}" not in prompt
