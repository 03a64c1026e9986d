"""Unit tests for GeminiBackend."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from src.services.gemini import GeminiBackend
from src.services.llm import ChatMessage, GenerationTimeout, LLMError, TransientLLMError


def _client(text: str | None) -> MagicMock:
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text=text)
    return client


class TestGeminiBackend:
    def test_missing_api_key_raises_value_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            GeminiBackend()

    def test_builds_client_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setenv("GEMINI_CHAT_MODEL", "gemini-test")

        with patch("src.services.gemini.genai.Client") as client_cls:
            client_cls.return_value = _client("reply")
            text = GeminiBackend().generate([], "hi", 10)

        client_cls.assert_called_once_with(api_key="g-key")
        assert text == "reply"
        assert client_cls.return_value.models.generate_content.call_args.kwargs["model"] == "gemini-test"

    def test_maps_history_roles_and_system_instruction(self) -> None:
        client = _client("  answer  ")

        text = GeminiBackend(client=client, model="m").generate(
            [ChatMessage("user", "q1"), ChatMessage("assistant", "a1")],
            "q2",
            10,
            instructions="rules",
        )

        assert text == "answer"
        kwargs = client.models.generate_content.call_args.kwargs
        assert [c.role for c in kwargs["contents"]] == ["user", "model", "user"]
        assert kwargs["contents"][-1].parts[0].text == "q2"
        assert kwargs["config"].system_instruction == "rules"

    def test_empty_response_raises(self) -> None:
        with pytest.raises(LLMError):
            GeminiBackend(client=_client(None), model="m").generate([], "hi", 10)

    def test_connection_error_is_transient(self) -> None:
        client = MagicMock()
        client.models.generate_content.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(TransientLLMError, match="connection refused"):
            GeminiBackend(client=client, model="m").generate([], "hi", 10)

    def test_read_timeout_is_generation_timeout(self) -> None:
        client = MagicMock()
        client.models.generate_content.side_effect = httpx.ReadTimeout("read timed out")

        with pytest.raises(GenerationTimeout):
            GeminiBackend(client=client, model="m").generate([], "hi", 10)
