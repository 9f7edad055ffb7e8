"""Tests for the shared provider chain."""

from unittest.mock import patch

import pytest

from conftest import make_openai_response, make_text_response
from fix_verifier.agents.exceptions import GenerationError, ProviderError
from fix_verifier.agents.llm_base import OPENAI_FALLBACK_MODEL, LLMAgent
from fix_verifier.config import AgentConfig


class _GeneratingAgent(LLMAgent):
    error_cls = GenerationError
    agent_label = "Generating"


class TestConstruction:
    def test_no_keys_raises(self):
        with pytest.raises(ProviderError, match="No Anthropic or OpenAI API key"):
            LLMAgent()

    def test_subclass_error_type(self):
        with pytest.raises(GenerationError):
            _GeneratingAgent()

    def test_key_from_environment(self, mock_anthropic, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        agent = LLMAgent()
        assert agent.api_key == "env-key"
        assert agent._primary_provider() == "anthropic"

    def test_openai_only(self, mock_openai):
        agent = LLMAgent(openai_api_key="sk-test")
        assert agent._primary_provider() == "openai"
        assert agent._resolve_model("openai") == OPENAI_FALLBACK_MODEL

    def test_provider_without_key_rejected(self, mock_anthropic):
        with pytest.raises(ProviderError, match="OpenAI"):
            LLMAgent(api_key="k", llm_provider="openai")

    def test_unknown_provider_rejected(self, mock_anthropic):
        with pytest.raises(ProviderError, match="Unsupported provider"):
            LLMAgent(api_key="k", llm_provider="gemini")

    def test_from_config(self, mock_anthropic, tmp_path):
        config = AgentConfig(
            workspace_root=str(tmp_path),
            anthropic_api_key="k",
            model="claude-test",
            interactive_fallback=True,
        )
        agent = LLMAgent.from_config(config)
        assert agent.model == "claude-test"
        assert agent.allow_human_fallback is True
        assert agent.allow_fallback is False


class TestComplete:
    def test_anthropic_text_returned(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_text_response("hello")
        agent = LLMAgent(api_key="k", model="claude-test")

        assert agent._complete("prompt", max_tokens=100) == "hello"
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_failure_without_fallback_chains_error(self, mock_anthropic):
        mock_anthropic.messages.create.side_effect = RuntimeError("rate limited")
        agent = _GeneratingAgent(api_key="k")

        with pytest.raises(GenerationError, match="rate limited") as exc_info:
            agent._complete("prompt", max_tokens=10)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_automatic_fallback_to_openai(self, mock_anthropic, mock_openai):
        mock_anthropic.messages.create.side_effect = RuntimeError("overloaded")
        mock_openai.chat.completions.create.return_value = make_openai_response("from openai")
        agent = LLMAgent(
            api_key="k",
            openai_api_key="sk",
            llm_fallback_provider="openai",
            allow_fallback=True,
        )

        assert agent._complete("prompt", max_tokens=10) == "from openai"
        assert mock_openai.chat.completions.create.call_args.kwargs["model"] == OPENAI_FALLBACK_MODEL

    def test_interactive_fallback_declined(self, mock_anthropic, mock_openai):
        mock_anthropic.messages.create.side_effect = RuntimeError("overloaded")
        agent = LLMAgent(
            api_key="k",
            openai_api_key="sk",
            llm_fallback_provider="openai",
            allow_fallback=True,
            allow_human_fallback=True,
        )

        with patch("builtins.input", return_value="n"):
            with pytest.raises(ProviderError):
                agent._complete("prompt", max_tokens=10)
        mock_openai.chat.completions.create.assert_not_called()

    def test_interactive_fallback_accepted(self, mock_anthropic, mock_openai):
        mock_anthropic.messages.create.side_effect = RuntimeError("overloaded")
        mock_openai.chat.completions.create.return_value = make_openai_response("ok")
        agent = LLMAgent(
            api_key="k",
            openai_api_key="sk",
            llm_fallback_provider="openai",
            allow_fallback=True,
            allow_human_fallback=True,
        )

        with patch("builtins.input", return_value="y"):
            assert agent._complete("prompt", max_tokens=10) == "ok"

    def test_empty_anthropic_reply(self, mock_anthropic):
        response = make_text_response("ignored")
        response.content[0].type = "tool_use"
        mock_anthropic.messages.create.return_value = response
        with pytest.raises(ProviderError):
            LLMAgent(api_key="k")._complete("prompt", max_tokens=10)

    def test_image_blocks_translated_for_openai(self, mock_anthropic):
        agent = LLMAgent(api_key="k")
        content = [
            {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "QUJD"}},
            {"type": "text", "text": "describe"},
        ]
        assert agent._to_openai_content(content) == [
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,QUJD"}},
            {"type": "text", "text": "describe"},
        ]
