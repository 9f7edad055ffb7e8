"""Shared provider-chain plumbing for agents that call a proposal service."""

import logging
import os
from typing import Any, Literal

from anthropic import Anthropic
import openai

from fix_verifier.agents.exceptions import AgentError, ProviderError
from fix_verifier.config import DEFAULT_MODEL, AgentConfig

logger = logging.getLogger(__name__)

OPENAI_FALLBACK_MODEL = "gpt-4o-mini"

# Message content: plain prompt text, or Anthropic-style content blocks
# ({"type": "text", ...} / {"type": "image", "source": {...}})
MessageContent = str | list[dict[str, Any]]


class LLMAgent:
    """Base for agents that talk to Anthropic with an optional OpenAI fallback.

    Subclasses set ``error_cls`` so a failed provider chain surfaces as the
    agent's own exception type, and ``agent_label`` for logs and prompts.
    """

    error_cls: type[AgentError] = ProviderError
    agent_label: str = "LLM"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        openai_api_key: str | None = None,
        llm_provider: str = "auto",
        llm_fallback_provider: str | None = None,
        allow_fallback: bool = False,
        allow_human_fallback: bool = False,
    ) -> None:
        """Initialize provider clients.

        Args:
            api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY, then
                CLAUDE_CODE_OAUTH_TOKEN.
            model: Model ID. Claude models map to gpt-4o-mini on OpenAI.
            openai_api_key: OpenAI API key. Falls back to OPENAI_API_KEY.

        Raises:
            ProviderError (or the subclass ``error_cls``): If no key is
                available or the provider selection cannot be satisfied.
        """
        self.model: str = model
        self.api_key: str | None = (
            api_key
            or os.getenv("ANTHROPIC_API_KEY")
            or os.getenv("CLAUDE_CODE_OAUTH_TOKEN")
        )
        self.openai_api_key: str | None = openai_api_key or os.getenv("OPENAI_API_KEY")
        self.llm_provider: Literal["anthropic", "openai", "auto"] = "auto"
        self.llm_fallback_provider: str | None = None
        self.allow_fallback: bool = False
        self.allow_human_fallback: bool = False
        self._anthropic_client: Anthropic | None = None
        self._openai_client: openai.OpenAI | None = None

        if self.api_key:
            self._anthropic_client = Anthropic(api_key=self.api_key)
        if self.openai_api_key:
            self._openai_client = openai.OpenAI(api_key=self.openai_api_key)

        if not (self._anthropic_client or self._openai_client):
            raise self.error_cls(
                "No Anthropic or OpenAI API key found. "
                "Provide via parameter, ANTHROPIC_API_KEY, CLAUDE_CODE_OAUTH_TOKEN, "
                "or OPENAI_API_KEY env vars."
            )
        self.set_provider_config(
            llm_provider=llm_provider,
            llm_fallback_provider=llm_fallback_provider,
            allow_fallback=allow_fallback,
            allow_human_fallback=allow_human_fallback,
        )

    @classmethod
    def from_config(cls, config: AgentConfig, **kwargs: Any):
        """Build the agent from an AgentConfig; extra kwargs go to the subclass."""
        return cls(
            api_key=config.anthropic_api_key,
            model=config.model,
            openai_api_key=config.openai_api_key,
            llm_provider=config.llm_provider,
            llm_fallback_provider=config.llm_fallback_provider,
            allow_fallback=config.allow_llm_fallback,
            allow_human_fallback=config.interactive_fallback,
            **kwargs,
        )

    def _normalize_provider(
        self,
        value: str,
    ) -> Literal["anthropic", "openai", "auto"]:
        if value not in {"auto", "anthropic", "openai"}:
            raise self.error_cls(f"Unsupported provider: {value}")
        return value

    def set_provider_config(
        self,
        llm_provider: str = "auto",
        llm_fallback_provider: str | None = None,
        allow_fallback: bool = False,
        allow_human_fallback: bool = False,
    ) -> None:
        self.llm_provider = self._normalize_provider(llm_provider)
        self.llm_fallback_provider = (
            self._normalize_provider(llm_fallback_provider)
            if llm_fallback_provider
            else None
        )
        self.allow_fallback = bool(allow_fallback)
        self.allow_human_fallback = bool(allow_human_fallback)

        if self.llm_provider == "anthropic" and self._anthropic_client is None:
            raise self.error_cls(
                "No Anthropic API key found for --llm-provider=anthropic."
            )
        if self.llm_provider == "openai" and self._openai_client is None:
            raise self.error_cls("No OpenAI API key found for --llm-provider=openai.")
        if self.allow_fallback and self.llm_fallback_provider:
            if self.llm_fallback_provider == "anthropic" and self._anthropic_client is None:
                raise self.error_cls(
                    "Fallback provider requested as anthropic but ANTHROPIC_API_KEY is not set."
                )
            if self.llm_fallback_provider == "openai" and self._openai_client is None:
                raise self.error_cls(
                    "Fallback provider requested as openai but OPENAI_API_KEY is not set."
                )

    def _primary_provider(self) -> Literal["anthropic", "openai"]:
        if self.llm_provider == "auto":
            if self._anthropic_client is not None:
                return "anthropic"
            return "openai"
        return self.llm_provider

    def _resolve_model(self, provider: str) -> str:
        if provider == "openai" and self.model.startswith("claude-"):
            return OPENAI_FALLBACK_MODEL
        return self.model

    def _provider_chain(self) -> list[str]:
        chain: list[str] = [self._primary_provider()]
        if self.allow_fallback and self.llm_fallback_provider:
            fallback = self.llm_fallback_provider
            if fallback != chain[0]:
                chain.append(fallback)
        return chain

    def _prompt_fallback(self, error: Exception, fallback_provider: str) -> bool:
        if not self.allow_human_fallback:
            return False
        try:
            response = input(
                f"{self.agent_label} call failed with {type(error).__name__}: {error} "
                f"\nUse fallback provider '{fallback_provider}'? [y/N]: "
            ).strip().lower()
            return response in {"y", "yes"}
        except EOFError:
            return False

    def _to_openai_content(self, content: MessageContent) -> Any:
        """Translate Anthropic-style content blocks to OpenAI chat parts."""
        if isinstance(content, str):
            return content
        parts: list[dict[str, Any]] = []
        for block in content:
            if block.get("type") == "image":
                source = block["source"]
                parts.append({
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:{source['media_type']};base64,{source['data']}",
                    },
                })
            else:
                parts.append({"type": "text", "text": block.get("text", "")})
        return parts

    def _parse_anthropic_text(self, response: Any) -> str:
        texts = [
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        if not texts:
            raise self.error_cls("Anthropic response contained no text blocks")
        return "\n".join(texts)

    def _parse_openai_text(self, response: Any) -> str:
        message = response.choices[0].message
        text = message.content
        if text is None:
            raise self.error_cls("OpenAI response returned empty content")
        return text

    def _complete(self, content: MessageContent, max_tokens: int) -> str:
        """Send one user message down the provider chain and return the reply text.

        Raises:
            ``error_cls``: If every provider in the chain failed; the last
                provider error is chained.
        """
        providers = self._provider_chain()
        last_error: Exception | None = None
        for index, provider in enumerate(providers):
            try:
                if provider == "anthropic":
                    if self._anthropic_client is None:
                        raise self.error_cls("Anthropic client unavailable")
                    response = self._anthropic_client.messages.create(
                        model=self._resolve_model("anthropic"),
                        max_tokens=max_tokens,
                        messages=[{"role": "user", "content": content}],
                    )
                    return self._parse_anthropic_text(response)

                if self._openai_client is None:
                    raise self.error_cls("OpenAI client unavailable")
                response = self._openai_client.chat.completions.create(
                    model=self._resolve_model("openai"),
                    max_tokens=max_tokens,
                    messages=[{"role": "user", "content": self._to_openai_content(content)}],
                )
                return self._parse_openai_text(response)
            except Exception as error:
                last_error = error
                logger.warning(
                    "%s call via %s failed: %s", self.agent_label, provider, error
                )
                if index >= len(providers) - 1:
                    break
                if not self.allow_fallback:
                    break
                # Interactive runs confirm the switch; unattended runs fall back directly
                if self.allow_human_fallback and not self._prompt_fallback(
                    error, providers[index + 1]
                ):
                    break

        raise self.error_cls(
            f"{self.agent_label} call failed: {last_error}"
        ) from last_error
