import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from fix_verifier.config import AgentConfig

# Variables that would otherwise leak the developer's environment into config tests
_ISOLATED_ENV = (
    "ANTHROPIC_API_KEY",
    "CLAUDE_CODE_OAUTH_TOKEN",
    "OPENAI_API_KEY",
    "BASE_URL",
    "CLAUDE_MODEL",
    "BUG_DESCRIPTION",
    "CHANGED_FILES",
)

COUNTER_SOURCE = (
    "export function increment(count) {\n"
    "  return count - 1;\n"
    "}\n"
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("FIX_VERIFIER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace(tmp_path) -> Path:
    """A small web-app workspace with one buggy source file."""
    root = tmp_path / "app"
    (root / "src").mkdir(parents=True)
    (root / "src" / "counter.js").write_text(COUNTER_SOURCE, encoding="utf-8")
    (root / "src" / "index.html").write_text("<button id='inc'>+</button>\n", encoding="utf-8")
    return root


@pytest.fixture
def config(workspace) -> AgentConfig:
    return AgentConfig(
        workspace_root=str(workspace),
        anthropic_api_key="test-anthropic-key",
        max_attempts=3,
        max_test_retries=3,
    )


def make_text_response(text: str) -> MagicMock:
    """Mock Anthropic messages.create response with a single text block."""
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


def make_openai_response(text: str) -> MagicMock:
    message = MagicMock()
    message.content = text
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def mock_anthropic():
    """Patch the Anthropic client class used by every service agent."""
    with patch("fix_verifier.agents.llm_base.Anthropic") as anthropic_cls:
        client = MagicMock()
        anthropic_cls.return_value = client
        yield client


@pytest.fixture
def mock_openai():
    with patch("fix_verifier.agents.llm_base.openai") as openai_module:
        client = MagicMock()
        openai_module.OpenAI.return_value = client
        yield client
