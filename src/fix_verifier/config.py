"""Configuration for the fix verifier.

Values come from, in increasing precedence: built-in defaults, a ``.env`` file
in the workspace root, the process environment, and explicit overrides (the
CLI flags).
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import httpx
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_DEV_SERVER_COMMAND = "npm run dev"
DEFAULT_TEST_COMMAND = "npx playwright test"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_TEST_RETRIES = 3
MAX_RETRIES_LIMIT = 10

ENV_PREFIX = "FIX_VERIFIER_"

# Environment variable -> config field, read after the FIX_VERIFIER_* variables
_PLAIN_ENV_KEYS = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "CLAUDE_CODE_OAUTH_TOKEN": "anthropic_api_key",
    "OPENAI_API_KEY": "openai_api_key",
    "BASE_URL": "base_url",
    "CLAUDE_MODEL": "model",
}

Provider = Literal["auto", "anthropic", "openai"]


class AgentConfig(BaseModel):
    """Settings shared by every pipeline component."""

    model_config = ConfigDict(frozen=False)

    workspace_root: str
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    llm_provider: Provider = "auto"
    llm_fallback_provider: Provider | None = None
    allow_llm_fallback: bool = False
    interactive_fallback: bool = False

    base_url: str = DEFAULT_BASE_URL
    dev_server_command: str = DEFAULT_DEV_SERVER_COMMAND
    dev_server_port: int = 3000
    server_startup_timeout: float = 30.0
    server_poll_interval: float = 1.0
    server_request_timeout: float = 2.0
    test_command: str = DEFAULT_TEST_COMMAND
    test_timeout: float = 300.0
    headless: bool = True

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_test_retries: int = DEFAULT_MAX_TEST_RETRIES
    enable_visual_analysis: bool = True

    output_dir: str = "test-results"
    generated_tests_dir: str = str(Path("tests") / "generated")
    test_file_suffix: str = ".spec.ts"
    codebase_context_file: str | None = None

    extra_env: dict[str, str] = Field(default_factory=dict)

    @field_validator("max_attempts", "max_test_retries")
    @classmethod
    def _clamp_counter(cls, value: int) -> int:
        return max(1, min(value, MAX_RETRIES_LIMIT))

    @field_validator("workspace_root")
    @classmethod
    def _resolve_root(cls, value: str) -> str:
        return str(Path(value).expanduser().resolve())

    @model_validator(mode="after")
    def _output_dirs_inside_workspace(self) -> "AgentConfig":
        # These directories are wiped or written on every run
        root = Path(self.workspace_root)
        for field_name in ("output_dir", "generated_tests_dir"):
            value = getattr(self, field_name)
            target = Path(root, value).resolve()
            if root not in target.parents:
                raise ValueError(
                    f"{field_name} must be a subdirectory of the workspace root, got {value!r}"
                )
        return self


def get_output_path(config: AgentConfig) -> Path:
    """Directory the test runner writes videos, screenshots and traces into."""
    return Path(config.workspace_root, config.output_dir).resolve()


def get_generated_test_path(config: AgentConfig) -> Path:
    return Path(config.workspace_root, config.generated_tests_dir).resolve()


def _env_values(workspace_root: Path) -> dict[str, str]:
    """Merge ``<workspace>/.env`` with the real environment (environment wins)."""
    merged: dict[str, str] = {}
    dotenv_path = workspace_root / ".env"
    if dotenv_path.is_file():
        merged.update(
            {k: v for k, v in dotenv_values(dotenv_path).items() if v is not None}
        )
    merged.update(os.environ)
    return merged


def load_config(workspace_root: str | os.PathLike[str], **overrides: Any) -> AgentConfig:
    """Build an AgentConfig for ``workspace_root``.

    ``FIX_VERIFIER_<FIELD>`` variables set any field by upper-cased name (e.g.
    ``FIX_VERIFIER_MAX_ATTEMPTS=5``). Overrides whose value is None are ignored
    so CLI flags that were not given keep the environment value.
    """
    root = Path(workspace_root).expanduser().resolve()
    env = _env_values(root)

    values: dict[str, Any] = {}
    for env_key, field_name in _PLAIN_ENV_KEYS.items():
        if env.get(env_key) and field_name not in values:
            values[field_name] = env[env_key]

    for field_name in AgentConfig.model_fields:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        if env_key in env and field_name not in ("workspace_root", "extra_env"):
            values[field_name] = env[env_key]

    values.update({k: v for k, v in overrides.items() if v is not None})
    values["workspace_root"] = str(root)

    config = AgentConfig.model_validate(values)
    logger.debug(
        "Loaded config for %s (base_url=%s, max_attempts=%d, max_test_retries=%d)",
        config.workspace_root,
        config.base_url,
        config.max_attempts,
        config.max_test_retries,
    )
    return config


def _is_http_url(value: str) -> bool:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def validate_config(config: AgentConfig) -> list[str]:
    """Return human-readable configuration problems; empty when usable."""
    errors: list[str] = []
    if not (config.anthropic_api_key or config.openai_api_key):
        errors.append(
            "No Anthropic or OpenAI API key found. Set ANTHROPIC_API_KEY or "
            "OPENAI_API_KEY in the environment or the workspace .env file."
        )
    if config.llm_provider == "anthropic" and not config.anthropic_api_key:
        errors.append("llm_provider is anthropic but ANTHROPIC_API_KEY is not set.")
    if config.llm_provider == "openai" and not config.openai_api_key:
        errors.append("llm_provider is openai but OPENAI_API_KEY is not set.")
    if not Path(config.workspace_root).is_dir():
        errors.append(f"Workspace root is not a directory: {config.workspace_root}")
    if not _is_http_url(config.base_url):
        errors.append(f"base_url must be an http(s) URL with a host: {config.base_url!r}")
    return errors
