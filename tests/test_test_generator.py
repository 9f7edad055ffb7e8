"""Tests for TestGenerator."""

import pytest

from conftest import make_text_response
from fix_verifier.agents.exceptions import TestGenerationError
from fix_verifier.agents.test_generator import TestGenerator, generate_test_name
from fix_verifier.models import TestGenerationInput

PLAYWRIGHT_TEST = (
    "import { test, expect } from '@playwright/test';\n"
    "test('counter increments', async ({ page }) => {\n"
    "  await page.goto('/');\n"
    "});"
)


@pytest.fixture
def generator(config, mock_anthropic):
    return TestGenerator.from_config(config)


@pytest.fixture
def request_input():
    return TestGenerationInput(
        bug_description="Counter decrements on click!",
        changed_files=["src/counter.js"],
        base_url="http://localhost:5173",
    )


class TestGenerateTestName:
    def test_slug(self):
        assert generate_test_name("Counter decrements on click!") == (
            "fix-verification-counter-decrements-on-click"
        )

    def test_slug_truncated(self):
        name = generate_test_name("a" * 80)
        assert name == "fix-verification-" + "a" * 50


class TestGenerate:
    def test_writes_fenced_code(self, generator, mock_anthropic, request_input, workspace):
        mock_anthropic.messages.create.return_value = make_text_response(
            f"Here is the test:\n```typescript\n{PLAYWRIGHT_TEST}\n```"
        )

        result = generator.generate(request_input)

        expected_path = (
            workspace / "tests" / "generated"
            / "fix-verification-counter-decrements-on-click.spec.ts"
        ).resolve()
        assert result.test_file_path == str(expected_path)
        assert result.test_code == PLAYWRIGHT_TEST
        assert expected_path.read_text() == PLAYWRIGHT_TEST

    def test_prompt_includes_files_and_context(self, generator, mock_anthropic, request_input, workspace):
        (workspace / "test-context.md").write_text("Counter lives at /counter", encoding="utf-8")
        mock_anthropic.messages.create.return_value = make_text_response(PLAYWRIGHT_TEST)
        extra = request_input.model_copy(update={"test_context": "Log in as demo/demo"})

        generator.generate(extra)

        prompt = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "### src/counter.js" in prompt
        assert "return count - 1;" in prompt
        assert "http://localhost:5173" in prompt
        assert "Counter lives at /counter" in prompt
        assert "Log in as demo/demo" in prompt
        assert "test-results/fix-verification.png" in prompt

    def test_empty_reply_rejected(self, generator, mock_anthropic, request_input):
        mock_anthropic.messages.create.return_value = make_text_response("   ")
        with pytest.raises(TestGenerationError):
            generator.generate(request_input)

    def test_service_failure(self, generator, mock_anthropic, request_input):
        mock_anthropic.messages.create.side_effect = RuntimeError("down")
        with pytest.raises(TestGenerationError, match="down"):
            generator.generate(request_input)


class TestRegenerate:
    def test_overwrites_same_file(self, generator, mock_anthropic, request_input):
        mock_anthropic.messages.create.return_value = make_text_response(PLAYWRIGHT_TEST)
        first = generator.generate(request_input)

        repaired = PLAYWRIGHT_TEST.replace("'/'", "'/counter'")
        mock_anthropic.messages.create.return_value = make_text_response(repaired)
        second = generator.regenerate(request_input, first.test_code, "locator not found")

        assert second.test_file_path == first.test_file_path
        assert second.test_code == repaired
        prompt = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "locator not found" in prompt
        assert first.test_code in prompt
