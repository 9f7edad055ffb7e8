"""Tests for RelevantFileSelector."""

import json

import pytest

from conftest import make_text_response
from fix_verifier.agents.exceptions import FileSelectionError
from fix_verifier.agents.file_selector import (
    MAX_SUGGESTED_FILE_CHARS,
    MAX_SUGGESTED_FILES,
    USER_REASON,
    RelevantFileSelector,
)
from fix_verifier.models import CodebaseContext, EventPhase, FileSource


def _reply(*paths: str) -> str:
    return json.dumps([{"path": path, "reason": f"mentions {path}"} for path in paths])


@pytest.fixture
def selector(workspace, mock_anthropic):
    return RelevantFileSelector(str(workspace), api_key="k")


class TestSelect:
    def test_hints_first_then_suggestions(self, selector, mock_anthropic, workspace):
        mock_anthropic.messages.create.return_value = make_text_response(
            _reply("src/index.html", "src/counter.js")
        )

        files = selector.select("Counter decrements", hint_files=["src/counter.js"])

        assert [f.relative_path for f in files] == ["src/counter.js", "src/index.html"]
        assert files[0].source == FileSource.USER
        assert files[0].reason == USER_REASON
        assert files[1].source == FileSource.SERVICE
        assert files[1].reason == "mentions src/index.html"
        assert files[0].content == (workspace / "src" / "counter.js").read_text()

    def test_missing_and_outside_suggestions_skipped(self, selector, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_text_response(
            _reply("src/ghost.js", "../../etc/passwd", "src/counter.js")
        )
        files = selector.select("bug")
        assert [f.relative_path for f in files] == ["src/counter.js"]

    def test_missing_hint_skipped(self, selector, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_text_response("[]")
        assert selector.select("bug", hint_files=["src/missing.js"]) == []

    def test_oversized_suggestion_skipped(self, selector, mock_anthropic, workspace):
        (workspace / "src" / "bundle.js").write_text("x" * (MAX_SUGGESTED_FILE_CHARS + 1))
        mock_anthropic.messages.create.return_value = make_text_response(_reply("src/bundle.js"))
        assert selector.select("bug") == []

    def test_suggestions_capped(self, selector, mock_anthropic, workspace):
        names = [f"src/mod{i}.js" for i in range(MAX_SUGGESTED_FILES + 3)]
        for name in names:
            (workspace / name).write_text("export {};\n")
        mock_anthropic.messages.create.return_value = make_text_response(_reply(*names))

        files = selector.select("bug")

        assert [f.relative_path for f in files] == names[:MAX_SUGGESTED_FILES]

    def test_malformed_reply_keeps_hints(self, selector, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_text_response("I think counter.js")
        files = selector.select("bug", hint_files=["src/counter.js"])
        assert [f.relative_path for f in files] == ["src/counter.js"]

    def test_service_failure_keeps_hints(self, selector, mock_anthropic):
        mock_anthropic.messages.create.side_effect = RuntimeError("network down")
        files = selector.select("bug", hint_files=["src/counter.js"])
        assert [f.relative_path for f in files] == ["src/counter.js"]

    def test_duplicate_hints_collapsed(self, selector, mock_anthropic, workspace):
        mock_anthropic.messages.create.return_value = make_text_response("[]")
        files = selector.select(
            "bug",
            hint_files=["src/counter.js", str(workspace / "src" / "counter.js")],
        )
        assert len(files) == 1

    def test_missing_workspace(self, mock_anthropic, tmp_path):
        selector = RelevantFileSelector(str(tmp_path / "gone"), api_key="k")
        with pytest.raises(FileSelectionError):
            selector.select("bug")

    def test_prompt_contents_and_events(self, selector, mock_anthropic):
        mock_anthropic.messages.create.return_value = make_text_response("[]")
        events = []
        context = CodebaseContext(content="Vite counter app", file_path="codebase-context.md")

        selector.select(
            "Counter decrements",
            hint_files=["src/counter.js"],
            codebase_context=context,
            on_event=events.append,
        )

        prompt = mock_anthropic.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "## Bug Description\nCounter decrements" in prompt
        assert "Vite counter app" in prompt
        assert "counter.js" in prompt
        assert "- src/counter.js: User-specified file" in prompt
        assert [e.phase for e in events] == [EventPhase.FILES, EventPhase.FILES]
