"""Visual analyzer agent: advisory review of screenshots from a test run."""

import base64
import logging
from pathlib import Path
from typing import Any

from fix_verifier.agents.exceptions import VisualAnalysisError
from fix_verifier.agents.llm_base import LLMAgent
from fix_verifier.models import VisualAnalysisResult, VisualReport
from fix_verifier.utils.response_parser import extract_json_object

logger = logging.getLogger(__name__)

# Constants
MAX_SCREENSHOTS = 5
MAX_API_TOKENS = 1024
VALID_CONFIDENCE = {"high", "medium", "low"}
MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
DEFAULT_MEDIA_TYPE = "image/png"


def get_media_type(file_path: str) -> str:
    return MEDIA_TYPES.get(Path(file_path).suffix.lower(), DEFAULT_MEDIA_TYPE)


def summarize_results(results: list[VisualAnalysisResult]) -> str:
    """Fixed one-line summary across all screenshot results."""
    if not results:
        return "No screenshots were available for visual analysis."

    issue_count = sum(len(r.issues) for r in results)
    high_confidence = sum(1 for r in results if r.confidence == "high")

    if issue_count == 0 and high_confidence == len(results):
        return (
            "All screenshots look correct. No visual issues detected. "
            "High confidence that the fix is applied correctly."
        )
    if issue_count > 0:
        return (
            f"Found {issue_count} visual issue(s) across {len(results)} screenshot(s). "
            "Manual review recommended."
        )
    return (
        f"Analysis complete with {high_confidence}/{len(results)} high-confidence results. "
        "Some screenshots may need manual review."
    )


class VisualAnalyzer(LLMAgent):
    """Judges whether screenshots show the bug as fixed. Never gates a verdict."""

    error_cls = VisualAnalysisError
    agent_label = "Visual analysis"

    def analyze(self, bug_description: str, screenshot_paths: list[str]) -> VisualReport:
        """Review up to five screenshots; missing files are skipped.

        ``passed`` is true iff no issues were reported and every result is
        high confidence.

        Raises:
            VisualAnalysisError: If the service call fails.
        """
        results: list[VisualAnalysisResult] = []
        for screenshot_path in screenshot_paths[:MAX_SCREENSHOTS]:
            path = Path(screenshot_path)
            if not path.is_file():
                logger.debug("Screenshot missing, skipping: %s", screenshot_path)
                continue
            results.append(self._analyze_one(bug_description, path))

        has_issues = any(r.issues for r in results)
        all_high = all(r.confidence == "high" for r in results)
        report = VisualReport(
            bug_description=bug_description,
            overall_assessment=summarize_results(results),
            screenshots=results,
            passed=not has_issues and all_high,
        )
        logger.info("Visual analysis: %s", report.overall_assessment)
        return report

    def _analyze_one(self, bug_description: str, path: Path) -> VisualAnalysisResult:
        try:
            image_data = base64.standard_b64encode(path.read_bytes()).decode("ascii")
        except OSError as exc:
            raise VisualAnalysisError(f"Cannot read screenshot {path}: {exc}") from exc

        content: list[dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": get_media_type(str(path)),
                    "data": image_data,
                },
            },
            {"type": "text", "text": self._build_prompt(bug_description)},
        ]
        response_text = self._complete(content, MAX_API_TOKENS)
        return self._parse_result(str(path), response_text)

    def _parse_result(self, screenshot: str, response_text: str) -> VisualAnalysisResult:
        try:
            payload = extract_json_object(response_text)
        except ValueError:
            logger.warning("Visual analysis reply for %s was not JSON", screenshot)
            return VisualAnalysisResult(
                screenshot=screenshot,
                assessment=response_text,
                issues=[],
                confidence="low",
            )

        issues = payload.get("issues")
        if not isinstance(issues, list):
            issues = []
        confidence = payload.get("confidence")
        if confidence not in VALID_CONFIDENCE:
            confidence = "low"
        assessment = payload.get("assessment")
        return VisualAnalysisResult(
            screenshot=screenshot,
            assessment=str(assessment) if assessment else "No assessment available",
            issues=[str(issue) for issue in issues],
            confidence=confidence,
        )

    def _build_prompt(self, bug_description: str) -> str:
        return f"""You are a QA visual testing expert. Analyze this screenshot taken after \
applying a bug fix.

## Bug Description
{bug_description}

## Task
1. Does the UI look correct and properly rendered?
2. Are there any visual issues (misalignment, overflow, missing elements, broken layout)?
3. Based on the bug description, does it look like the fix was applied successfully?
4. Rate your confidence: high, medium, or low

Respond in this JSON format:
{{
  "assessment": "Brief overall assessment",
  "issues": ["list of visual issues found, empty if none"],
  "confidence": "high|medium|low",
  "fixApplied": true/false
}}"""
