"""CLI entry point for the fix verifier."""
import argparse
import json
import logging
import os
import sys
import traceback
from pathlib import Path

from fix_verifier.agents.exceptions import AgentError
from fix_verifier.config import AgentConfig, get_output_path, load_config, validate_config
from fix_verifier.models import FixAndVerifyResult, VerificationResult
from fix_verifier.orchestrator.exceptions import OrchestratorError, PipelineHaltedError
from fix_verifier.utils.git import detect_changed_files

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 1
EXIT_KEYBOARD_INTERRUPT = 130

REPORT_FILENAME = "fix-verify-report.json"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
LOG_HANDLER_NAME = "fix_verifier.cli"
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "openai")

# Safe keys allowed in config output (no secrets)
_SAFE_CONFIG_KEYS = frozenset({
    "workspace_root", "model", "llm_provider", "llm_fallback_provider",
    "allow_llm_fallback", "interactive_fallback", "base_url", "dev_server_command",
    "dev_server_port", "test_command", "test_timeout", "headless", "max_attempts",
    "max_test_retries", "enable_visual_analysis", "output_dir", "generated_tests_dir",
    "codebase_context_file",
})


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fix-verifier",
        description="Generate a bug fix, apply it, and verify it with a generated browser test",
    )
    parser.add_argument(
        "--bug",
        type=str,
        default=None,
        help="Bug description (default: $BUG_DESCRIPTION)",
    )
    parser.add_argument(
        "--files",
        type=str,
        default=None,
        help=(
            "Comma-separated changed or relevant files "
            "(default: $CHANGED_FILES, then git diff --name-only HEAD)"
        ),
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=".",
        help="Workspace root (default: current directory)",
    )
    parser.add_argument("--base-url", type=str, default=None, help="URL the app is served at")
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Maximum fix attempts and self-healing test runs (default: 3)",
    )
    parser.add_argument(
        "--ci",
        action="store_true",
        help=f"Non-interactive mode; writes <output_dir>/{REPORT_FILENAME}",
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Only generate and run the verification test (fix already applied)",
    )
    parser.add_argument(
        "--start-server",
        action="store_true",
        help="Start the dev server before each test run",
    )
    parser.add_argument(
        "--test-context",
        type=str,
        default=None,
        help="Extra app context for test generation",
    )
    parser.add_argument("--model", type=str, default=None, help="Model ID to use")
    parser.add_argument(
        "--llm-provider",
        type=str,
        default=None,
        choices=("auto", "anthropic", "openai"),
        help="LLM provider for all agents: auto (default), anthropic, or openai",
    )
    parser.add_argument(
        "--llm-fallback-provider",
        type=str,
        default="",
        choices=("", "anthropic", "openai"),
        help="Optional fallback provider when the primary provider fails",
    )
    parser.add_argument(
        "--allow-llm-fallback",
        action="store_true",
        help="Allow falling back to the alternate provider when the primary fails",
    )
    parser.add_argument("--output-json", action="store_true", help="Output results as JSON")
    parser.add_argument("--report", type=str, default="", help="Write the JSON report to this path")
    parser.add_argument(
        "--dry-run", action="store_true", help="Print config and exit without running"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging on stderr; stdout is reserved for results."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(LOG_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    # Repeated calls (tests, embedding) replace the handler instead of stacking
    for existing in list(root.handlers):
        if existing.get_name() == LOG_HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def validate_workspace(raw_path: str) -> str:
    """Validate and resolve the workspace root.

    Raises:
        SystemExit: If path is not a valid directory.
    """
    resolved = Path(raw_path).resolve()
    if not resolved.is_dir():
        print(f"Error: '{raw_path}' is not a valid directory.", file=sys.stderr)
        raise SystemExit(EXIT_INVALID_INPUT)
    return str(resolved)


def parse_file_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def resolve_inputs(args: argparse.Namespace, workspace: str) -> tuple[str | None, list[str]]:
    """Bug text and file list from flags, then environment, then git."""
    bug = (args.bug or os.getenv("BUG_DESCRIPTION") or "").strip() or None
    files = parse_file_list(args.files) or parse_file_list(os.getenv("CHANGED_FILES"))
    if not files:
        files = detect_changed_files(workspace)
    return bug, files


def build_config(args: argparse.Namespace, workspace: str) -> AgentConfig:
    return load_config(
        workspace,
        base_url=args.base_url,
        model=args.model,
        max_attempts=args.retries,
        max_test_retries=args.retries,
        llm_provider=args.llm_provider,
        llm_fallback_provider=args.llm_fallback_provider or None,
        allow_llm_fallback=True if args.allow_llm_fallback else None,
        interactive_fallback=sys.stdin.isatty() and not (args.ci or args.dry_run),
    )


def create_agents(config: AgentConfig) -> dict:
    """Create all agent instances from the config.

    Agent imports are deferred to avoid loading the provider SDKs and
    LangGraph for --help and --dry-run paths.

    Returns:
        Dict with keys: selector, generator, loop.
    """
    # Lazy imports: avoid loading anthropic/openai/langgraph at module level
    from fix_verifier.agents.file_selector import RelevantFileSelector
    from fix_verifier.agents.fix_generator import FixGenerator
    from fix_verifier.agents.test_executor import TestExecutor
    from fix_verifier.agents.test_generator import TestGenerator
    from fix_verifier.agents.verification_loop import TestVerificationLoop
    from fix_verifier.agents.visual_analyzer import VisualAnalyzer

    visual_analyzer = (
        VisualAnalyzer.from_config(config) if config.enable_visual_analysis else None
    )
    loop = TestVerificationLoop(
        config,
        test_generator=TestGenerator.from_config(config),
        test_executor=TestExecutor(config),
        visual_analyzer=visual_analyzer,
    )
    return {
        "selector": RelevantFileSelector.from_config(config),
        "generator": FixGenerator.from_config(config),
        "loop": loop,
    }


def format_result_json(result: dict) -> str:
    """Serialize result dict to JSON string.

    Calls .model_dump() on Pydantic model values. Falls back to str()
    for non-serializable types (datetime, Path, etc.) via default=str.
    """

    def _serialize(obj):
        if obj is None:
            return None
        if hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")
        return obj

    prepared = {k: _serialize(v) for k, v in result.items()}
    return json.dumps(prepared, indent=2, default=str)


def _write_report(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def _print_verification(verification: VerificationResult, indent: str = "  ") -> None:
    test = verification.test_result
    print(f"{indent}Test: {verification.test_generation.test_file_path}")
    print(f"{indent}Test verdict: {'PASSED' if test.passed else 'FAILED'} "
          f"(exit code {test.exit_code}, {test.duration_seconds:.1f}s)")
    print(f"{indent}Self-healing retries: {verification.retry_count}")
    if test.error_message and not test.passed:
        first_line = test.error_message.strip().splitlines()[0] if test.error_message.strip() else ""
        print(f"{indent}Error: {first_line}")
    print(f"{indent}Artifacts: {len(test.videos)} video(s), "
          f"{len(test.screenshots)} screenshot(s), {len(test.traces)} trace(s)")
    if verification.visual_report is not None:
        print(f"{indent}Visual: {verification.visual_report.overall_assessment}")


def print_result_human(result: FixAndVerifyResult) -> None:
    """Print every attempt, not only the last, in human-readable format."""
    print(f"\n{'='*60}")
    print("Fix Verifier Results")
    print(f"{'='*60}")
    print(f"\nOutcome: {'FIX VERIFIED' if result.succeeded else 'NOT VERIFIED'}"
          + (" (cancelled)" if result.cancelled else ""))
    if result.codebase_context is not None:
        print(f"Codebase context: {result.codebase_context.file_path}")
    print(f"Relevant files ({len(result.relevant_files)}):")
    for relevant in result.relevant_files:
        print(f"  - {relevant.relative_path} [{relevant.source.value}]")

    print(f"\nAttempts ({len(result.attempts)}):")
    for attempt in result.attempts:
        print(f"\n  Attempt {attempt.attempt_number} [{attempt.phase.value}]")
        print(f"  Approach: {attempt.fix.approach}")
        for change in attempt.fix.changes:
            print(f"    changed {change.relative_path}")
        if attempt.error:
            print(f"  Error: {attempt.error}")
        if attempt.verification is not None:
            _print_verification(attempt.verification, indent="  ")
        if attempt.rolled_back:
            print("  Rolled back: yes")

    if result.succeeded and result.final_fix is not None:
        print(f"\nAccepted fix: {result.final_fix.explanation}")
    print(f"\n{'='*60}")


def print_verification_human(verification: VerificationResult) -> None:
    print(f"\n{'='*60}")
    print("Verification Results")
    print(f"{'='*60}")
    print(f"\nOutcome: {'PASSED' if verification.overall_passed else 'FAILED'}")
    _print_verification(verification, indent="")
    print(f"\n{'='*60}")


def print_config_human(config: dict) -> None:
    """Print configuration in human-readable format.

    Only prints keys in the safe allowlist to prevent secret leakage.
    """
    print("\nConfiguration:")
    print(f"{'='*40}")
    for key, value in config.items():
        if key in _SAFE_CONFIG_KEYS:
            print(f"  {key}: {value}")
    print(f"{'='*40}")


def _handle_error(label: str, exc: BaseException, verbose: bool, exit_code: int) -> int:
    """Print error message to stderr and return the exit code."""
    print(f"{label}: {exc}", file=sys.stderr)
    if verbose:
        traceback.print_exc(file=sys.stderr)
    return exit_code


def _emit_output(args: argparse.Namespace, config: AgentConfig, payload: dict) -> None:
    """Print the result and write the JSON report when requested."""
    report_json = format_result_json(payload)
    if args.output_json:
        print(report_json)
    report_path = args.report or (
        str(get_output_path(config) / REPORT_FILENAME) if args.ci else ""
    )
    if report_path:
        _write_report(Path(report_path).expanduser().resolve(), report_json)
        logger.info("Report written to %s", report_path)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code integer.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        workspace = validate_workspace(args.workspace)
    except SystemExit as exc:
        return exc.code

    bug, files = resolve_inputs(args, workspace)
    if not bug:
        print(
            "Error: a bug description is required (--bug or BUG_DESCRIPTION).",
            file=sys.stderr,
        )
        return EXIT_INVALID_INPUT

    try:
        config = build_config(args, workspace)
    except ValueError as exc:
        return _handle_error("Invalid configuration", exc, args.verbose, EXIT_INVALID_INPUT)

    if args.dry_run:
        summary = {
            **config.model_dump(),
            "bug": bug,
            "files": files,
            "mode": "verify-only" if args.verify_only else "fix-and-verify",
        }
        if args.output_json:
            print(json.dumps(
                {k: v for k, v in summary.items() if k in _SAFE_CONFIG_KEYS | {"bug", "files", "mode"}},
                indent=2,
            ))
        else:
            print_config_human(summary)
            print(f"  mode: {summary['mode']}\n  bug: {bug}\n  files: {', '.join(files) or '(none)'}")
        return EXIT_SUCCESS

    problems = validate_config(config)
    if problems:
        for problem in problems:
            print(f"Error: {problem}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    try:
        agents = create_agents(config)

        if args.verify_only:
            if not files:
                logger.warning("No changed files given; the test is generated from the bug text only")
            verification = agents["loop"].verify(
                bug,
                files,
                test_context=args.test_context,
                start_server=args.start_server,
            )
            if not args.output_json:
                print_verification_human(verification)
            _emit_output(args, config, {"mode": "verify-only", "bug": bug, "verification": verification})
            return EXIT_SUCCESS if verification.overall_passed else EXIT_FAILURE

        from fix_verifier.orchestrator.pipeline import FixAndVerifyOrchestrator

        orchestrator = FixAndVerifyOrchestrator(
            config,
            selector=agents["selector"],
            generator=agents["generator"],
            loop=agents["loop"],
        )
        result = orchestrator.run(
            bug,
            hint_files=files,
            start_server=args.start_server,
            test_context=args.test_context,
        )
        if not args.output_json:
            print_result_human(result)
        _emit_output(args, config, {"mode": "fix-and-verify", "bug": bug, "result": result})
        return EXIT_SUCCESS if result.succeeded else EXIT_FAILURE

    except PipelineHaltedError as exc:
        if not args.output_json:
            print_result_human(exc.result)
        _emit_output(args, config, {"mode": "fix-and-verify", "bug": bug, "result": exc.result})
        return _handle_error("Pipeline halted", exc, args.verbose, EXIT_FAILURE)

    except AgentError as exc:
        return _handle_error("Agent error", exc, args.verbose, EXIT_FAILURE)

    except OrchestratorError as exc:
        return _handle_error("Orchestrator error", exc, args.verbose, EXIT_FAILURE)

    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_KEYBOARD_INTERRUPT

    except Exception as exc:
        return _handle_error("Unexpected error", exc, args.verbose, EXIT_FAILURE)


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
