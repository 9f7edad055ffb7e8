"""Filesystem helpers scoped to a workspace root."""

import logging
import os
from pathlib import Path

from fix_verifier.config import AgentConfig
from fix_verifier.models import CodebaseContext

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = frozenset({
    "node_modules",
    ".git",
    "dist",
    "out",
    "build",
    "test-results",
    ".next",
    "coverage",
    ".cache",
    ".turbo",
    ".vercel",
    "__pycache__",
    ".venv",
})
DEFAULT_TREE_DEPTH = 4
DEFAULT_TREE_ENTRIES = 500
CONTEXT_FILE_CANDIDATES = (
    "codebase-context.md",
    "test-context.md",
    "ARCHITECTURE.md",
    os.path.join("docs", "architecture.md"),
)


class PathOutsideWorkspaceError(ValueError):
    """Raised when a path resolves outside the workspace root."""


def resolve_in_workspace(workspace_root: str | Path, file_path: str) -> Path:
    """Resolve ``file_path`` (relative or absolute) and require it to stay in the workspace.

    Raises:
        PathOutsideWorkspaceError: If the resolved path escapes the root.
    """
    root = Path(workspace_root).resolve()
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    if not resolved.is_relative_to(root):
        raise PathOutsideWorkspaceError(
            f"Path '{file_path}' resolves outside of workspace {root}"
        )
    return resolved


def relative_to_workspace(workspace_root: str | Path, path: str | Path) -> str:
    root = Path(workspace_root).resolve()
    resolved = Path(path).resolve()
    try:
        return resolved.relative_to(root).as_posix()
    except ValueError:
        return str(resolved)


def read_text_exact(path: str | Path) -> str:
    """Read UTF-8 text without newline translation so it can be restored byte for byte."""
    with open(path, "r", encoding="utf-8", newline="") as handle:
        return handle.read()


def write_text_exact(path: str | Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def build_file_tree(
    workspace_root: str | Path,
    max_depth: int = DEFAULT_TREE_DEPTH,
    max_entries: int = DEFAULT_TREE_ENTRIES,
) -> str:
    """Render an indented tree of the workspace for a prompt.

    Directories come before files, both alphabetical. Hidden entries and build or
    dependency caches are skipped. Output stops after ``max_entries`` lines.
    """
    lines: list[str] = []
    truncated = False

    def walk(directory: Path, prefix: str, depth: int) -> None:
        nonlocal truncated
        if depth > max_depth or truncated:
            return
        try:
            entries = list(directory.iterdir())
        except OSError:
            return

        visible = [
            entry
            for entry in entries
            if entry.name not in EXCLUDED_DIRS
            and not entry.name.startswith(".")
            and not entry.is_symlink()
        ]
        visible.sort(key=lambda entry: (not entry.is_dir(), entry.name))

        for entry in visible:
            if len(lines) >= max_entries:
                truncated = True
                return
            if entry.is_dir():
                lines.append(f"{prefix}{entry.name}/")
                walk(entry, prefix + "  ", depth + 1)
            else:
                lines.append(f"{prefix}{entry.name}")

    walk(Path(workspace_root), "", 0)
    if truncated:
        lines.append(f"... (truncated after {max_entries} entries)")
    return "\n".join(lines)


def read_codebase_context(config: AgentConfig) -> CodebaseContext | None:
    """Return the first project context document found in the workspace."""
    root = Path(config.workspace_root)
    candidates: list[Path] = []
    if config.codebase_context_file:
        candidates.append((root / config.codebase_context_file).resolve())
    candidates.extend(root / name for name in CONTEXT_FILE_CANDIDATES)

    for candidate in candidates:
        if candidate.is_file():
            logger.info("Using codebase context from %s", candidate)
            return CodebaseContext(
                content=candidate.read_text(encoding="utf-8", errors="replace"),
                file_path=str(candidate),
            )
    logger.info("No codebase context file found in %s", root)
    return None
