"""Utilities for the fix verifier."""

from fix_verifier.utils.diff_generator import detect_code_style, generate_unified_diff
from fix_verifier.utils.events import EventCallback, emit
from fix_verifier.utils.process import terminate_process_tree
from fix_verifier.utils.workspace import build_file_tree, read_codebase_context

__all__ = [
    "EventCallback",
    "build_file_tree",
    "detect_code_style",
    "emit",
    "generate_unified_diff",
    "read_codebase_context",
    "terminate_process_tree",
]
