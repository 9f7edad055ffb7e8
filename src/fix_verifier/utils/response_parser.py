"""Parsing helpers for free-text proposal service replies."""

import json
import re
from typing import Any

from pydantic import ValidationError

from fix_verifier.models.proposal_models import (
    FixProposal,
    ParsedProposal,
    ProposalOk,
    ProposalParseError,
)

FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
CODE_BLOCK_RE = re.compile(
    r"```(?:typescript|ts|javascript|js|tsx|jsx|python|py)?[ \t]*\n([\s\S]*?)```"
)
RAW_PREVIEW_CHARS = 200


def _first_json_value(text: str, opener: str) -> Any:
    """Decode the first complete JSON value that starts with ``opener``.

    Raises:
        ValueError: If no such value can be decoded.
    """
    decoder = json.JSONDecoder()
    start = text.find(opener)
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
            return value
        except json.JSONDecodeError:
            start = text.find(opener, start + 1)
    raise ValueError(f"no JSON value starting with {opener!r} found")


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object in a reply.

    The first fenced code block wins when present; otherwise (or when the fenced
    block is not an object) the first top-level object in the text is used.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    fenced = FENCED_BLOCK_RE.search(text)
    if fenced:
        try:
            value = json.loads(fenced.group(1))
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
    value = _first_json_value(text, "{")
    if not isinstance(value, dict):
        raise ValueError("reply JSON is not an object")
    return value


def extract_json_array(text: str) -> list[Any]:
    """Return the first JSON array in a reply.

    Raises:
        ValueError: If no array can be decoded.
    """
    value = _first_json_value(text, "[")
    if not isinstance(value, list):
        raise ValueError("reply JSON is not an array")
    return value


def parse_fix_proposal(text: str) -> ParsedProposal:
    """Parse a fix-proposal reply into ``ProposalOk`` or ``ProposalParseError``.

    Nothing short of the full required shape (a non-empty ``changes`` array of
    ``{filePath, modifiedContent}`` strings) is accepted.
    """
    try:
        payload = extract_json_object(text)
    except ValueError as exc:
        return ProposalParseError(reason=f"Reply is not valid JSON: {exc}", raw_text=text)

    if "changes" not in payload or not isinstance(payload["changes"], list):
        return ProposalParseError(reason='Reply is missing a "changes" array', raw_text=text)

    try:
        proposal = FixProposal.model_validate(payload)
    except ValidationError as exc:
        return ProposalParseError(
            reason=f"Reply does not match the fix shape: {exc.error_count()} error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ),
            raw_text=text,
        )
    return ProposalOk(proposal=proposal)


def extract_code(text: str) -> str:
    """Pull runnable test source out of a reply.

    Order: first fenced code block, then everything from the first ``import``,
    then the trimmed reply.
    """
    block = CODE_BLOCK_RE.search(text)
    if block:
        return block.group(1).strip()

    stripped = text.strip()
    if stripped.startswith("import"):
        return stripped

    import_index = text.find("import")
    if import_index != -1:
        return text[import_index:].strip()

    return stripped


def preview(text: str, limit: int = RAW_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
