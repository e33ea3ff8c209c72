"""Parsing of sentinel-wrapped JSON replies from the analysis models.

Models are asked to wrap a single JSON object between two ``^DT^`` markers.
Anything that does not match that contract is a parse failure; no attempt is
made to repair malformed JSON.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from app.llm.errors import ParseError

SENTINEL = "^DT^"

# Raw reply some backends return when they refuse to describe an image
UNSAFE_REPLY = "ext"

_BLOCK_RE = re.compile(re.escape(SENTINEL) + r"[\s\S]*?" + re.escape(SENTINEL))
_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class AnalysisResult:
    """Typed fields extracted from a note analysis reply."""

    summary: str
    content_type: str
    related_products: str
    raw_block: str


@dataclass(frozen=True)
class SensitivityResult:
    """Outcome of an image sensitivity check."""

    description: str
    is_sensitive: bool


UNSAFE = SensitivityResult(description="", is_sensitive=True)


def extract_json_block(content: str) -> tuple[dict[str, Any], str]:
    """Extract the first sentinel-delimited JSON object from ``content``.

    Args:
        content: Raw model reply

    Returns:
        The parsed object and the raw block including its sentinels

    Raises:
        ParseError: If there is no block, the JSON is invalid or not an object
    """
    match = _BLOCK_RE.search(content)
    if not match:
        raise ParseError(f"Response does not contain a {SENTINEL}-wrapped JSON block")

    raw_block = match.group(0)
    payload = raw_block.replace(SENTINEL, "").strip()
    payload = _FENCE_OPEN_RE.sub("", payload)
    payload = _FENCE_CLOSE_RE.sub("", payload).strip()

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"Response JSON could not be decoded: {e}") from e

    if not isinstance(parsed, dict):
        raise ParseError("Response JSON is not an object")
    return parsed, raw_block


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _join_products(value: Any) -> str:
    if isinstance(value, list):
        items = [_as_text(item) for item in value]
        return ",".join(item for item in items if item)
    return _as_text(value)


def parse_analysis_response(content: str) -> AnalysisResult:
    """Parse a note analysis reply.

    ``summary`` and ``contentType`` are required and must be non-empty;
    ``relatedProducts`` may be a string or a list of strings.

    Raises:
        ParseError: On any deviation from the expected format
    """
    if not isinstance(content, str) or not content.strip():
        raise ParseError("Response is empty")

    parsed, raw_block = extract_json_block(content)

    summary = _as_text(parsed.get("summary"))
    content_type = _as_text(parsed.get("contentType"))
    if not summary:
        raise ParseError("Response is missing a non-empty 'summary'")
    if not content_type:
        raise ParseError("Response is missing a non-empty 'contentType'")

    return AnalysisResult(
        summary=summary,
        content_type=content_type,
        related_products=_join_products(parsed.get("relatedProducts")),
        raw_block=raw_block,
    )


def parse_sensitivity_response(content: str) -> SensitivityResult:
    """Parse an image check reply, treating anything doubtful as sensitive."""
    if not isinstance(content, str) or content.strip() == UNSAFE_REPLY:
        return UNSAFE

    try:
        parsed, _ = extract_json_block(content)
    except ParseError:
        return UNSAFE

    summary = parsed.get("summary")
    if isinstance(summary, str) and summary.strip():
        return SensitivityResult(description=summary.strip(), is_sensitive=False)
    return UNSAFE
