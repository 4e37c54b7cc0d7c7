"""
Turn a raw completion into replacement blocks.

Two shapes are understood, tried in order:

1. the whole response is JSON with a ``changes`` array (structured output);
2. the response holds a fenced code block whose body is JSON, either a bare
   list of ``{find, replace}`` objects or an object with a ``changes`` array.

Anything else yields ``None``; nothing is ever partially applied.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import ValidationError

from .markers import is_marker_line
from .models import CodeChanges, ReplacementBlock

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```[^\n`]*\n?([\s\S]*?)```")


def extract_fenced_block(text: str) -> Optional[str]:
    """Return the body of the first triple-backtick block in ``text``, if any."""
    match = FENCED_BLOCK_PATTERN.search(text)
    if not match:
        return None
    return match.group(1).strip()


def _validate_changes(payload: Any) -> Optional[List[ReplacementBlock]]:
    if isinstance(payload, list):
        payload = {"changes": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("changes"), list):
        return None
    try:
        return CodeChanges.model_validate(payload).changes
    except ValidationError as e:
        logger.debug(f"Response JSON did not match the changes schema: {e}")
        return None


def _parse_strict(raw_response: str) -> Optional[List[ReplacementBlock]]:
    try:
        payload = json.loads(raw_response)
    except (json.JSONDecodeError, TypeError):
        return None
    return _validate_changes(payload)


def _parse_fenced(raw_response: str) -> Optional[List[ReplacementBlock]]:
    body = extract_fenced_block(raw_response)
    if body is None:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.debug("Fenced block is not valid JSON")
        return None
    blocks = _validate_changes(payload)
    if blocks is None:
        return None
    # Models sometimes echo markers back inside the replacement.
    return [
        ReplacementBlock(
            find=block.find,
            replace=[line for line in block.replace if not is_marker_line(line)],
        )
        for block in blocks
    ]


def translate_response(raw_response: str) -> Optional[List[ReplacementBlock]]:
    """
    Translate a provider response into replacement blocks.

    Args:
        raw_response: Text returned by the completion provider.

    Returns:
        The parsed blocks, or ``None`` when neither the strict JSON path nor
        the fenced-block path produced a valid ``changes`` list.
    """
    if not raw_response or not raw_response.strip():
        return None

    blocks = _parse_strict(raw_response.strip())
    if blocks is not None:
        logger.debug(f"Parsed {len(blocks)} change(s) from structured output")
        return blocks

    blocks = _parse_fenced(raw_response)
    if blocks is not None:
        logger.debug(f"Parsed {len(blocks)} change(s) from fenced block")
        return blocks

    return None
