"""
Patch engine: apply replacement blocks to a file and resolve acceptance markers.

Content transformations are plain functions over strings so they can be tested
without touching disk. The async wrappers read and write through ``aiofiles``
and never rewrite a file whose content did not change.

Example:
    report = await apply_code_replacement("src/a.js", blocks, cache)
    ...
    await resolve_acceptance(response)
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

import aiofiles

from .errors import PatchMismatch, PatchWriteError
from .find_markers import find_markers
from .markers import PENDING_OPEN, MarkerKind, acceptance_prompt_line
from .models import InsertionResponse, PatchReport, ReplacementBlock
from .undo_cache import UndoCache

logger = logging.getLogger(__name__)


# --- Utility Functions ---

async def read_file_content(file_path: str) -> Optional[str]:
    """Asynchronously reads a text file, returning None when it can't be read."""
    try:
        async with aiofiles.open(file_path, mode="r", encoding="utf-8") as f:
            return await f.read()
    except FileNotFoundError:
        logger.error(f"File not found: {file_path}")
    except UnicodeDecodeError:
        logger.debug(f"Skipping non-text file: {file_path}")
    except IOError as e:
        logger.error(f"Error reading file {file_path}: {e}")
    return None


async def write_file_content(file_path: str, content: str) -> bool:
    """Asynchronously writes content to a file."""
    try:
        async with aiofiles.open(file_path, mode="w", encoding="utf-8") as f:
            await f.write(content)
        return True
    except IOError as e:
        logger.error(f"Error writing file {file_path}: {e}")
        return False


def _leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _line_bounds(content: str, start: int, end: int) -> Tuple[int, int]:
    """Offsets of the start of ``start``'s line and the newline ending ``end``'s line."""
    line_start = content.rfind("\n", 0, start) + 1
    line_end = content.find("\n", end)
    if line_end == -1:
        line_end = len(content)
    return line_start, line_end


def _whole_line_region(content: str, start: int, end: int) -> Optional[Tuple[int, int, bool, bool]]:
    """
    Widen ``[start, end)`` to whole lines if nothing but whitespace shares them.

    Returns ``(region_start, region_end, took_leading_newline, took_trailing_newline)``
    or ``None`` when other text shares the first or last line.
    """
    line_start, line_end = _line_bounds(content, start, end)
    if content[line_start:start].strip() or content[end:line_end].strip():
        return None
    if line_end < len(content):
        return line_start, line_end + 1, False, True
    if line_start > 0:
        return line_start - 1, line_end, True, False
    return line_start, line_end, False, False


def _remove_token(content: str, start: int, end: int) -> str:
    """Remove ``content[start:end]``, taking its line with it when the line is otherwise blank."""
    region = _whole_line_region(content, start, end)
    if region is not None:
        region_start, region_end, _, _ = region
        return content[:region_start] + content[region_end:]
    # Code shares the line; drop the token and the gap next to it.
    while end < len(content) and content[end] in " \t":
        end += 1
    at_line_end = end == len(content) or content[end] == "\n"
    while at_line_end and start > 0 and content[start - 1] in " \t":
        start -= 1
    return content[:start] + content[end:]


# --- Applying edits ---

def find_matching_index(lines: List[str], find: List[str]) -> Optional[int]:
    """
    First index where ``find`` matches a forward window of ``lines``.

    Lines are compared after trimming surrounding whitespace. No fuzzy matching
    happens here; an empty ``find`` never matches.
    """
    if not find:
        return None
    wanted = [line.strip() for line in find]
    size = len(wanted)
    for index in range(len(lines) - size + 1):
        if all(lines[index + offset].strip() == wanted[offset] for offset in range(size)):
            return index
    return None


def replace_old_code_with_new(lines: List[str], index: int, block: ReplacementBlock) -> List[str]:
    """Splice ``block.replace`` over the matched window, framed as a pending span."""
    indent = _leading_whitespace(lines[index])
    framed = [f"{indent}{PENDING_OPEN}", *block.replace, acceptance_prompt_line(indent)]
    return lines[:index] + framed + lines[index + len(block.find):]


def strip_prompt_markers(file_content: str, prompts: Optional[Iterable[str]] = None) -> str:
    """
    Remove prompt markers from ``file_content``.

    Args:
        file_content: Text to clean.
        prompts: Only strip prompts whose text is in this collection. ``None``
            strips every prompt marker.
    """
    wanted = None if prompts is None else {p.strip() for p in prompts}
    content = file_content
    markers = [m for m in find_markers(file_content) if m.kind is MarkerKind.PROMPT]
    for marker in reversed(markers):
        if wanted is not None and marker.content not in wanted:
            continue
        content = _remove_token(content, marker.start, marker.end)
    return content


def apply_replacements_to_content(
    file_content: str,
    blocks: List[ReplacementBlock],
    cache: Optional[UndoCache] = None,
    file_path: str = "<memory>",
) -> Tuple[str, int, List[ReplacementBlock]]:
    """
    Apply ``blocks`` in order to ``file_content``.

    Each block is recorded in ``cache`` before matching, whether or not it ends
    up applying, so a later rejection can still find it.

    Returns:
        ``(new_content, applied_count, skipped_blocks)``
    """
    lines = file_content.split("\n")
    applied = 0
    skipped: List[ReplacementBlock] = []

    for block in blocks:
        if cache is not None:
            cache.add_old_code(block)
        index = find_matching_index(lines, block.find)
        if index is None:
            logger.warning(str(PatchMismatch(file_path, block.find)))
            skipped.append(block)
            continue
        lines = replace_old_code_with_new(lines, index, block)
        applied += 1
        logger.debug(f"Applied block at line {index + 1} of {file_path}")

    return "\n".join(lines), applied, skipped


async def apply_code_replacement(
    file_path: str,
    blocks: List[ReplacementBlock],
    cache: UndoCache,
    prompts: Optional[Iterable[str]] = None,
) -> PatchReport:
    """
    Apply replacement blocks to a file on disk.

    Blocks that do not match are skipped and reported; the others still apply.
    Served prompt markers are stripped only when at least one block applied.

    Args:
        file_path: File to patch.
        blocks: Edits in the order they should apply.
        cache: Undo cache receiving every block.
        prompts: Prompt texts that were served by ``blocks``; ``None`` strips
            every prompt marker in the file.
    """
    report = PatchReport(file_path=file_path)
    content = await read_file_content(file_path)
    if content is None:
        report.skipped = list(blocks)
        for block in blocks:
            cache.add_old_code(block)
        return report

    new_content, report.applied, report.skipped = apply_replacements_to_content(
        content, blocks, cache, file_path
    )
    if report.applied:
        new_content = strip_prompt_markers(new_content, prompts)

    if new_content != content:
        report.written = await write_file_content(file_path, new_content)
    return report


# --- Resolving acceptance markers ---

def resolve_acceptance_content(file_content: str, response: InsertionResponse) -> Optional[str]:
    """
    Resolve one pending span in ``file_content``.

    Accepting removes the acceptance marker and its ``//-`` token and keeps the
    generated code. Rejecting replaces the whole span with ``response.old_code``,
    or deletes it when there is no old code.

    Returns:
        The new content, or ``None`` when the span is no longer in the file.
    """
    span = response.span or response.acceptance_line
    span_start = file_content.find(span)
    if not span or span_start == -1:
        return None
    span_end = span_start + len(span)

    if response.decision == "accepted":
        acceptance_start = span_end - len(response.acceptance_line)
        content = _remove_token(file_content, acceptance_start, span_end)
        if span.startswith(PENDING_OPEN):
            content = _remove_token(content, span_start, span_start + len(PENDING_OPEN))
        return content

    old_code = response.old_code
    region = _whole_line_region(file_content, span_start, span_end)
    if region is None:
        return file_content[:span_start] + old_code + file_content[span_end:]

    region_start, region_end, took_leading, took_trailing = region
    replacement = ""
    if old_code:
        replacement = old_code
        if took_trailing:
            replacement += "\n"
        elif took_leading:
            replacement = "\n" + replacement
    return file_content[:region_start] + replacement + file_content[region_end:]


async def resolve_acceptance(response: InsertionResponse) -> bool:
    """
    Resolve an acceptance marker in the file on disk.

    The file is re-read so that several resolutions in one pass compose.

    Returns:
        True when the file was rewritten.

    Raises:
        PatchWriteError: The resolved content could not be written back.
    """
    content = await read_file_content(response.file_path)
    if content is None:
        return False

    new_content = resolve_acceptance_content(content, response)
    if new_content is None:
        logger.warning(f"Pending span no longer present in {response.file_path}, skipping")
        return False
    if new_content == content:
        return False

    if not await write_file_content(response.file_path, new_content):
        raise PatchWriteError(response.file_path)
    logger.info(f"Change {response.decision} in {response.file_path}")
    return True
