from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

from .markers import (
    ACCEPTANCE_PATTERN,
    PENDING_CLOSE,
    PENDING_OPEN,
    PROMPT_PATTERN,
    Marker,
    MarkerKind,
    is_acceptance_line,
    is_pending_open_line,
)
from .models import InsertionRequest, InsertionResponse

if TYPE_CHECKING:
    from .undo_cache import UndoCache


def line_index_of(text: str, offset: int) -> int:
    """Zero-based line number of ``offset`` in ``text``."""
    return text.count("\n", 0, offset)


def _pending_payload(raw: str) -> str:
    """Trim the text between ``//-`` and the acceptance marker down to the code."""
    lines = raw.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return ""
    if raw.split("\n", 1)[0].strip():
        # Code started on the same line as the pending token.
        lines[0] = lines[0].lstrip()
    return "\n".join(lines).rstrip()


def _is_closed_span_line(line: str) -> bool:
    # "//- old -//": a span opened and closed on one line.
    stripped = line.strip()
    return (
        is_pending_open_line(stripped)
        and len(stripped) > len(PENDING_OPEN) + len(PENDING_CLOSE)
        and stripped.endswith(PENDING_CLOSE)
    )


def _find_pending_open(file_content: str, acceptance_start: int) -> Optional[int]:
    """
    Offset of the ``//-`` that opens the span closed at ``acceptance_start``.

    Lines are walked upwards from the acceptance marker. Only a line that is a
    pending opener counts, so generated code holding ``//-`` or ``-//`` inside
    comments is skipped. Reaching another acceptance line, or a span opened and
    closed on one line, first means the marker has no span of its own.
    """
    line_start = file_content.rfind("\n", 0, acceptance_start) + 1
    head = file_content[line_start:acceptance_start]
    if is_pending_open_line(head):
        return line_start + head.index(PENDING_OPEN)

    line_end = line_start - 1
    while line_end >= 0:
        line_start = file_content.rfind("\n", 0, line_end) + 1
        line = file_content[line_start:line_end]
        if is_acceptance_line(line) or _is_closed_span_line(line):
            return None
        if is_pending_open_line(line):
            return line_start + line.index(PENDING_OPEN)
        line_end = line_start - 1
    return None


def _acceptance_markers(file_content: str, include_inert: bool) -> List[Marker]:
    markers: List[Marker] = []
    for match in ACCEPTANCE_PATTERN.finditer(file_content):
        start, end = match.span()
        span_start = _find_pending_open(file_content, start)
        if span_start is None:
            if include_inert:
                markers.append(Marker(
                    kind=MarkerKind.ACCEPTANCE,
                    start=start,
                    end=end,
                    line_index=line_index_of(file_content, start),
                    text=match.group(0),
                    content=match.group(1),
                ))
            continue
        payload = file_content[span_start + len(PENDING_OPEN):start]
        markers.append(Marker(
            kind=MarkerKind.ACCEPTANCE,
            start=start,
            end=end,
            line_index=line_index_of(file_content, start),
            text=match.group(0),
            content=match.group(1),
            code=_pending_payload(payload),
            span_start=span_start,
        ))
    return markers


def find_markers(file_content: str, include_inert: bool = False) -> List[Marker]:
    """
    Find every prompt and acceptance marker in ``file_content``.

    The scan is pure: a fresh list is built on every call and no pattern state
    is carried between calls.

    Args:
        file_content: Full text of the file.
        include_inert: Also return acceptance markers that have no pending span
            in front of them (their ``span_start`` is ``None``).

    Returns:
        Markers sorted in document order.
    """
    acceptances = _acceptance_markers(file_content, include_inert=True)
    taken = [(m.start, m.end) for m in acceptances]

    markers: List[Marker] = [
        m for m in acceptances if include_inert or m.span_start is not None
    ]
    for match in PROMPT_PATTERN.finditer(file_content):
        start, end = match.span()
        if any(start < t_end and t_start < end for t_start, t_end in taken):
            continue
        markers.append(Marker(
            kind=MarkerKind.PROMPT,
            start=start,
            end=end,
            line_index=line_index_of(file_content, start),
            text=match.group(0),
            content=match.group(1).strip(),
        ))

    markers.sort(key=lambda m: m.start)
    return markers


def find_insertion_requests(file_path: str, file_content: str) -> List[InsertionRequest]:
    return [
        InsertionRequest(
            prompt=marker.content,
            file_path=file_path,
            file_content=file_content,
            line_index=marker.line_index,
        )
        for marker in find_markers(file_content)
        if marker.kind is MarkerKind.PROMPT
    ]


def build_insertion_response(
    marker: Marker,
    file_path: str,
    file_content: str,
    cache: "UndoCache",
) -> InsertionResponse:
    old_code = cache.find_old_code(marker.code)
    return InsertionResponse(
        new_code=marker.code,
        old_code=old_code or "",
        file_path=file_path,
        file_content=file_content,
        decision="accepted" if marker.accepted else "rejected",
        acceptance_line=marker.text,
        span=marker.span_text(file_content),
    )


def find_insertion_responses(
    file_path: str,
    file_content: str,
    cache: "UndoCache",
) -> List[InsertionResponse]:
    return [
        build_insertion_response(marker, file_path, file_content, cache)
        for marker in find_markers(file_content)
        if marker.kind is MarkerKind.ACCEPTANCE
    ]
