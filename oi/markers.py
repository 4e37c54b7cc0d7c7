"""
Marker grammar for inline directives.

Three kinds of marker can appear in a watched file:

    //> add a function that doubles x <//              prompt
    //-                                                pending (opens generated code)
    function double(x) { return x * 2; }
    //> Accept the changes (y/n): y -//                acceptance (closes the pending span)

An acceptance line is a constrained form of the prompt delimiters, so it is
always matched first. The prompt interior may span several lines but may not
contain a pending token, which keeps an unanswered acceptance line from being
read as the start of a prompt.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

PROMPT_OPEN = "//>"
PROMPT_CLOSE = "<//"
PENDING_OPEN = "//-"
PENDING_CLOSE = "-//"
ACCEPTANCE_TEXT = "Accept the changes (y/n):"

# Written by the patch engine below generated code, waiting for y/n.
ACCEPTANCE_PROMPT = f"{PROMPT_OPEN} {ACCEPTANCE_TEXT} {PENDING_CLOSE}"

PROMPT_PATTERN = re.compile(
    r"//>\s*((?:(?!//-|-//)[\s\S])*?)\s*<//"
)
ACCEPTANCE_PATTERN = re.compile(
    r"//>\s*Accept the changes \(y/n\):\s*([ynYN])\s*-//"
)
# Answered or not. A line like this closes whatever pending span is above it.
ACCEPTANCE_LINE_PATTERN = re.compile(
    r"//>\s*Accept the changes \(y/n\):\s*[ynYN]?\s*-//"
)


class MarkerKind(str, Enum):
    PROMPT = "prompt"
    PENDING = "pending"
    ACCEPTANCE = "acceptance"


@dataclass(frozen=True)
class Marker:
    """
    A marker occurrence inside a file.

    Attributes:
        kind: Which marker this is.
        start: Offset of the first character of the marker text.
        end: Offset one past the last character of the marker text.
        line_index: Zero-based line of ``start``.
        text: The exact marker text as it appears in the file.
        content: Prompt text for prompts, the y/n token for acceptances.
        code: Generated code wrapped by the pending span (acceptances only).
        span_start: Offset of the ``//-`` token that opens the pending span
            (acceptances only).
    """
    kind: MarkerKind
    start: int
    end: int
    line_index: int
    text: str
    content: str = ""
    code: str = ""
    span_start: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.kind is MarkerKind.ACCEPTANCE and self.content.lower() == "y"

    def span_text(self, file_content: str) -> str:
        """Return the full pending span (``//-`` through the acceptance marker)."""
        if self.span_start is None:
            return self.text
        return file_content[self.span_start:self.end]


def acceptance_prompt_line(indent: str = "") -> str:
    return f"{indent}{ACCEPTANCE_PROMPT}"


def is_prompt_line(line: str) -> bool:
    """True for a line carrying a complete single-line prompt marker."""
    return PROMPT_OPEN in line and PROMPT_CLOSE in line


def is_pending_open_line(line: str) -> bool:
    """
    True for a line that opens a pending span.

    The patch engine writes ``//-`` alone on its line; code may follow it after
    whitespace. Comments such as ``//--- helpers ---`` do not count.
    """
    stripped = line.strip()
    return stripped == PENDING_OPEN or stripped.startswith((f"{PENDING_OPEN} ", f"{PENDING_OPEN}\t"))


def is_acceptance_line(line: str) -> bool:
    return ACCEPTANCE_LINE_PATTERN.search(line) is not None


def is_marker_line(line: str) -> bool:
    """True for a line the engine itself writes or reads as a marker."""
    return is_prompt_line(line) or is_pending_open_line(line) or is_acceptance_line(line)
