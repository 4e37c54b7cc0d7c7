"""
In-memory store of applied edits, used to restore code when a change is rejected.

Entries are kept in insertion order and looked up by fuzzy similarity between
the code currently sitting in a pending span and each entry's ``replace`` text.
The first entry scoring at or above the threshold wins, so earlier edits take
precedence over later near-duplicates.

Empty text never matches: ``fuzz.ratio`` scores an empty string 0 against
anything, itself included. Rejecting an edit whose ``replace`` was empty (a
pure deletion) therefore cannot restore the deleted lines; the empty pending
span is simply removed.
"""
from __future__ import annotations

import logging
import os
import threading
from typing import List, Optional

from fuzzywuzzy import fuzz

from . import SIMILARITY_THRESHOLD
from .markers import is_marker_line
from .models import ReplacementBlock

logger = logging.getLogger(__name__)

MAX_ENTRIES_ENV_VAR = "OI_UNDO_CACHE_MAX_ENTRIES"


def similarity(a: str, b: str) -> int:
    """Symmetric similarity ratio in the range 0-100. Empty input scores 0."""
    return fuzz.ratio(a, b)


def _restorable_lines(find: List[str]) -> List[str]:
    return [
        line for line in find
        if not is_marker_line(line)
    ]


class UndoCache:
    """
    Process-lifetime cache of replacement blocks.

    Args:
        threshold: Minimum similarity score for a lookup to count as a match.
        max_entries: Drop the oldest entries beyond this many. ``None`` keeps
            every entry for the life of the process.
    """

    def __init__(self, threshold: int = SIMILARITY_THRESHOLD, max_entries: Optional[int] = None):
        self.threshold = threshold
        self.max_entries = max_entries
        self._entries: List[ReplacementBlock] = []
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "UndoCache":
        raw = os.environ.get(MAX_ENTRIES_ENV_VAR, "").strip()
        max_entries = None
        if raw:
            try:
                max_entries = int(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {MAX_ENTRIES_ENV_VAR}={raw!r}")
            else:
                if max_entries <= 0:
                    max_entries = None
        return cls(max_entries=max_entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def entries(self) -> List[ReplacementBlock]:
        with self._lock:
            return list(self._entries)

    def add_old_code(self, block: ReplacementBlock) -> None:
        """Remember ``block`` so its ``find`` lines can be restored later."""
        entry = ReplacementBlock(find=list(block.find), replace=list(block.replace))
        with self._lock:
            self._entries.append(entry)
            if self.max_entries is not None and len(self._entries) > self.max_entries:
                dropped = len(self._entries) - self.max_entries
                del self._entries[:dropped]
                logger.debug(f"Undo cache full, dropped {dropped} oldest entr{'y' if dropped == 1 else 'ies'}")

    def find_old_code(self, candidate_text: str) -> Optional[str]:
        """
        Return the code an edit replaced, given the code it inserted.

        Args:
            candidate_text: Code currently wrapped in a pending span.

        Returns:
            The joined ``find`` lines of the first entry whose ``replace`` text
            scores at least ``threshold`` against ``candidate_text``, with
            marker lines removed. ``None`` when no entry is similar enough.
        """
        with self._lock:
            entries = list(self._entries)

        for entry in entries:
            score = similarity(candidate_text, entry.replace_text)
            logger.debug(f"Undo cache score {score} for entry starting {entry.replace[:1]!r}")
            if score >= self.threshold:
                return "\n".join(_restorable_lines(entry.find)).strip("\n").rstrip()
        return None
