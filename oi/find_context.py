from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from .markers import PROMPT_PATTERN
from .models import CompletionType, PromptContext

logger = logging.getLogger(__name__)

# (file_path, file_content, line_index) -> excerpt of the relevant code, or None
SymbolIndex = Callable[[str, str, int], Optional[str]]

EXTENSION_LANGUAGES = {
    ".js": "javascript",
    ".ts": "typescript",
    ".py": "python",
    ".java": "java",
    ".cpp": "c_cpp",
    ".cs": "c_sharp",
    ".rb": "ruby",
    ".go": "go",
    ".c": "c",
}


def detect_language(file_path: str) -> str:
    """Language name for ``file_path`` based on its extension, ``"text"`` if unknown."""
    _, ext = os.path.splitext(file_path)
    return EXTENSION_LANGUAGES.get(ext.lower(), "text")


def find_completion_type(file_content: str) -> CompletionType:
    """``complete`` when the file holds nothing but prompt markers, ``update`` otherwise."""
    remainder = PROMPT_PATTERN.sub("", file_content)
    return "complete" if not remainder.strip() else "update"


def find_context(
    file_path: str,
    file_content: str,
    marker_line_index: int,
    symbol_index: Optional[SymbolIndex] = None,
) -> PromptContext:
    """
    Gather what the model needs to answer the prompt at ``marker_line_index``.

    The whole file is always included. When ``symbol_index`` is given it may
    narrow the code sent to the model to an excerpt; any failure or empty
    result falls back to the whole file.
    """
    excerpt = None
    if symbol_index is not None:
        try:
            excerpt = symbol_index(file_path, file_content, marker_line_index) or None
        except Exception as e:
            logger.warning(f"Symbol index failed for {file_path}, using whole file: {e}")
            excerpt = None

    return PromptContext(
        file_path=file_path,
        file_content=file_content,
        language=detect_language(file_path),
        marker_line_index=marker_line_index,
        completion_type=find_completion_type(file_content),
        excerpt=excerpt,
    )
