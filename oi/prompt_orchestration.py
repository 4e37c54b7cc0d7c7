"""
One pass over a changed file.

A pass resolves answered acceptance markers first, then serves every prompt
marker still in the file. Passes for the same path never overlap: a per-path
``asyncio.Lock`` queues later events behind the one in flight. Nothing raised
while serving a marker escapes ``on_file_changed``; each outcome is recorded in
the returned ``PassReport`` with an ``ErrorKind``.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from .build_request import build_request
from .config import OiConfig
from .errors import (
    ConfigurationError,
    ErrorKind,
    MarkerMalformed,
    OiError,
    PatchMismatch,
    PatchWriteError,
    ProviderError,
    TranslationError,
    console,
)
from .find_context import SymbolIndex, find_context
from .find_markers import build_insertion_response, find_markers
from .llm_invoke import CompletionProvider
from .markers import Marker, MarkerKind
from .models import MarkerOutcome, PassReport
from .patch_code import apply_code_replacement, read_file_content, resolve_acceptance
from .platforms import get_platform
from .undo_cache import UndoCache

logger = logging.getLogger(__name__)


class PromptOrchestrator:
    """
    Drives the marker lifecycle for files handed to it by a watch source.

    Args:
        config: Provider configuration.
        provider: Completion provider used for every prompt.
        cache: Undo cache shared by every pass. A fresh one is made if omitted.
        symbol_index: Optional callable narrowing the code sent with a prompt.
    """

    def __init__(
        self,
        config: OiConfig,
        provider: CompletionProvider,
        cache: Optional[UndoCache] = None,
        symbol_index: Optional[SymbolIndex] = None,
    ):
        self.config = config
        self.provider = provider
        self.cache = cache if cache is not None else UndoCache.from_env()
        self.symbol_index = symbol_index
        # resolved path -> [lock, passes holding or waiting on it]
        self._locks: Dict[str, List[Any]] = {}

    @asynccontextmanager
    async def _path_lock(self, file_path: str):
        """Hold the lock for ``file_path``; drop it from the map once nobody waits on it."""
        key = str(Path(file_path).resolve())
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    async def on_file_changed(self, file_path: str) -> PassReport:
        """Run one pass over ``file_path`` and report what happened to each marker."""
        async with self._path_lock(file_path):
            report = PassReport(file_path=file_path)
            try:
                await self._run_pass(file_path, report)
            except Exception as e:
                logger.exception(f"Unexpected error while processing {file_path}: {e}")
                report.add(MarkerOutcome(kind="file", line_index=0, ok=False, message=str(e)))
            return report

    async def _run_pass(self, file_path: str, report: PassReport) -> None:
        content = await read_file_content(file_path)
        if content is None:
            return

        acceptances = [
            m for m in find_markers(content, include_inert=True)
            if m.kind is MarkerKind.ACCEPTANCE
        ]
        resolved = 0
        for marker in acceptances:
            if await self._resolve(file_path, content, marker, report):
                resolved += 1

        if resolved:
            content = await read_file_content(file_path)
            if content is None:
                return

        prompts = [m for m in find_markers(content) if m.kind is MarkerKind.PROMPT]
        for marker in prompts:
            await self._serve_prompt(file_path, marker, report)

    async def _resolve(self, file_path: str, content: str, marker: Marker, report: PassReport) -> bool:
        if marker.span_start is None:
            error = MarkerMalformed(f"Acceptance marker without a pending span at line {marker.line_index + 1}")
            logger.debug(str(error))
            report.add(MarkerOutcome(
                kind=marker.kind.value,
                line_index=marker.line_index,
                ok=True,
                error_kind=ErrorKind.MARKER_MALFORMED,
                message=str(error),
            ))
            return False

        response = build_insertion_response(marker, file_path, content, self.cache)
        try:
            written = await resolve_acceptance(response)
        except PatchWriteError as e:
            logger.error(str(e))
            report.add(MarkerOutcome(
                kind=marker.kind.value,
                line_index=marker.line_index,
                ok=False,
                error_kind=e.kind,
                message=str(e),
            ))
            return False
        report.add(MarkerOutcome(
            kind=marker.kind.value,
            line_index=marker.line_index,
            ok=written,
            error_kind=None if written else ErrorKind.PATCH_MISMATCH,
            message=response.decision,
        ))
        if written:
            console.print(f"[success]Change {response.decision}[/success] in [path]{file_path}[/path]")
        return written

    async def _serve_prompt(self, file_path: str, marker: Marker, report: PassReport) -> None:
        if not marker.content:
            logger.debug(f"Empty prompt at line {marker.line_index + 1} of {file_path}, nothing to do")
            return

        outcome = MarkerOutcome(kind=marker.kind.value, line_index=marker.line_index, ok=False)
        try:
            self.config.require_active_platform()

            # Earlier prompts in this pass may have rewritten the file.
            content = await read_file_content(file_path)
            if content is None:
                raise IOError(f"Could not read {file_path}")

            context = find_context(file_path, content, marker.line_index, self.symbol_index)
            request = build_request(marker.content, context, self.config)
            console.print(f"[info]Sending prompt to {request.platform}:[/info] {marker.content}")
            raw_response = await self.provider.send(request)

            blocks = get_platform(request.platform).parse_raw_response(raw_response)
            if blocks is None:
                raise TranslationError("Could not parse the provider response into changes.", raw_response)

            patch = await apply_code_replacement(file_path, blocks, self.cache, prompts=[marker.content])
            if patch.applied == 0:
                first = blocks[0].find if blocks else []
                raise PatchMismatch(file_path, first)
            if not patch.written:
                raise PatchWriteError(file_path)

            outcome.ok = True
            outcome.message = f"{patch.applied} of {patch.total} change(s) applied"
            console.print(f"[success]Inserted code[/success] in [path]{file_path}[/path] ({outcome.message})")

        except ConfigurationError as e:
            outcome.error_kind = e.kind
            outcome.message = str(e)
            console.print(f"[error]{e.args[0]}[/error]")
            console.print(f"[info]{e.hint}[/info]")
        except ProviderError as e:
            outcome.error_kind = e.kind
            outcome.message = str(e)
            logger.error(f"Provider error for prompt at line {marker.line_index + 1} of {file_path}: {e}")
        except TranslationError as e:
            outcome.error_kind = e.kind
            outcome.message = str(e)
            logger.error(f"{e} Raw response:\n{e.raw_response}")
        except PatchWriteError as e:
            outcome.error_kind = e.kind
            outcome.message = str(e)
            logger.error(str(e))
        except OiError as e:
            outcome.error_kind = e.kind
            outcome.message = str(e)
            logger.warning(str(e))
        except Exception as e:
            outcome.message = str(e)
            logger.exception(f"Failed to serve prompt at line {marker.line_index + 1} of {file_path}: {e}")

        report.add(outcome)
