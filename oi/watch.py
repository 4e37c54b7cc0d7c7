from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import LocalConfig
from .prompt_orchestration import PromptOrchestrator

logger = logging.getLogger(__name__)


class PromptWatcher(FileSystemEventHandler):
    """
    Forwards file changes under a directory to the orchestrator.

    Watchdog calls the handler from its own thread; each changed file is handed
    to the orchestrator's event loop with ``run_coroutine_threadsafe``. No
    debouncing happens here, repeated events queue behind the per-file lock.
    """

    def __init__(
        self,
        orchestrator: PromptOrchestrator,
        loop: asyncio.AbstractEventLoop,
        local_config: Optional[LocalConfig] = None,
    ):
        super().__init__()
        self.orchestrator = orchestrator
        self.loop = loop
        self.local_config = local_config or LocalConfig()

    def _submit(self, src_path: str) -> Optional[Future]:
        path = str(Path(src_path).resolve())
        if self.local_config.is_ignored(path):
            return None
        logger.debug(f"Detected update in {path}")
        future = asyncio.run_coroutine_threadsafe(self.orchestrator.on_file_changed(path), self.loop)
        future.add_done_callback(self._log_result)
        return future

    @staticmethod
    def _log_result(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Pass failed: {exc}")
            return
        report = future.result()
        for outcome in report.errors():
            logger.debug(f"{report.file_path}:{outcome.line_index + 1} {outcome.error_kind}: {outcome.message}")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save atomically rename a temp file over the original.
        if not event.is_directory:
            self._submit(event.dest_path)


async def watch(
    root: Path,
    orchestrator: PromptOrchestrator,
    local_config: Optional[LocalConfig] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Watch ``root`` recursively until ``stop_event`` is set or the task is cancelled."""
    loop = asyncio.get_running_loop()
    handler = PromptWatcher(orchestrator, loop, local_config)
    observer = Observer()
    observer.schedule(handler, str(root), recursive=True)
    observer.start()
    logger.info(f"Watching {root} for prompts")
    try:
        if stop_event is None:
            stop_event = asyncio.Event()
        await stop_event.wait()
    finally:
        observer.stop()
        observer.join()
        logger.info("Stopped watching")
