"""
Error taxonomy for the prompt marker engine.

Each error carries an ``ErrorKind`` so callers can tell "skip this block"
(PatchMismatch) from "skip this prompt" (ProviderError, TranslationError) from
"tell the user to configure something" (ConfigurationError) without matching
on message text.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

import click
from rich.console import Console
from rich.theme import Theme

custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "green",
    "path": "dim blue",
    "command": "bold magenta",
})
console = Console(theme=custom_theme)


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PROVIDER = "provider"
    TRANSLATION = "translation"
    PATCH_MISMATCH = "patch_mismatch"
    MARKER_MALFORMED = "marker_malformed"
    IO = "io"


class OiError(Exception):
    kind: Optional[ErrorKind] = None


class ConfigurationError(OiError):
    """No usable provider is configured."""
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str = "No active provider is configured."):
        super().__init__(message)
        self.hint = "Run 'oi config --platform <name> --api-key <key> --set-active' to configure a provider."

    def __str__(self) -> str:
        return f"{self.args[0]} {self.hint}"


class ProviderError(OiError):
    """The completion provider failed (network, auth, rate limit...)."""
    kind = ErrorKind.PROVIDER

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.platform = platform


class TranslationError(OiError):
    """A provider response could not be turned into replacement blocks."""
    kind = ErrorKind.TRANSLATION

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class PatchMismatch(OiError):
    """The ``find`` lines of a block were not located in the file."""
    kind = ErrorKind.PATCH_MISMATCH

    def __init__(self, file_path: str, find: list):
        preview = find[0] if find else "<empty>"
        super().__init__(f"No match found in {file_path} for block starting with: {preview!r}")
        self.file_path = file_path
        self.find = find


class MarkerMalformed(OiError):
    """An acceptance marker with no pending span in front of it."""
    kind = ErrorKind.MARKER_MALFORMED


class PatchWriteError(OiError):
    """A patched file could not be written back to disk."""
    kind = ErrorKind.IO

    def __init__(self, file_path: str):
        super().__init__(f"Could not write changes to {file_path}")
        self.file_path = file_path


def handle_error(e: Exception, command_name: str, quiet: bool) -> None:
    """Print an error raised by a CLI command."""
    if quiet:
        return
    console.print(f"[error]Error during '{command_name}' command:[/error]", style="error")
    if isinstance(e, ConfigurationError):
        console.print(f"  [error]Configuration Error:[/error] {e.args[0]}", style="error")
        console.print(f"  [info]{e.hint}[/info]")
    elif isinstance(e, ProviderError):
        console.print(f"  [error]Provider Error:[/error] {e}", style="error")
    elif isinstance(e, FileNotFoundError):
        console.print(f"  [error]File not found:[/error] {e}", style="error")
    elif isinstance(e, (ValueError, IOError)):
        console.print(f"  [error]Input/Output Error:[/error] {e}", style="error")
    elif isinstance(e, click.UsageError):
        console.print(f"  [error]Usage Error:[/error] {e}", style="error")
    else:
        console.print(f"  [error]An unexpected error occurred:[/error] {e}", style="error")
