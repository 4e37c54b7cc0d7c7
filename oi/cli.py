# oi/cli.py
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import OiConfig, load_environment, load_local_config, save_local_config
from .errors import ConfigurationError, console, handle_error
from .llm_invoke import LiteLLMProvider
from .models import PassReport
from .platforms import available_platforms
from .prompt_orchestration import PromptOrchestrator
from .undo_cache import UndoCache
from .watch import watch


def setup_logging(verbose: bool, quiet: bool) -> None:
    """Route the package's log records through a RichHandler on the shared console."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    package_logger = logging.getLogger("oi")
    package_logger.handlers = [handler]
    package_logger.setLevel(level)
    package_logger.propagate = False


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "-"
    return f"{secret[:4]}...{secret[-4:]}" if len(secret) > 12 else "****"


def _make_orchestrator(ctx: click.Context) -> PromptOrchestrator:
    config = ctx.obj["config"]
    return PromptOrchestrator(config=config, provider=LiteLLMProvider(), cache=UndoCache.from_env())


def _print_report(report: PassReport) -> None:
    if not report.outcomes:
        console.print(f"[info]No markers to process in[/info] [path]{report.file_path}[/path]")
        return
    for outcome in report.outcomes:
        status = "[success]ok[/success]" if outcome.ok else "[error]failed[/error]"
        kind = f" ({outcome.error_kind.value})" if outcome.error_kind else ""
        console.print(f"  line {outcome.line_index + 1} {outcome.kind}: {status}{kind} {outcome.message}")


# --- Main CLI Group ---
@click.group(help="oi: resolve inline //> prompts <// in your source files with an LLM.")
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Increase output verbosity for more detailed information.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Decrease output verbosity for minimal information.",
)
@click.version_option(version=__version__, package_name="oi-cli")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool):
    """
    Main entry point for the oi CLI. Handles global options and initializes context.
    """
    ctx.ensure_object(dict)
    # Suppress verbose if quiet is enabled
    if quiet:
        verbose = False
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    setup_logging(verbose, quiet)
    load_environment()
    try:
        ctx.obj["config"] = OiConfig()
    except ConfigurationError as e:
        handle_error(e, "oi", quiet)
        ctx.exit(1)


# --- Command Definitions ---

@cli.command("start")
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.pass_context
def start(ctx: click.Context, path: str) -> None:
    """Watch PATH and answer prompts as files are saved."""
    quiet = ctx.obj.get("quiet", False)
    command_name = "start"
    try:
        root = Path(path).resolve()
        local_config = load_local_config(root)
        config: OiConfig = ctx.obj["config"]
        if not config.is_configured() and not quiet:
            error = ConfigurationError()
            console.print(f"[warning]{error.args[0]}[/warning]")
            console.print(f"[info]{error.hint}[/info]")

        orchestrator = _make_orchestrator(ctx)
        if not quiet:
            console.print(
                f"[info]Watching[/info] [path]{root}[/path] [info]for[/info] "
                f"[command]//> prompts <//[/command]. Press Ctrl+C to stop."
            )
        try:
            asyncio.run(watch(root, orchestrator, local_config))
        except KeyboardInterrupt:
            if not quiet:
                console.print("[info]Stopped.[/info]")
    except Exception as e:
        handle_error(e, command_name, quiet)
        ctx.exit(1)


@cli.command("run")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def run(ctx: click.Context, file: str) -> None:
    """Process the markers in FILE once and exit."""
    quiet = ctx.obj.get("quiet", False)
    command_name = "run"
    try:
        orchestrator = _make_orchestrator(ctx)
        report = asyncio.run(orchestrator.on_file_changed(file))
    except Exception as e:
        handle_error(e, command_name, quiet)
        ctx.exit(1)
        return

    if not quiet:
        _print_report(report)
    if not report.ok:
        ctx.exit(1)


@cli.command("config")
@click.option("--platform", type=click.Choice(available_platforms(), case_sensitive=False), default=None,
              help="Platform whose settings to change.")
@click.option("--api-key", default=None, help="API key for the platform.")
@click.option("--org-id", default=None, help="Organization id (openai).")
@click.option("--base-url", default=None, help="Base URL of an OpenAI-compatible endpoint.")
@click.option("--model", default=None, help="Model to request instead of the platform default.")
@click.option("--set-active", is_flag=True, default=False, help="Make the platform the active one.")
@click.option("--ignore", multiple=True, help="Path fragment the watcher should skip (repeatable).")
@click.option("--project-name", default=None, help="Project name stored in oi-config.json.")
@click.pass_context
def config_command(
    ctx: click.Context,
    platform: Optional[str],
    api_key: Optional[str],
    org_id: Optional[str],
    base_url: Optional[str],
    model: Optional[str],
    set_active: bool,
    ignore: Tuple[str, ...],
    project_name: Optional[str],
) -> None:
    """Show or change provider and project configuration."""
    quiet = ctx.obj.get("quiet", False)
    command_name = "config"
    config: OiConfig = ctx.obj["config"]
    try:
        platform_changes = any(v is not None for v in (api_key, org_id, base_url, model)) or set_active
        if platform_changes and not platform:
            raise click.UsageError("--platform is required when changing provider settings.")

        if platform:
            config.set_platform(platform, api_key=api_key, org_id=org_id, base_url=base_url, model=model)
            if set_active:
                config.set_active(platform)
            config.save()
            if not quiet:
                console.print(f"[success]Saved settings for[/success] [command]{platform}[/command] "
                              f"[info]in[/info] [path]{config.path}[/path]")

        if ignore or project_name:
            local_config = load_local_config()
            if ignore:
                local_config.ignore = sorted(set(local_config.ignore) | set(ignore))
            if project_name:
                local_config.project_name = project_name
            path = save_local_config(local_config)
            if not quiet:
                console.print(f"[success]Saved project settings in[/success] [path]{path}[/path]")

        if not platform and not ignore and not project_name and not quiet:
            table = Table(title=f"Providers ({config.path})")
            table.add_column("Platform", style="command")
            table.add_column("Active")
            table.add_column("API key")
            table.add_column("Model")
            table.add_column("Base URL")
            for name in available_platforms():
                settings = config.platforms.get(name)
                if settings is None:
                    table.add_row(name, "", "-", "-", "-")
                    continue
                table.add_row(
                    name,
                    "[success]yes[/success]" if settings.is_active else "",
                    _mask(settings.api_key),
                    settings.model or "-",
                    settings.base_url or "-",
                )
            console.print(table)
    except Exception as e:
        handle_error(e, command_name, quiet)
        ctx.exit(1)


if __name__ == "__main__":
    cli()
