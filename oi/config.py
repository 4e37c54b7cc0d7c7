"""
Configuration for oi.

Global provider settings live in ``oi-global-config.json``::

    {
        "openai": {"apiKey": "sk-...", "orgId": "org-...", "isActive": true},
        "deepseek": {"apiKey": "...", "baseUrl": "https://api.deepseek.com", "isActive": false}
    }

The file sits in ``~/.config/oi`` (``%APPDATA%/oi`` on Windows) unless
``OI_CONFIG_DIR`` points elsewhere. Environment variables, including those
loaded from a ``.env`` file, override it:

- ``OI_PLATFORM`` selects the active platform
- ``OPENAI_API_KEY``, ``DEEPSEEK_API_KEY``, ``GROQ_API_KEY`` fill missing keys
- ``OI_MODEL`` overrides the model

A per-project ``oi-config.json`` holds the project name and the path fragments
the watcher ignores.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from . import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from .errors import ConfigurationError
from .models import PlatformSettings
from .platforms import get_platform

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_FILENAME = "oi-global-config.json"
LOCAL_CONFIG_FILENAME = "oi-config.json"
CONFIG_DIR_ENV_VAR = "OI_CONFIG_DIR"
PLATFORM_ENV_VAR = "OI_PLATFORM"
MODEL_ENV_VAR = "OI_MODEL"

DEFAULT_IGNORE = [".git", "node_modules", "__pycache__", ".venv"]


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Load a ``.env`` file (defaults to the working directory) without overriding set variables."""
    path = dotenv_path or Path.cwd() / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)
        logger.debug(f"Loaded environment from {path}")


def default_config_dir() -> Path:
    override = os.getenv(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    if sys.platform == "win32" and os.getenv("APPDATA"):
        return Path(os.environ["APPDATA"]) / "oi"
    return Path.home() / ".config" / "oi"


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object.")
    return data


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


class OiConfig:
    """
    Global provider configuration.

    Args:
        config_dir: Directory holding ``oi-global-config.json``.
        temperature: Sampling temperature sent with every request.
        max_tokens: Completion token limit sent with every request.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.platforms: Dict[str, PlatformSettings] = {}
        self.reload()

    @property
    def path(self) -> Path:
        return self.config_dir / GLOBAL_CONFIG_FILENAME

    def reload(self) -> None:
        data = _read_json(self.path)
        self.platforms = {
            name: PlatformSettings.from_json(name, value)
            for name, value in data.items()
            if isinstance(value, dict)
        }

    def save(self) -> None:
        _write_json(self.path, {name: s.to_json() for name, s in self.platforms.items()})
        logger.debug(f"Saved global config to {self.path}")

    def set_platform(
        self,
        name: str,
        api_key: Optional[str] = None,
        org_id: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> PlatformSettings:
        """Create or update the stored settings for ``name``. Unset arguments keep their value."""
        name = get_platform(name).name
        settings = self.platforms.get(name) or PlatformSettings(name=name)
        if api_key is not None:
            settings.api_key = api_key
        if org_id is not None:
            settings.org_id = org_id
        if base_url is not None:
            settings.base_url = base_url
        if model is not None:
            settings.model = model
        self.platforms[name] = settings
        return settings

    def set_active(self, name: str) -> None:
        """Mark ``name`` as the only active platform."""
        name = get_platform(name).name
        if name not in self.platforms:
            self.platforms[name] = PlatformSettings(name=name)
        for platform_name, settings in self.platforms.items():
            settings.is_active = platform_name == name

    def get_active_platform(self) -> Optional[PlatformSettings]:
        """
        The platform requests should go to, with environment overrides applied.

        Returns:
            A copy of the active settings, or None when nothing is active.
        """
        env_platform = os.getenv(PLATFORM_ENV_VAR)
        if env_platform:
            name = get_platform(env_platform).name
            stored = self.platforms.get(name)
        else:
            stored = next((s for s in self.platforms.values() if s.is_active), None)
            if stored is None:
                return None
            name = stored.name

        settings = PlatformSettings(
            name=name,
            api_key=stored.api_key if stored else None,
            org_id=stored.org_id if stored else None,
            base_url=stored.base_url if stored else None,
            model=stored.model if stored else None,
            is_active=True,
        )
        platform = get_platform(name)
        if not settings.api_key and platform.api_key_env:
            settings.api_key = os.getenv(platform.api_key_env) or None
        model_override = os.getenv(MODEL_ENV_VAR)
        if model_override:
            settings.model = model_override
        return settings

    def is_configured(self) -> bool:
        try:
            settings = self.get_active_platform()
        except ConfigurationError:
            return False
        if settings is None:
            return False
        return get_platform(settings.name).is_usable(settings)

    def require_active_platform(self) -> PlatformSettings:
        """Like ``get_active_platform`` but raises ConfigurationError when unusable."""
        settings = self.get_active_platform()
        if settings is None:
            raise ConfigurationError()
        if not get_platform(settings.name).is_usable(settings):
            raise ConfigurationError(f"Platform '{settings.name}' has no API key.")
        return settings


@dataclass
class LocalConfig:
    project_name: str = ""
    ignore: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))

    def is_ignored(self, path: str) -> bool:
        parts = Path(path).parts
        return any(fragment in parts for fragment in self.ignore if fragment)


def load_local_config(project_dir: Optional[Path] = None) -> LocalConfig:
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    data = _read_json(project_dir / LOCAL_CONFIG_FILENAME)
    ignore = data.get("ignore")
    return LocalConfig(
        project_name=data.get("projectName") or project_dir.resolve().name,
        ignore=list(ignore) if isinstance(ignore, list) else list(DEFAULT_IGNORE),
    )


def save_local_config(config: LocalConfig, project_dir: Optional[Path] = None) -> Path:
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    path = project_dir / LOCAL_CONFIG_FILENAME
    _write_json(path, {"projectName": config.project_name, "ignore": config.ignore})
    return path
