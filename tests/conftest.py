"""Project-level pytest configuration hooks."""

import json

import pytest
from click.testing import CliRunner
from dotenv import load_dotenv

from oi.models import ReplacementBlock
from oi.undo_cache import UndoCache


# Load environment variables from .env early in collection
load_dotenv()

_ISOLATED_ENV_VARS = (
    "OI_PATH",
    "OI_PLATFORM",
    "OI_MODEL",
    "OI_UNDO_CACHE_MAX_ENTRIES",
    "OPENAI_API_KEY",
    "DEEPSEEK_API_KEY",
    "GROQ_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real keys and the user's global config out of every test."""
    for name in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_dir = tmp_path / "oi-config-dir"
    monkeypatch.setenv("OI_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def write_global_config(isolated_env):
    """Write ``oi-global-config.json`` into the isolated config directory."""
    def _write(data):
        isolated_env.mkdir(parents=True, exist_ok=True)
        path = isolated_env / "oi-global-config.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def create_dummy_files(tmp_path):
    """Fixture to create dummy files for testing."""
    files = {}
    def _create_files(*filenames, content="dummy content"):
        for name in filenames:
            file_path = tmp_path / name
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
            files[name] = file_path
        return files
    return _create_files


@pytest.fixture
def cache():
    return UndoCache()


@pytest.fixture
def block():
    def _block(find, replace):
        return ReplacementBlock(find=list(find), replace=list(replace))
    return _block


@pytest.fixture
def runner():
    return CliRunner()
