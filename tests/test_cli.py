import json
from unittest.mock import AsyncMock

import pytest

from oi import __version__
from oi.cli import cli
from oi.markers import ACCEPTANCE_PROMPT

PROMPT_LINE = "//> add function double(x) that returns x*2 <//"
CODE = "function double(x) { return x * 2; }"


class FakeProvider:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def send(self, request):
        self.requests.append(request)
        return self.response


@pytest.fixture
def configured(write_global_config):
    return write_global_config({"openai": {"apiKey": "sk-test", "isActive": True}})


def test_help_and_version(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("start", "run", "config"):
        assert command in result.output

    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_sets_platform(runner, isolated_env):
    result = runner.invoke(cli, ["config", "--platform", "openai", "--api-key", "sk-123", "--set-active"])
    assert result.exit_code == 0, result.output
    data = json.loads((isolated_env / "oi-global-config.json").read_text(encoding="utf-8"))
    assert data["openai"]["apiKey"] == "sk-123"
    assert data["openai"]["isActive"] is True


def test_config_requires_platform_for_settings(runner):
    result = runner.invoke(cli, ["config", "--api-key", "sk-123"])
    assert result.exit_code == 1
    assert "--platform is required" in result.output


def test_config_rejects_unknown_platform(runner):
    result = runner.invoke(cli, ["config", "--platform", "mystery"])
    assert result.exit_code == 2


def test_config_shows_masked_settings(runner, configured):
    result = runner.invoke(cli, ["config"])
    assert result.exit_code == 0
    assert "openai" in result.output
    assert "sk-test" not in result.output


def test_config_local_project_settings(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["config", "--ignore", "dist", "--project-name", "web"])
        assert result.exit_code == 0, result.output
        with open("oi-config.json", encoding="utf-8") as f:
            data = json.load(f)
    assert data["projectName"] == "web"
    assert "dist" in data["ignore"]
    assert "node_modules" in data["ignore"]


def test_run_processes_file(runner, configured, tmp_path, mocker):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    provider = FakeProvider(json.dumps({"changes": [{"find": [PROMPT_LINE], "replace": [CODE]}]}))
    mocker.patch("oi.cli.LiteLLMProvider", return_value=provider)

    result = runner.invoke(cli, ["run", str(path)])
    assert result.exit_code == 0, result.output
    assert path.read_text(encoding="utf-8") == f"//-\n{CODE}\n{ACCEPTANCE_PROMPT}"
    assert len(provider.requests) == 1


def test_run_unconfigured_exits_nonzero(runner, tmp_path, mocker):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    provider = FakeProvider("")
    mocker.patch("oi.cli.LiteLLMProvider", return_value=provider)

    result = runner.invoke(cli, ["run", str(path)])
    assert result.exit_code == 1
    assert "oi config" in result.output
    assert provider.requests == []
    assert path.read_text(encoding="utf-8") == PROMPT_LINE


def test_run_missing_file(runner, tmp_path):
    result = runner.invoke(cli, ["run", str(tmp_path / "missing.js")])
    assert result.exit_code == 2


def test_start_watches_directory(runner, configured, tmp_path, mocker):
    watch_mock = mocker.patch("oi.cli.watch", new_callable=AsyncMock)
    result = runner.invoke(cli, ["--quiet", "start", str(tmp_path)])
    assert result.exit_code == 0, result.output
    watch_mock.assert_awaited_once()
    root, orchestrator, local_config = watch_mock.await_args.args
    assert root == tmp_path.resolve()
    assert local_config.project_name == tmp_path.name


def test_start_warns_when_unconfigured(runner, tmp_path, mocker):
    mocker.patch("oi.cli.watch", new_callable=AsyncMock)
    result = runner.invoke(cli, ["start", str(tmp_path)])
    assert result.exit_code == 0
    assert "No active provider is configured." in result.output
