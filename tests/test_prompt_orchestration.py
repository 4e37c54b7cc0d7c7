import asyncio
import json

import pytest

from oi.config import OiConfig
from oi.errors import ErrorKind, ProviderError
from oi.markers import ACCEPTANCE_PROMPT
from oi.models import ProviderRequest
from oi.prompt_orchestration import PromptOrchestrator
from oi.undo_cache import UndoCache

PROMPT_TEXT = "add function double(x) that returns x*2"
PROMPT_LINE = f"//> {PROMPT_TEXT} <//"
CODE = "function double(x) { return x * 2; }"
SCENARIO_RESPONSE = json.dumps({"changes": [{"find": [PROMPT_LINE], "replace": [CODE]}]})


class FakeProvider:
    """Records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def send(self, request: ProviderRequest) -> str:
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def configured(write_global_config):
    write_global_config({"openai": {"apiKey": "sk-test", "isActive": True}})
    return OiConfig()


def answer(path, letter):
    content = path.read_text(encoding="utf-8")
    path.write_text(content.replace(ACCEPTANCE_PROMPT, ACCEPTANCE_PROMPT.replace(": -//", f": {letter} -//")),
                    encoding="utf-8")


@pytest.mark.asyncio
async def test_concrete_scenario_accept(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    provider = FakeProvider(SCENARIO_RESPONSE)
    orchestrator = PromptOrchestrator(configured, provider, UndoCache())

    report = await orchestrator.on_file_changed(str(path))
    assert report.ok
    (request,) = provider.requests
    assert request.platform == "openai"
    assert PROMPT_TEXT in request.messages[-1]["content"]
    assert path.read_text(encoding="utf-8") == f"//-\n{CODE}\n{ACCEPTANCE_PROMPT}"

    answer(path, "y")
    report = await orchestrator.on_file_changed(str(path))
    assert report.ok
    assert path.read_text(encoding="utf-8") == CODE
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_reject_restores_replaced_code(tmp_path, configured):
    original = "function double(x) {\n  return x;\n}\n//> fix double <//\n"
    path = tmp_path / "a.js"
    path.write_text(original, encoding="utf-8")
    response = json.dumps({"changes": [{
        "find": ["function double(x) {", "  return x;", "}", "//> fix double <//"],
        "replace": ["function double(x) {", "  return x * 2;", "}"],
    }]})
    orchestrator = PromptOrchestrator(configured, FakeProvider(response), UndoCache())

    await orchestrator.on_file_changed(str(path))
    assert "return x * 2;" in path.read_text(encoding="utf-8")

    answer(path, "n")
    report = await orchestrator.on_file_changed(str(path))
    assert report.ok
    assert path.read_text(encoding="utf-8") == "function double(x) {\n  return x;\n}\n"


@pytest.mark.asyncio
async def test_pending_without_answer_is_left_alone(tmp_path, configured):
    path = tmp_path / "a.js"
    content = f"//-\n{CODE}\n{ACCEPTANCE_PROMPT}"
    path.write_text(content, encoding="utf-8")
    provider = FakeProvider()
    report = await PromptOrchestrator(configured, provider, UndoCache()).on_file_changed(str(path))
    assert report.outcomes == []
    assert provider.requests == []
    assert path.read_text(encoding="utf-8") == content


@pytest.mark.asyncio
async def test_unconfigured_reports_configuration_error(tmp_path):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    provider = FakeProvider(SCENARIO_RESPONSE)
    report = await PromptOrchestrator(OiConfig(), provider, UndoCache()).on_file_changed(str(path))
    (error,) = report.errors()
    assert error.error_kind is ErrorKind.CONFIGURATION
    assert "oi config" in error.message
    assert provider.requests == []
    assert path.read_text(encoding="utf-8") == PROMPT_LINE


@pytest.mark.asyncio
async def test_provider_error_leaves_file_untouched(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    provider = FakeProvider(ProviderError("rate limited", platform="openai"))
    report = await PromptOrchestrator(configured, provider, UndoCache()).on_file_changed(str(path))
    (error,) = report.errors(ErrorKind.PROVIDER)
    assert "rate limited" in error.message
    assert path.read_text(encoding="utf-8") == PROMPT_LINE


@pytest.mark.asyncio
async def test_untranslatable_response_is_translation_error(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    cache = UndoCache()
    provider = FakeProvider("Sorry, I can't help with that.")
    report = await PromptOrchestrator(configured, provider, cache).on_file_changed(str(path))
    assert report.errors(ErrorKind.TRANSLATION)
    assert path.read_text(encoding="utf-8") == PROMPT_LINE
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_mismatched_find_is_patch_mismatch(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    response = json.dumps({"changes": [{"find": ["not in file"], "replace": ["x"]}]})
    cache = UndoCache()
    report = await PromptOrchestrator(configured, FakeProvider(response), cache).on_file_changed(str(path))
    assert report.errors(ErrorKind.PATCH_MISMATCH)
    assert path.read_text(encoding="utf-8") == PROMPT_LINE
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_inert_acceptance_is_a_noop(tmp_path, configured):
    path = tmp_path / "a.js"
    content = "code();\n//> Accept the changes (y/n): y -//"
    path.write_text(content, encoding="utf-8")
    report = await PromptOrchestrator(configured, FakeProvider(), UndoCache()).on_file_changed(str(path))
    assert report.ok
    (outcome,) = report.outcomes
    assert outcome.error_kind is ErrorKind.MARKER_MALFORMED
    assert path.read_text(encoding="utf-8") == content


@pytest.mark.asyncio
async def test_empty_prompt_is_skipped(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text("//>  <//", encoding="utf-8")
    provider = FakeProvider()
    report = await PromptOrchestrator(configured, provider, UndoCache()).on_file_changed(str(path))
    assert report.outcomes == []
    assert provider.requests == []


@pytest.mark.asyncio
async def test_two_prompts_in_one_file(tmp_path, configured):
    path = tmp_path / "a.py"
    path.write_text("//> first <//\nx = 1\n//> second <//\n", encoding="utf-8")
    provider = FakeProvider(
        json.dumps({"changes": [{"find": ["//> first <//"], "replace": ["a = 1"]}]}),
        json.dumps({"changes": [{"find": ["//> second <//"], "replace": ["b = 2"]}]}),
    )
    report = await PromptOrchestrator(configured, provider, UndoCache()).on_file_changed(str(path))
    assert report.ok
    assert len(provider.requests) == 2
    assert path.read_text(encoding="utf-8") == (
        f"//-\na = 1\n{ACCEPTANCE_PROMPT}\nx = 1\n//-\nb = 2\n{ACCEPTANCE_PROMPT}\n"
    )


@pytest.mark.asyncio
async def test_missing_file_ends_pass_quietly(tmp_path, configured):
    report = await PromptOrchestrator(configured, FakeProvider(), UndoCache()).on_file_changed(
        str(tmp_path / "gone.js")
    )
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_passes_for_same_file_do_not_interleave(tmp_path, configured):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    in_flight = 0
    max_in_flight = 0

    class SlowProvider(FakeProvider):
        async def send(self, request):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await super().send(request)

    provider = SlowProvider(SCENARIO_RESPONSE, SCENARIO_RESPONSE)
    orchestrator = PromptOrchestrator(configured, provider, UndoCache())
    await asyncio.gather(
        orchestrator.on_file_changed(str(path)),
        orchestrator.on_file_changed(str(path)),
    )
    assert max_in_flight == 1
    # The second pass sees the pending span and has nothing left to ask for.
    assert len(provider.requests) == 1
    assert path.read_text(encoding="utf-8") == f"//-\n{CODE}\n{ACCEPTANCE_PROMPT}"


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_escape(tmp_path, configured, mocker):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    mocker.patch("oi.prompt_orchestration.find_context", side_effect=RuntimeError("kaboom"))
    report = await PromptOrchestrator(configured, FakeProvider(), UndoCache()).on_file_changed(str(path))
    (error,) = report.errors()
    assert "kaboom" in error.message
    assert path.read_text(encoding="utf-8") == PROMPT_LINE


@pytest.mark.asyncio
async def test_failed_write_is_reported_as_io_error(tmp_path, configured, mocker):
    path = tmp_path / "a.js"
    path.write_text(PROMPT_LINE, encoding="utf-8")
    mocker.patch("oi.patch_code.write_file_content", return_value=False)
    report = await PromptOrchestrator(configured, FakeProvider(SCENARIO_RESPONSE), UndoCache()).on_file_changed(
        str(path)
    )
    assert not report.ok
    (error,) = report.errors(ErrorKind.IO)
    assert str(path) in error.message
    assert path.read_text(encoding="utf-8") == PROMPT_LINE


@pytest.mark.asyncio
async def test_failed_write_on_resolve_is_reported_as_io_error(tmp_path, configured, mocker):
    path = tmp_path / "a.js"
    content = f"//-\n{CODE}\n//> Accept the changes (y/n): y -//"
    path.write_text(content, encoding="utf-8")
    mocker.patch("oi.patch_code.write_file_content", return_value=False)
    report = await PromptOrchestrator(configured, FakeProvider(), UndoCache()).on_file_changed(str(path))
    assert not report.ok
    assert report.errors(ErrorKind.IO)
    assert path.read_text(encoding="utf-8") == content


@pytest.mark.asyncio
async def test_path_locks_are_released_after_passes(tmp_path, configured):
    orchestrator = PromptOrchestrator(configured, FakeProvider(), UndoCache())
    paths = []
    for name in ("a.js", "b.js"):
        path = tmp_path / name
        path.write_text("const a = 1;", encoding="utf-8")
        paths.append(str(path))

    await asyncio.gather(*(orchestrator.on_file_changed(p) for p in paths + paths))
    assert orchestrator._locks == {}
