"""
Provider strategies.

Each platform knows how to shape a request for its backend and how to read the
text that comes back. The active one is picked once from configuration via
``get_platform``; adding a provider means adding a subclass and registering it.
"""
from __future__ import annotations

from abc import ABC
from typing import Dict, List, Optional

from langchain_core.prompts import PromptTemplate

from . import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from .errors import ConfigurationError
from .load_prompt_template import load_prompt_template
from .models import CodeChanges, PlatformSettings, PromptContext, ProviderRequest, ReplacementBlock
from .translate_response import translate_response


class Platform(ABC):
    name: str = ""
    default_model: str = ""
    api_key_env: Optional[str] = None
    default_base_url: Optional[str] = None
    requires_api_key: bool = True
    structured_output: bool = False

    @property
    def system_prompt_name(self) -> str:
        return "system_structured" if self.structured_output else "system_fenced"

    def is_usable(self, settings: PlatformSettings) -> bool:
        return bool(settings.api_key) or not self.requires_api_key

    def _format(self, prompt_name: str, **variables: str) -> str:
        template = load_prompt_template(prompt_name)
        if not template:
            raise ValueError(f"Failed to load prompt template: {prompt_name}")
        return PromptTemplate.from_template(template).format(**variables)

    def build_messages(self, prompt: str, context: PromptContext) -> List[Dict[str, str]]:
        system = self._format(
            self.system_prompt_name,
            language=context.language,
            completion_type=context.completion_type,
        )
        user = self._format(
            "user_request",
            language=context.language,
            completion_type=context.completion_type,
            file_path=context.file_path,
            code=context.code,
            prompt=prompt.strip(),
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def build_request(
        self,
        prompt: str,
        context: PromptContext,
        settings: PlatformSettings,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ProviderRequest:
        return ProviderRequest(
            platform=self.name,
            model=settings.model or self.default_model,
            messages=self.build_messages(prompt, context),
            temperature=temperature,
            max_tokens=max_tokens,
            structured_output=self.structured_output,
            response_format=CodeChanges if self.structured_output else None,
            api_key=settings.api_key,
            api_base=settings.base_url or self.default_base_url,
            organization=settings.org_id,
        )

    def parse_raw_response(self, raw_response: str) -> Optional[List[ReplacementBlock]]:
        return translate_response(raw_response)


class OpenAIPlatform(Platform):
    name = "openai"
    default_model = "gpt-4o"
    api_key_env = "OPENAI_API_KEY"
    structured_output = True


class DeepSeekPlatform(Platform):
    name = "deepseek"
    default_model = "deepseek/deepseek-chat"
    api_key_env = "DEEPSEEK_API_KEY"
    default_base_url = "https://api.deepseek.com"


class GroqPlatform(Platform):
    name = "groq"
    default_model = "groq/llama-3.1-70b-versatile"
    api_key_env = "GROQ_API_KEY"


class OllamaPlatform(Platform):
    name = "ollama"
    default_model = "ollama/codellama:7b"
    default_base_url = "http://localhost:11434"
    requires_api_key = False


PLATFORMS: Dict[str, Platform] = {
    platform.name: platform
    for platform in (OpenAIPlatform(), DeepSeekPlatform(), GroqPlatform(), OllamaPlatform())
}


def available_platforms() -> List[str]:
    return list(PLATFORMS)


def get_platform(name: str) -> Platform:
    """Look up a platform strategy by name."""
    platform = PLATFORMS.get((name or "").strip().lower())
    if platform is None:
        raise ConfigurationError(
            f"Unknown platform '{name}'. Available platforms: {', '.join(available_platforms())}."
        )
    return platform
