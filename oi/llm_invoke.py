# llm_invoke.py

import json
import logging
import time as time_module  # Alias to avoid conflict with 'time' parameter
from typing import Any, Protocol

import litellm
import openai  # Import openai for exception handling as LiteLLM maps to its types
from pydantic import BaseModel

from .errors import ProviderError
from .models import ProviderRequest

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    """Anything that can turn a ProviderRequest into raw response text."""

    async def send(self, request: ProviderRequest) -> str:
        ...


def _content_to_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, BaseModel):
        return content.model_dump_json()
    if isinstance(content, (dict, list)):
        return json.dumps(content)
    return str(content)


class LiteLLMProvider:
    """
    Completion provider backed by LiteLLM.

    Every provider failure is re-raised as ProviderError so the caller can
    treat it as "skip this prompt" without knowing the backend.
    """

    def __init__(self, **extra_kwargs: Any):
        self.extra_kwargs = extra_kwargs

    async def send(self, request: ProviderRequest) -> str:
        litellm_kwargs = {**request.completion_kwargs(), **self.extra_kwargs}
        model_name = request.model
        try:
            start_time = time_module.time()
            logger.debug(f"Calling litellm.acompletion for {model_name}...")
            response = await litellm.acompletion(**litellm_kwargs)
            end_time = time_module.time()
            logger.debug(f"Invocation successful for {model_name} (took {end_time - start_time:.2f}s)")

        except openai.AuthenticationError as e:
            raise ProviderError(
                f"Authentication failed for {model_name}: {e}", platform=request.platform
            ) from e
        except (openai.RateLimitError, openai.APITimeoutError, openai.APIConnectionError,
                openai.APIStatusError, openai.BadRequestError, openai.InternalServerError) as e:
            error_type = type(e).__name__
            status_code = getattr(e, "status_code", None)
            if status_code is not None:
                error_type = f"{error_type}, HTTP {status_code}"
            raise ProviderError(
                f"Invocation failed for {model_name} ({error_type}): {e}", platform=request.platform
            ) from e
        except Exception as e:
            error_type = type(e).__name__
            raise ProviderError(
                f"Invocation failed for {model_name} ({error_type}): {e}", platform=request.platform
            ) from e

        try:
            raw_result = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ProviderError(
                f"Could not extract result content from {model_name} response: {e}",
                platform=request.platform,
            ) from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"Tokens (prompt/completion): {getattr(usage, 'prompt_tokens', '?')}/"
                f"{getattr(usage, 'completion_tokens', '?')}"
            )
        return _content_to_text(raw_result)
