from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import PromptContext, ProviderRequest
from .platforms import get_platform

if TYPE_CHECKING:
    from .config import OiConfig

logger = logging.getLogger(__name__)


def build_request(prompt: str, context: PromptContext, config: "OiConfig") -> ProviderRequest:
    """
    Build the provider request for one prompt.

    Raises:
        ConfigurationError: No usable platform is active.
    """
    settings = config.require_active_platform()
    platform = get_platform(settings.name)
    request = platform.build_request(
        prompt,
        context,
        settings,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    logger.debug(f"Built {platform.name} request for {context.file_path} using {request.model}")
    return request
