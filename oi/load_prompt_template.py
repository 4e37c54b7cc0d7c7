from pathlib import Path
import logging
import os
from typing import Optional

from rich import print

from . import OI_PATH_ENV_VAR

logger = logging.getLogger(__name__)

PACKAGE_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


def prompts_dir() -> Path:
    """Directory holding ``.prompt`` files, honouring the OI_PATH override."""
    project_path = os.getenv(OI_PATH_ENV_VAR)
    if project_path:
        return Path(project_path) / "prompts"
    return PACKAGE_PROMPTS_DIR


def load_prompt_template(prompt_name: str) -> Optional[str]:
    """
    Load a prompt template from a file.

    Args:
        prompt_name (str): Name of the prompt file to load (without extension)

    Returns:
        str: The prompt template text, or None if it could not be loaded
    """
    prompt_path = prompts_dir() / f"{prompt_name}.prompt"
    try:
        if not prompt_path.exists():
            raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

        with open(prompt_path, "r", encoding="utf-8") as file:
            prompt_template = file.read()
        logger.debug(f"Loaded prompt: {prompt_name}")
        return prompt_template

    except (FileNotFoundError, IOError) as e:
        print(f"[red]Error loading prompt template: {str(e)}[/red]")
        return None
