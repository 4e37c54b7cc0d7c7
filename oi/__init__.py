"""oi: resolve inline prompt markers in source files with an LLM."""

__version__ = "0.3.0"

# Defaults shared across modules
DEFAULT_PLATFORM = "openai"
DEFAULT_TEMPERATURE = 0.5
DEFAULT_MAX_TOKENS = 2048
SIMILARITY_THRESHOLD = 75
OI_PATH_ENV_VAR = "OI_PATH"
