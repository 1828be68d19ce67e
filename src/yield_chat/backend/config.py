import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from a .env file at the repository root, if any
load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), '.env'))

API_KEY_ENV = "OPENAI_API_KEY"

# Values shipped in example .env files; treated the same as an absent key
PLACEHOLDER_API_KEYS = frozenset({
    "sk-your-key-here",
    "your-api-key",
    "sk-...",
    "changeme",
})

MODEL = os.getenv("YIELD_CHAT_MODEL", "gpt-4.1-mini")
MAX_OUTPUT_TOKENS = int(os.getenv("YIELD_CHAT_MAX_TOKENS", "4096"))
MAX_TOOL_STEPS = int(os.getenv("YIELD_CHAT_MAX_STEPS", "5"))

# Enable verbose debug logging when YIELD_CHAT_DEBUG is set (1/true/yes)
DEBUG_ENABLED = os.getenv("YIELD_CHAT_DEBUG", "").lower() in ("1", "true", "yes")


def get_api_key() -> Optional[str]:
    """Return the usable model credential, or None in demo mode.

    Read from the environment on every call so tests (and operators) can flip
    modes without re-importing.
    """
    key = (os.getenv(API_KEY_ENV) or "").strip()
    if not key or key in PLACEHOLDER_API_KEYS:
        return None
    return key


def has_live_credentials() -> bool:
    return get_api_key() is not None
