import sys
from pathlib import Path

import pytest

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.settings import get_settings  # noqa: E402


ENV_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LLM_PROVIDER",
    "GOOGLE_API_KEY",
    "GEMINI_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "MODEL_TEMPERATURE",
    "MODEL_TOP_P",
    "HISTORY_BACKEND",
    "REDIS_URL",
    "REDIS_KEY_PREFIX",
    "SESSION_TTL",
    "CHAT_SESSION_ID",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
