import pytest

from fakes import PNG_B64

PROVIDER_ENV_KEYS = [
    "GOOGLE_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "DEEPSEEK_API_KEY",
    "HUGGINGFACE_API_KEY",
]


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    """Keep a developer's .env file out of the tests."""
    monkeypatch.setattr("llm_runtime.config.dotenv.load_dotenv", lambda *args, **kwargs: False)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every provider variable from the environment."""
    for key in PROVIDER_ENV_KEYS:
        prefix = key[: -len("_API_KEY")]
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(f"{prefix}_PROXY_URL", raising=False)
        monkeypatch.delenv(f"DEBUG_{prefix}_CHAT_COMPLETION", raising=False)
    monkeypatch.delenv("LLM_RUNTIME_TIMEOUT", raising=False)


@pytest.fixture
def mock_env(monkeypatch, clean_env):
    """Mock environment variables for API keys."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test-anthropic")
    monkeypatch.setenv("GOOGLE_API_KEY", "AIza-test-google")


@pytest.fixture
def image_message():
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": "Hello"},
            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{PNG_B64}"}},
        ],
    }
