import math
import os
from dataclasses import dataclass, replace
from typing import Optional

import dotenv

from .errors import AgentRuntimeError

# Base endpoints for OpenAI-compatible providers that are not OpenAI itself
DEFAULT_BASE_URLS = {
    "deepseek": "https://api.deepseek.com",
    "huggingface": "https://router.huggingface.co/v1/",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ProviderConfig:
    """
    Immutable per-adapter configuration.

    Attributes:
        api_key: Provider API key. Required by every adapter.
        base_url: Optional override of the vendor's default endpoint.
        debug: Tee every response stream into the debug sink.
        timeout: Seconds to wait for the stream to open and for each chunk.
                 None (the default) waits indefinitely.
    """
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    debug: bool = False
    timeout: Optional[float] = None


def env_flag(name: str) -> bool:
    """
    Read a boolean switch from the environment ('1', 'true', 'yes', 'on').
    """
    return os.getenv(name, "").strip().lower() in _TRUTHY


def env_timeout(provider: str) -> Optional[float]:
    """
    Read LLM_RUNTIME_TIMEOUT as a positive number of seconds; unset means no timeout.

    Raises:
        AgentRuntimeError: CallerInputError if the value is not a positive number.
    """
    value = os.getenv("LLM_RUNTIME_TIMEOUT", "").strip()
    if not value:
        return None
    try:
        timeout = float(value)
    except ValueError:
        timeout = None
    if timeout is None or not math.isfinite(timeout) or timeout <= 0:
        raise AgentRuntimeError.caller_input(
            provider, f"LLM_RUNTIME_TIMEOUT must be a positive number of seconds, got {value!r}"
        )
    return timeout


def load_provider_config(provider: str, **overrides) -> ProviderConfig:
    """
    Build a ProviderConfig from environment variables (and a .env file).

    Variables read, with PROVIDER being the upper-cased provider id:
        - PROVIDER_API_KEY
        - PROVIDER_PROXY_URL (custom base endpoint)
        - DEBUG_PROVIDER_CHAT_COMPLETION
        - LLM_RUNTIME_TIMEOUT (seconds)

    Args:
        provider (str): Provider identifier (e.g. 'google').
        **overrides: ProviderConfig fields that take precedence over the environment.

    Returns:
        ProviderConfig: The resolved configuration.

    Raises:
        AgentRuntimeError: CallerInputError for a malformed LLM_RUNTIME_TIMEOUT.
    """
    dotenv.load_dotenv()
    prefix = provider.upper()

    config = ProviderConfig(
        api_key=os.getenv(f"{prefix}_API_KEY") or None,
        base_url=os.getenv(f"{prefix}_PROXY_URL") or DEFAULT_BASE_URLS.get(provider),
        debug=env_flag(f"DEBUG_{prefix}_CHAT_COMPLETION"),
        timeout=env_timeout(provider) if overrides.get("timeout") is None else None,
    )

    explicit = {key: value for key, value in overrides.items() if value is not None}
    return replace(config, **explicit)
