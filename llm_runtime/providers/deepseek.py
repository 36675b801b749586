from .openai import OpenAIProvider
from ..config import DEFAULT_BASE_URLS


class DeepSeekProvider(OpenAIProvider):
    """
    Provider for DeepSeek.

    DeepSeek is OpenAI-compatible, so we reuse the OpenAIProvider
    with a custom base_url.
    """

    provider_name = "deepseek"
    default_base_url = DEFAULT_BASE_URLS["deepseek"]
