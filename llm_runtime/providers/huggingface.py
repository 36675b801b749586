from .openai import OpenAIProvider
from ..config import DEFAULT_BASE_URLS


class HuggingFaceProvider(OpenAIProvider):
    """
    Provider for Hugging Face Inference API (OpenAI-compatible).
    """

    provider_name = "huggingface"
    default_base_url = DEFAULT_BASE_URLS["huggingface"]
    include_usage = False
