import re
from typing import List

from .types import Message

_VISION_SEGMENT = re.compile(r"-vision(?=-|$)")


def has_image_content(messages: List[Message]) -> bool:
    """
    Return True if any message carries an image content part.
    """
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, list) and any(
            isinstance(part, dict) and part.get("type") == "image_url" for part in content
        ):
            return True
    return False


def select_model(requested_model: str, messages: List[Message]) -> str:
    """
    Pick the backend model variant for a request.

    A vision variant is only worth its cost when the conversation has images;
    otherwise the family's text variant is used
    (e.g. 'gemini-pro-vision' -> 'gemini-pro',
    'gemini-1.0-pro-vision-latest' -> 'gemini-1.0-pro-latest').

    Args:
        requested_model (str): Model name declared by the caller.
        messages (List[Message]): Conversation history.

    Returns:
        str: The effective model name.
    """
    if "vision" not in requested_model or has_image_content(messages):
        return requested_model

    # Names where "vision" is not a dash-separated segment are left alone
    text_model = _VISION_SEGMENT.sub("", requested_model)
    return text_model or requested_model
