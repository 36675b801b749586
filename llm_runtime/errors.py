"""
Error taxonomy and normalization for the runtime adapters.

Every failure that leaves an adapter is an `AgentRuntimeError`. Vendor SDK
exceptions are classified by `normalize_error` into a small closed set of
kinds that callers can branch on; the original payload is kept in `error`
so a caller can still render a useful diagnostic.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import anthropic
import httpx
import openai

logger = logging.getLogger(__name__)


class AgentRuntimeErrorType(str, Enum):
    """
    Closed set of error kinds surfaced by the runtime.
    """
    InvalidAPIKey = "InvalidAPIKey"
    LocationNotSupported = "LocationNotSupported"
    CallerInputError = "CallerInputError"
    ProviderBizError = "ProviderBizError"
    TransportError = "TransportError"


class AgentRuntimeError(Exception):
    """
    The single error type raised by adapters.

    Attributes are read-only once constructed.

    Args:
        error_type (AgentRuntimeErrorType): The classified error kind.
        provider (str): Provider identifier (e.g. 'google').
        error (Any, optional): Detail payload. Usually {"message": ...}, or the
                               vendor's structured business-error payload.
    """

    def __init__(
        self,
        error_type: AgentRuntimeErrorType,
        provider: str,
        error: Any = None,
    ):
        self._error_type = AgentRuntimeErrorType(error_type)
        self._provider = provider
        self._error = error
        super().__init__(self._error_type, provider, error)

    @property
    def error_type(self) -> AgentRuntimeErrorType:
        return self._error_type

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def error(self) -> Any:
        return self._error

    def to_dict(self) -> Dict[str, Any]:
        """
        Render the error in the shape collaborators (UI, session layer) consume.
        """
        return {
            "errorType": self._error_type.value,
            "error": self._error,
            "provider": self._provider,
        }

    def __str__(self) -> str:
        detail = self._error
        if isinstance(detail, dict) and "message" in detail:
            detail = detail["message"]
        return f"[{self._provider}] {self._error_type.value}: {detail}"

    @classmethod
    def missing_api_key(cls, provider: str) -> "AgentRuntimeError":
        return cls(
            AgentRuntimeErrorType.InvalidAPIKey,
            provider,
            {"message": f"No API key configured for provider '{provider}'"},
        )

    @classmethod
    def caller_input(cls, provider: str, message: str) -> "AgentRuntimeError":
        return cls(AgentRuntimeErrorType.CallerInputError, provider, {"message": message})


# =============================================================================
# Classification
# =============================================================================

_INVALID_KEY_REASONS = {"API_KEY_INVALID"}

_LOCATION_PHRASES = (
    "location is not supported",
    "unsupported_country_region_territory",
    "country, region, or territory not supported",
)

_AUTH_ERRORS = (openai.AuthenticationError, anthropic.AuthenticationError)

_TRANSPORT_ERRORS = (
    httpx.TransportError,
    openai.APIConnectionError,
    anthropic.APIConnectionError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)


def normalize_error(error: BaseException, provider: str) -> AgentRuntimeError:
    """
    Classify any raised error into an `AgentRuntimeError`.

    Classification order:
        1. Already normalized -> returned unchanged.
        2. Invalid credential (ErrorInfo reason API_KEY_INVALID, HTTP 401,
           SDK authentication errors) -> InvalidAPIKey.
        3. Location/region refused -> LocationNotSupported.
        4. Structured business-error payload -> ProviderBizError with the payload.
        5. SDK API error with a status -> ProviderBizError "<status> <body>".
        6. Connection/timeout failures -> TransportError.
        7. Anything else -> ProviderBizError {"message": ...}.

    This function never raises; if inspecting the error fails, the generic
    branch is used.

    Args:
        error (BaseException): The raw error.
        provider (str): Provider identifier to stamp on the result.

    Returns:
        AgentRuntimeError: The normalized error.
    """
    if isinstance(error, AgentRuntimeError):
        return error

    try:
        error_type, detail = _classify(error)
    except Exception:
        logger.debug("Error inspection failed for %s, using generic branch", provider, exc_info=True)
        error_type, detail = AgentRuntimeErrorType.ProviderBizError, {"message": _safe_message(error)}

    return AgentRuntimeError(error_type, provider, detail)


def _classify(error: BaseException) -> Tuple[AgentRuntimeErrorType, Any]:
    message = _error_message(error)
    status = _status_code(error)
    body = _error_body(error)
    biz_errors = _structured_details(body, message)

    if (
        isinstance(error, _AUTH_ERRORS)
        or status == 401
        or _has_invalid_key_reason(biz_errors)
    ):
        return AgentRuntimeErrorType.InvalidAPIKey, {"message": message}

    haystack = f"{message} {_render_body(body)}".lower()
    if any(phrase in haystack for phrase in _LOCATION_PHRASES):
        return AgentRuntimeErrorType.LocationNotSupported, {"message": message}

    if biz_errors is not None:
        return AgentRuntimeErrorType.ProviderBizError, biz_errors

    if status is not None:
        rendered = _render_body(body) if body is not None else message
        return AgentRuntimeErrorType.ProviderBizError, {"message": f"{status} {rendered}"}

    if isinstance(error, _TRANSPORT_ERRORS):
        return AgentRuntimeErrorType.TransportError, {"message": message}

    return AgentRuntimeErrorType.ProviderBizError, {"message": message}


def _safe_message(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:
        return type(error).__name__


def _error_message(error: BaseException) -> str:
    # google-genai, openai and anthropic errors all expose `.message`
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return _safe_message(error)


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _error_body(error: BaseException) -> Any:
    # openai/anthropic keep the decoded response in `.body`, google-genai in `.details`
    for attr in ("body", "details"):
        value = getattr(error, attr, None)
        if value is not None:
            return value
    return None


def _render_body(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False, separators=(",", ":"), default=str)


def _structured_details(body: Any, message: str) -> Optional[List[Any]]:
    """
    Find a vendor business-error payload (a list of reason/domain/metadata
    objects), either in the decoded response body or as a JSON list embedded
    at the end of the error message.
    """
    if isinstance(body, dict):
        inner = body.get("error", body)
        details = inner.get("details") if isinstance(inner, dict) else None
        if isinstance(details, list) and details:
            return details

    start = message.rfind("[")
    if start == -1:
        return None
    try:
        parsed = json.loads(message[start:])
    except ValueError:
        return None
    if isinstance(parsed, list) and parsed and all(isinstance(item, dict) for item in parsed):
        return parsed
    return None


def _has_invalid_key_reason(biz_errors: Optional[List[Any]]) -> bool:
    if not biz_errors:
        return False
    return any(item.get("reason") in _INVALID_KEY_REASONS for item in biz_errors)
