"""
Tool schema translation.

Tools arrive in OpenAI function-tool form with JSON Schema parameters.
Google wants its own enumerated type tags; Anthropic takes JSON Schema but
only the subset the runtime supports is forwarded.
"""
from typing import Any, Dict, List, Optional

from google.genai import types

from .types import Tool

JSON_TO_GOOGLE_TYPE = {
    "object": types.Type.OBJECT,
    "array": types.Type.ARRAY,
    "string": types.Type.STRING,
    "number": types.Type.NUMBER,
    "integer": types.Type.INTEGER,
    "boolean": types.Type.BOOLEAN,
}

GOOGLE_TO_JSON_TYPE = {value.value: key for key, value in JSON_TO_GOOGLE_TYPE.items()}

# Keywords copied through unchanged; everything else is dropped
_PASSTHROUGH_KEYWORDS = ("description", "enum")


def to_google_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively convert a JSON Schema node to Google's schema format.

    `type` is mapped to `google.genai.types.Type`; `properties`, `items` and
    `required` are preserved at any depth. Unknown keywords and unknown type
    names are dropped.

    Args:
        schema (Dict[str, Any]): JSON Schema node.

    Returns:
        Dict[str, Any]: Google schema node (accepted by types.Schema).
    """
    converted: Dict[str, Any] = {}

    schema_type = schema.get("type")
    if isinstance(schema_type, str) and schema_type in JSON_TO_GOOGLE_TYPE:
        converted["type"] = JSON_TO_GOOGLE_TYPE[schema_type]

    for keyword in _PASSTHROUGH_KEYWORDS:
        if keyword in schema:
            converted[keyword] = schema[keyword]

    if isinstance(schema.get("properties"), dict):
        converted["properties"] = {
            name: to_google_schema(prop) for name, prop in schema["properties"].items()
        }

    if isinstance(schema.get("items"), dict):
        converted["items"] = to_google_schema(schema["items"])

    if isinstance(schema.get("required"), list):
        converted["required"] = list(schema["required"])

    return converted


def from_google_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a Google schema node back to JSON Schema.

    Accepts either `types.Type` members or their string values.
    """
    converted: Dict[str, Any] = {}

    schema_type = schema.get("type")
    if schema_type is not None:
        tag = getattr(schema_type, "value", schema_type)
        if isinstance(tag, str) and tag.upper() in GOOGLE_TO_JSON_TYPE:
            converted["type"] = GOOGLE_TO_JSON_TYPE[tag.upper()]

    for keyword in _PASSTHROUGH_KEYWORDS:
        if keyword in schema:
            converted[keyword] = schema[keyword]

    if isinstance(schema.get("properties"), dict):
        converted["properties"] = {
            name: from_google_schema(prop) for name, prop in schema["properties"].items()
        }

    if isinstance(schema.get("items"), dict):
        converted["items"] = from_google_schema(schema["items"])

    if isinstance(schema.get("required"), list):
        converted["required"] = list(schema["required"])

    return converted


def sanitize_json_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only the supported JSON Schema subset, in JSON Schema form.
    """
    return from_google_schema(to_google_schema(schema))


def build_google_tools(tools: Optional[List[Tool]]) -> Optional[List[Dict[str, Any]]]:
    """
    Convert OpenAI-format tools to a single Google tool with function declarations.

    Returns:
        Optional[List[Dict]]: None when there are no tools.
    """
    if not tools:
        return None

    function_declarations = []
    for tool in tools:
        func = tool.get("function", {})
        declaration: Dict[str, Any] = {
            "name": func.get("name", ""),
            "description": func.get("description", ""),
        }
        if func.get("parameters"):
            declaration["parameters"] = to_google_schema(func["parameters"])
        function_declarations.append(declaration)

    return [{"function_declarations": function_declarations}]
