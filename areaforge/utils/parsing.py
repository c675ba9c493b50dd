"""Shared parsing helpers for model output and tool-call arguments."""

import json
import re

from areaforge.errors import ToolExecutionError

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def strip_fences(text: str) -> str:
    """Strip markdown code fences from model output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_tool_arguments(name: str, arguments) -> dict:
    """Decode a tool call's raw argument text into a dict.

    Raises ToolExecutionError on malformed JSON or a non-object payload.
    """
    if isinstance(arguments, dict):
        return arguments
    if arguments is None or (isinstance(arguments, str) and not arguments.strip()):
        return {}
    try:
        parsed = json.loads(arguments)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ToolExecutionError(f"Malformed arguments for {name}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ToolExecutionError(f"Arguments for {name} must be a JSON object")
    return parsed
