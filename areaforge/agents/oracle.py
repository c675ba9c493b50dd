"""Oracle boundary: the external language models behind two small async interfaces.

- ``ChatModelOracle.complete(messages)`` drives the agent loop. It returns the
  assistant text plus tool calls whose arguments are still raw JSON text.
- ``JsonOracle.generate_json(system, user)`` is used by actions for structured
  extraction. It strips fences, parses, and re-prompts once on malformed output.

Transport failures become ``OracleError``. Nothing here retries.
"""

import asyncio
import contextlib
import json
import sys

import httpx
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from areaforge.config import get_config
from areaforge.errors import OracleCancelled, OracleError
from areaforge.utils.parsing import strip_fences

REPROMPT = (
    "Your response did not match the required JSON schema. "
    "Please try again with ONLY the raw JSON object, "
    "no markdown fences, no commentary."
)


def make_chat_model(model_name: str, temperature: float = 0):
    """Build the LangChain chat model for a configured model name."""
    if model_name.startswith("gemini"):
        return ChatGoogleGenerativeAI(model=model_name, temperature=temperature)
    return ChatAnthropic(model=model_name, temperature=temperature)


def _is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a network-level failure rather than a bad request."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (429, 500, 502, 503)
    return False


def _oracle_error(exc: Exception) -> OracleError:
    transient = _is_transient(exc)
    kind = "Transport failure" if transient else "Model request failed"
    return OracleError(f"{kind}: {exc!r}", transient=transient)


def message_text(message) -> str:
    """Plain text of a model reply, whether content is a string or a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _safe_args(arguments: str) -> dict:
    try:
        parsed = json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_langchain_messages(messages: list[dict]) -> list:
    """Convert the loop's role-tagged history into LangChain message objects."""
    converted = []
    for message in messages:
        role = message["role"]
        if role == "system":
            converted.append(SystemMessage(content=message["content"]))
        elif role == "user":
            converted.append(HumanMessage(content=message["content"]))
        elif role == "assistant":
            converted.append(AIMessage(
                content=message.get("content") or "",
                tool_calls=[
                    {"id": call["id"], "name": call["name"], "args": _safe_args(call["arguments"])}
                    for call in message.get("tool_calls", [])
                ],
            ))
        elif role == "tool":
            converted.append(ToolMessage(content=message["content"], tool_call_id=message["tool_call_id"]))
        else:
            raise ValueError(f"Unknown message role: {role}")
    return converted


class ChatModelOracle:
    """Tool-calling oracle backed by a LangChain chat model."""

    def __init__(self, llm, tools: list[dict]):
        self._llm = llm.bind_tools(tools) if tools else llm

    async def complete(self, messages: list[dict]) -> dict:
        """Send the history, return {"content": str, "tool_calls": [{id, name, arguments}]}."""
        try:
            reply = await self._llm.ainvoke(to_langchain_messages(messages))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise _oracle_error(exc) from exc

        tool_calls = []
        for i, call in enumerate(getattr(reply, "tool_calls", None) or []):
            tool_calls.append({
                "id": call.get("id") or f"call_{i}",
                "name": call.get("name") or "",
                "arguments": json.dumps(call.get("args") or {}),
            })
        # Calls whose arguments the provider could not parse keep their raw text
        for i, call in enumerate(getattr(reply, "invalid_tool_calls", None) or []):
            tool_calls.append({
                "id": call.get("id") or f"invalid_call_{i}",
                "name": call.get("name") or "",
                "arguments": call.get("args") or "",
            })
        return {"content": message_text(reply), "tool_calls": tool_calls}


async def call_oracle(oracle, messages: list[dict], cancel_event: asyncio.Event | None = None) -> dict:
    """Await ``oracle.complete``, abandoning the request as soon as ``cancel_event`` is set.

    Raises OracleCancelled if the run was cancelled before or during the call.
    """
    if cancel_event is None:
        return await oracle.complete(messages)
    if cancel_event.is_set():
        raise OracleCancelled("Run cancelled before the model was called")

    request = asyncio.ensure_future(oracle.complete(messages))
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not request.done():
            request.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await request

    if request in done:
        return request.result()
    raise OracleCancelled("Run cancelled while waiting for the model")


class JsonOracle:
    """Structured-extraction oracle: one prompt in, one validated JSON object out."""

    def __init__(self, llm):
        self._llm = llm

    async def _invoke(self, messages: list) -> str:
        try:
            reply = await self._llm.ainvoke(messages)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise _oracle_error(exc) from exc
        return message_text(reply)

    @staticmethod
    def _parse(text: str, validate) -> dict:
        data = json.loads(strip_fences(text))
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        if validate is not None:
            validate(data)
        return data

    async def generate_json(self, system_prompt: str, user_prompt: str, validate=None) -> dict:
        """Ask for a JSON object; ``validate(data)`` may raise ValueError to reject it.

        Malformed or rejected output is re-prompted once, then the error propagates.
        """
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        text = await self._invoke(messages)
        try:
            return self._parse(text, validate)
        except ValueError as exc:
            print(f"[AreaForge] Extraction output rejected ({exc}); re-prompting once", file=sys.stderr)
            messages.append(AIMessage(content=text))
            messages.append(HumanMessage(content=REPROMPT))
            text = await self._invoke(messages)
            return self._parse(text, validate)


def make_json_oracle() -> JsonOracle:
    config = get_config()
    return JsonOracle(make_chat_model(config["extraction_model"]))


def make_agent_oracle(tools: list[dict]) -> ChatModelOracle:
    config = get_config()
    return ChatModelOracle(make_chat_model(config["agent_model"]), tools)
