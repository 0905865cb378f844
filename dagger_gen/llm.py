"""LLM clients: HTTP connections to text-completion and chat backends.

Two protocols, one per use:

    LLM         async def __call__(self, stage: str, prompt: str) -> str
                One-shot text completion for the generation stages
                ("outline", "scene", "npc", "echo"). Implementations may also
                offer `stream(stage, prompt)` yielding text chunks; the
                generation runners use it when present.

    ChatModel   def stream_chat(messages, system, tools) -> AsyncIterator[ChatChunk]
                Streaming chat with tool calling for conversation turns.
                Yields TextChunk, ToolCallChunk and UsageChunk.

Implementations:

    HttpLLM        KoboldCpp and OpenAI-compatible text completion.
    HttpChatModel  OpenAI-compatible /v1/chat/completions with SSE streaming.
    EchoLLM        Returns the prompt back unchanged. No network calls.
    EchoChatModel  Replies with the last user message. No network calls.

Messages passed to a ChatModel use the OpenAI chat shape; the helpers
assistant_tool_message() and tool_result_message() build the entries that
carry a tool round back to the model.

All backend failures raise LLMError with a `code` the chat runner forwards to
the client: TIMEOUT, NETWORK_ERROR, RATE_LIMIT, AUTH_ERROR, SERVER_ERROR,
MALFORMED_RESPONSE.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any, Literal, Protocol, Union

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ErrorCode = Literal[
    "TIMEOUT",
    "NETWORK_ERROR",
    "RATE_LIMIT",
    "AUTH_ERROR",
    "SERVER_ERROR",
    "MALFORMED_RESPONSE",
]


# ---------------------------------------------------------------------------
# LLMError: raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""

    def __init__(self, message: str, code: ErrorCode = "SERVER_ERROR") -> None:
        self.code = code
        super().__init__(message)


@contextmanager
def _translate_errors(base_url: str, timeout: float) -> Iterator[None]:
    """Map httpx failures onto LLMError codes."""
    try:
        yield
    except httpx.ConnectError as e:
        raise LLMError(f"Cannot connect to LLM backend at {base_url}", "NETWORK_ERROR") from e
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        if status == 429:
            code: ErrorCode = "RATE_LIMIT"
        elif status in (401, 403):
            code = "AUTH_ERROR"
        else:
            code = "SERVER_ERROR"
        raise LLMError(f"LLM backend returned HTTP {status}", code) from e
    except httpx.TimeoutException as e:
        raise LLMError(f"LLM backend timed out after {timeout}s", "TIMEOUT") from e
    except httpx.TransportError as e:
        raise LLMError(f"Connection to LLM backend failed: {e}", "NETWORK_ERROR") from e


def _sse_data(line: str) -> str | None:
    """Payload of an SSE `data:` line, or None for any other line."""
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


def _load_chunk(data: str) -> dict[str, Any]:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise LLMError("Malformed stream chunk from LLM backend", "MALFORMED_RESPONSE") from e
    if not isinstance(payload, dict):
        raise LLMError("Malformed stream chunk from LLM backend", "MALFORMED_RESPONSE")
    return payload


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class TextChunk(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ToolCallChunk(BaseModel):
    kind: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class UsageChunk(BaseModel):
    kind: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0


ChatChunk = Union[TextChunk, ToolCallChunk, UsageChunk]


class ChatModel(Protocol):
    def stream_chat(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[ChatChunk]: ...


# ---------------------------------------------------------------------------
# HttpLLM: text completion
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpLLM:
    """Async HTTP client for text-completion backends.

    Supported formats:
      "koboldcpp"    POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}
                     Streaming: POST /api/extra/generate/stream, SSE {"token": "..."}
      "openai"       POST /v1/completions   {"model": ..., "prompt": ...}
                     Response: {"choices": [{"text": "..."}]}
                     Streaming: same endpoint with "stream": true

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, stream: bool = False) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/completions"
            body: dict = {"prompt": prompt}
            if self._model:
                body["model"] = self._model
            if stream:
                body["stream"] = True
            return url, body

        # koboldcpp (default)
        if stream:
            return f"{self._base_url}/api/extra/generate/stream", {"prompt": prompt}
        return f"{self._base_url}/api/v1/generate", {"prompt": prompt}

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "text" not in choices[0]:
                raise LLMError(
                    "Unexpected response format from OpenAI-compatible backend",
                    "MALFORMED_RESPONSE",
                )
            return choices[0]["text"]

        # koboldcpp
        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend", "MALFORMED_RESPONSE")
        return results[0]["text"]

    def _parse_stream_chunk(self, payload: dict) -> str:
        if self._format == "openai":
            choices = payload.get("choices") or [{}]
            return choices[0].get("text") or ""
        return payload.get("token") or ""

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._build_request(prompt)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        with _translate_errors(self._base_url, self._timeout):
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()

        text = self._parse_response(resp.json())
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text

    async def stream(self, stage: str, prompt: str) -> AsyncIterator[str]:
        """Yield completion text as the backend produces it."""
        url, body = self._build_request(prompt, stream=True)
        logger.debug("llm stream stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        with _translate_errors(self._base_url, self._timeout):
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        if data == "[DONE]":
                            break
                        chunk = self._parse_stream_chunk(_load_chunk(data))
                        if chunk:
                            yield chunk


# ---------------------------------------------------------------------------
# HttpChatModel: streaming chat with tool calls
# ---------------------------------------------------------------------------

def assistant_tool_message(text: str, calls: list[ToolCallChunk]) -> dict[str, Any]:
    """The assistant turn that requested `calls`, in OpenAI chat shape."""
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": c.id,
                "type": "function",
                "function": {"name": c.name, "arguments": json.dumps(c.input)},
            }
            for c in calls
        ],
    }


def tool_result_message(tool_call_id: str, result: Any) -> dict[str, Any]:
    content = result if isinstance(result, str) else json.dumps(result)
    return {"role": "tool", "tool_call_id": tool_call_id, "content": content}


class HttpChatModel:
    """Streaming client for OpenAI-compatible /v1/chat/completions.

    Text deltas are yielded as they arrive. Tool calls arrive in fragments
    (id and name first, arguments split over several chunks); they are
    assembled per index and yielded once the stream ends. Token usage is
    requested with stream_options.include_usage and yielded when reported.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self, messages: list[dict[str, Any]], system: str, tools: list[dict[str, Any]],
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "messages": [{"role": "system", "content": system}, *messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self._model:
            body["model"] = self._model
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t["name"],
                        "description": t.get("description", ""),
                        "parameters": t.get("input_schema", {"type": "object"}),
                    },
                }
                for t in tools
            ]
        return body

    @staticmethod
    def _finish_tool_call(index: int, slot: dict[str, str]) -> ToolCallChunk:
        raw = slot["arguments"] or "{}"
        try:
            args = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LLMError(
                f"Malformed arguments for tool call {slot['name']!r}", "MALFORMED_RESPONSE",
            ) from e
        if not isinstance(args, dict):
            raise LLMError(
                f"Tool call {slot['name']!r} arguments are not an object", "MALFORMED_RESPONSE",
            )
        return ToolCallChunk(id=slot["id"] or f"call_{index}", name=slot["name"], input=args)

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[ChatChunk]:
        url = f"{self._base_url}/v1/chat/completions"
        body = self._build_body(messages, system, tools)
        logger.debug("chat call url=%s messages=%d tools=%d", url, len(messages), len(tools))

        pending: dict[int, dict[str, str]] = {}
        with _translate_errors(self._base_url, self._timeout):
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        if data == "[DONE]":
                            break
                        payload = _load_chunk(data)
                        usage = payload.get("usage")
                        if usage:
                            yield UsageChunk(
                                input_tokens=usage.get("prompt_tokens", 0),
                                output_tokens=usage.get("completion_tokens", 0),
                            )
                        for choice in payload.get("choices") or []:
                            delta = choice.get("delta") or {}
                            if delta.get("content"):
                                yield TextChunk(text=delta["content"])
                            for call in delta.get("tool_calls") or []:
                                slot = pending.setdefault(
                                    call.get("index", 0), {"id": "", "name": "", "arguments": ""},
                                )
                                if call.get("id"):
                                    slot["id"] = call["id"]
                                fn = call.get("function") or {}
                                if fn.get("name"):
                                    slot["name"] = fn["name"]
                                slot["arguments"] += fn.get("arguments") or ""

        for index in sorted(pending):
            yield self._finish_tool_call(index, pending[index])


# ---------------------------------------------------------------------------
# Echo implementations: no network; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the prompt text as-is. No network calls.

    The output won't be valid JSON for the structured stages; use a stub
    in tests when you need controlled responses.
    """

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


class EchoChatModel:
    """Replies with the content of the last user message."""

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[ChatChunk]:
        last = next((m for m in reversed(messages) if m.get("role") == "user"), None)
        text = last["content"] if last else ""
        logger.debug("EchoChatModel reply_len=%d", len(text))
        yield TextChunk(text=text)
        yield UsageChunk(input_tokens=0, output_tokens=0)


# ---------------------------------------------------------------------------
# Construction from app config
# ---------------------------------------------------------------------------

def resolve_connection(
    config: dict[str, Any], role: Literal["chat", "generation"],
) -> dict[str, Any] | None:
    """Find the connection assigned to `role` in config, or None."""
    name = config.get(f"{role}_connection", "")
    if not name:
        return None
    for conn in config.get("llm_connections", []):
        if conn.get("name") == name:
            return conn
    return None


def generation_llm_from_config(config: dict[str, Any]) -> HttpLLM | None:
    conn = resolve_connection(config, "generation")
    if conn is None:
        return None
    return HttpLLM(
        provider_url=conn["provider_url"],
        api_key=conn.get("api_key", ""),
        provider_format=conn.get("provider_format", "koboldcpp"),
        model=conn.get("model", ""),
    )


def chat_model_from_config(config: dict[str, Any]) -> HttpChatModel | None:
    conn = resolve_connection(config, "chat")
    if conn is None:
        return None
    return HttpChatModel(
        provider_url=conn["provider_url"],
        api_key=conn.get("api_key", ""),
        model=conn.get("model", ""),
    )
