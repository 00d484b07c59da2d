"""Transports producing the raw JSON text of a streamed fragment."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..catalog import ModelDescriptor, TemplateDefinition, templates_to_wire
from ..settings import EndpointSettings, LLMModelConfig
from ..util.cancellation import CancellationEvent
from .constants import DEFAULT_LLM_TEMPERATURE, RATE_LIMIT_MARKER
from .prompt import build_system_prompt

logger = logging.getLogger(__name__)

# The official OpenAI client insists on a non-empty ``api_key`` even when the
# backend does not require one.
NO_API_KEY = "sk-no-key"


def is_rate_limit_message(message: str | None) -> bool:
    """Return ``True`` when *message* reports a rate-limit condition."""
    if not message:
        return False
    return RATE_LIMIT_MARKER in message.lower()


class StreamError(RuntimeError):
    """Completion stream failed or produced an object outside the schema."""

    def __init__(
        self,
        message: str,
        *,
        rate_limited: bool | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if rate_limited is None:
            rate_limited = status_code == 429 or is_rate_limit_message(message)
        self.rate_limited = rate_limited

    @classmethod
    def from_response(cls, status_code: int, body: str) -> StreamError:
        """Build an error from a failed HTTP response body."""
        return cls(_extract_error_message(body, status_code), status_code=status_code)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": type(self).__name__,
            "message": self.message,
            "rate_limited": self.rate_limited,
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


def _extract_error_message(body: str, status_code: int) -> str:
    text = body.strip()
    if not text:
        return f"Request failed with status {status_code}"
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, Mapping):
        error = data.get("error", data.get("message"))
        if isinstance(error, Mapping):
            error = error.get("message")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return text


@dataclass(frozen=True, slots=True)
class ChatRequest:
    """Everything the completion endpoint needs for one submission."""

    messages: tuple[Mapping[str, Any], ...]
    templates: Mapping[str, TemplateDefinition]
    model: ModelDescriptor | None
    config: LLMModelConfig

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body posted to the chat route."""
        payload: dict[str, Any] = {
            "messages": [dict(message) for message in self.messages],
            "template": templates_to_wire(self.templates),
            "config": self.config.to_wire(),
        }
        if self.model is not None:
            payload["model"] = self.model.to_wire()
        return payload


class ObjectStreamTransport(Protocol):
    """Produce text chunks which concatenate into one JSON object."""

    def stream(
        self, request: ChatRequest, *, cancellation: CancellationEvent
    ) -> AsyncIterator[str]:  # pragma: no cover - protocol
        """Yield chunks until the object is complete; raise :class:`StreamError`."""


class HttpObjectTransport:
    """Stream the fragment text from the web application's chat route."""

    def __init__(
        self,
        settings: EndpointSettings,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._http_transport = http_transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=httpx.Timeout(self.settings.timeout_seconds),
            transport=self._http_transport,
        )

    async def stream(
        self, request: ChatRequest, *, cancellation: CancellationEvent
    ) -> AsyncIterator[str]:
        cancellation.raise_if_cancelled()
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self.settings.chat_path,
                    json=request.to_payload(),
                    headers={"Content-Type": "application/json"},
                ) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        raise StreamError.from_response(
                            response.status_code,
                            body.decode("utf-8", errors="replace"),
                        )
                    async for chunk in response.aiter_text():
                        cancellation.raise_if_cancelled()
                        if chunk:
                            yield chunk
        except httpx.HTTPError as exc:
            raise StreamError(str(exc) or type(exc).__name__) from exc


def _openai_message(message: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a wire message into the Chat Completions message shape."""
    role = str(message.get("role", "user"))
    content = message.get("content")
    if isinstance(content, str):
        return {"role": role, "content": content}
    parts: list[dict[str, Any]] = []
    for part in content if isinstance(content, Sequence) else ():
        if not isinstance(part, Mapping):
            continue
        if part.get("type") == "image":
            parts.append({"type": "image_url", "image_url": {"url": part.get("image")}})
        else:
            parts.append({"type": "text", "text": str(part.get("text", ""))})
    if role == "assistant":
        return {
            "role": role,
            "content": "\n\n".join(part["text"] for part in parts if part["type"] == "text"),
        }
    return {"role": role, "content": parts}


def build_openai_request_args(request: ChatRequest) -> dict[str, Any]:
    """Return keyword arguments for ``chat.completions.create``."""
    config = request.config
    args: dict[str, Any] = {
        "model": config.model,
        "messages": [
            {"role": "system", "content": build_system_prompt(request.templates)},
            *(_openai_message(message) for message in request.messages),
        ],
        "stream": True,
        "response_format": {"type": "json_object"},
        "temperature": (
            config.temperature
            if config.temperature is not None
            else DEFAULT_LLM_TEMPERATURE
        ),
    }
    optional = {
        "top_p": config.top_p,
        "frequency_penalty": config.frequency_penalty,
        "presence_penalty": config.presence_penalty,
        "max_tokens": config.max_tokens,
    }
    args.update({key: value for key, value in optional.items() if value is not None})
    if config.top_k is not None:
        args["extra_body"] = {"top_k": config.top_k}
    return args


async def _close_quietly(completion: Any) -> None:
    closer = getattr(completion, "close", None)
    if not callable(closer):
        return
    try:
        outcome = closer()
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.debug("Failed to close completion stream", exc_info=True)


class OpenAIObjectTransport:
    """Call an OpenAI-compatible provider directly and stream JSON text."""

    def __init__(
        self,
        *,
        default_base_url: str | None = None,
        client_factory: Callable[[LLMModelConfig], Any] | None = None,
    ) -> None:
        self._default_base_url = default_base_url
        self._client_factory = client_factory or self._build_client

    def _build_client(self, config: LLMModelConfig) -> Any:
        import openai

        base_url = config.base_url or self._default_base_url
        return openai.AsyncOpenAI(
            base_url=base_url,
            api_key=config.api_key or NO_API_KEY,
            max_retries=0,
        )

    async def stream(
        self, request: ChatRequest, *, cancellation: CancellationEvent
    ) -> AsyncIterator[str]:
        import openai

        cancellation.raise_if_cancelled()
        client = self._client_factory(request.config)
        try:
            completion = await client.chat.completions.create(
                **build_openai_request_args(request)
            )
            try:
                async for chunk in completion:
                    cancellation.raise_if_cancelled()
                    for choice in getattr(chunk, "choices", None) or ():
                        delta = getattr(choice, "delta", None)
                        content = getattr(delta, "content", None)
                        if content:
                            yield content
            finally:
                await _close_quietly(completion)
        except openai.RateLimitError as exc:
            raise StreamError(str(exc), rate_limited=True, status_code=429) from exc
        except openai.APIError as exc:
            raise StreamError(
                str(exc), status_code=getattr(exc, "status_code", None)
            ) from exc


__all__ = [
    "ChatRequest",
    "HttpObjectTransport",
    "NO_API_KEY",
    "ObjectStreamTransport",
    "OpenAIObjectTransport",
    "StreamError",
    "build_openai_request_args",
    "is_rate_limit_message",
]
