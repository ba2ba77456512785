"""OpenAI chat-completions adapter producing protocol events."""

from __future__ import annotations

import inspect
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from agentsync.protocol.events import (
    BaseEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)

from ..errors import AdapterError
from ..message import generate_id
from .base import AgentAdapter, AgentRequest
from .stream import BaseStreamIterator, StreamNormalizer
from .toolbridge import tool_specs_to_openai
from .utils import messages_to_openai, render_context


def create_openai_stream(client: Any, payload: Mapping[str, Any]) -> Any:
    """Create a streaming iterator using the provided OpenAI client."""

    return client.chat.completions.create(**payload)


class OpenAIAdapter(AgentAdapter):
    """Stream a chat completion and translate it into text and tool-call events."""

    def __init__(
        self,
        client: Any,
        *,
        default_model: str | None = None,
        default_params: Mapping[str, Any] | None = None,
    ) -> None:
        self._client = client
        self._default_model = default_model
        self._default_params = dict(default_params or {})

        if "model" in self._default_params and self._default_model is None:
            model_value = self._default_params.pop("model")
            self._default_model = str(model_value)

        reserved = {"messages", "stream", "tools"}
        conflict = reserved.intersection(self._default_params)
        if conflict:
            joined = ", ".join(sorted(conflict))
            msg = f"default parameters cannot include reserved keys: {joined}"
            raise ValueError(msg)

    def stream(self, request: AgentRequest) -> OpenAIStreamIterator:
        if not request.messages:
            msg = "at least one message is required"
            raise AdapterError(msg)

        payload = self._build_payload(request)
        try:
            stream = create_openai_stream(self._client, payload)
        except Exception as exc:
            msg = "OpenAI client call failed"
            raise AdapterError(msg) from exc

        return OpenAIStreamIterator(stream, message_id=generate_id("msg"))

    def _build_payload(self, request: AgentRequest) -> dict[str, Any]:
        if not self._default_model:
            msg = "a model name must be provided"
            raise AdapterError(msg)

        messages = messages_to_openai(request.messages)
        context_prompt = render_context(request.context)
        if context_prompt is not None:
            messages.insert(0, {"role": "system", "content": context_prompt})

        payload: dict[str, Any] = {"model": self._default_model, **self._default_params}
        payload.setdefault("temperature", 0)
        payload["messages"] = messages
        payload["stream"] = True
        if request.tools:
            payload["tools"] = tool_specs_to_openai(request.tools)
        return payload


class OpenAIStreamIterator(BaseStreamIterator):
    """Stream iterator that converts OpenAI chunks into protocol events."""

    def __init__(
        self,
        stream: Any,
        *,
        message_id: str,
        normalizer: StreamNormalizer | None = None,
    ) -> None:
        self._stream = stream
        self._iterator: Any = None
        self._stream_closed = False
        super().__init__(normalizer or OpenAIStreamNormalizer(message_id))

    async def _get_next_chunk(self) -> dict[str, Any]:
        if self._iterator is None:
            if inspect.isawaitable(self._stream):
                try:
                    self._stream = await self._stream
                except Exception as exc:
                    msg = "OpenAI client call failed"
                    raise AdapterError(msg) from exc
            self._iterator = self._coerce_async_iterator(self._stream)

        try:
            raw_chunk = await self._iterator.__anext__()
        except StopAsyncIteration:
            raise
        except AdapterError:
            raise
        except Exception as exc:
            msg = "OpenAI stream raised an unexpected error"
            raise AdapterError(msg) from exc

        return self._coerce_mapping(raw_chunk)

    async def _on_close(self) -> None:
        if self._stream_closed or inspect.isawaitable(self._stream):
            return
        self._stream_closed = True

        for closer_name in ("aclose", "close"):
            closer = getattr(self._stream, closer_name, None)
            if closer is None:
                continue
            result = closer()
            if inspect.isawaitable(result):
                await result
            return

    def _coerce_async_iterator(self, stream: Any) -> Any:
        iterator_factory = getattr(stream, "__aiter__", None)
        if iterator_factory is None or not callable(iterator_factory):
            msg = "OpenAI stream must support async iteration"
            raise AdapterError(msg)
        iterator = iterator_factory()
        if not hasattr(iterator, "__anext__"):
            msg = "OpenAI stream iterator must define '__anext__'"
            raise AdapterError(msg)
        return iterator

    def _coerce_mapping(self, chunk: Any) -> dict[str, Any]:
        if isinstance(chunk, Mapping):
            return dict(chunk)

        if hasattr(chunk, "model_dump"):
            mapping = chunk.model_dump()
            if isinstance(mapping, Mapping):
                return dict(mapping)

        msg = "OpenAI stream chunk must be a mapping"
        raise AdapterError(msg)


@dataclass
class _ToolCallState:
    """Track incremental metadata for a streaming tool call."""

    call_id: str | None = None
    name: str | None = None
    started: bool = False
    ended: bool = False

    def update_from_payload(self, payload: Mapping[str, Any], *, index: int) -> None:
        call_id = payload.get("id")
        if call_id is not None:
            if not isinstance(call_id, str) or not call_id:
                msg = f"tool call at index {index} is missing a valid id"
                raise AdapterError(msg)
            if self.call_id is not None and self.call_id != call_id:
                msg = f"tool call at index {index} changed id mid-stream"
                raise AdapterError(msg)
            self.call_id = call_id

        call_type = payload.get("type")
        if call_type is not None and call_type != "function":
            msg = f"tool call at index {index} must have type 'function'"
            raise AdapterError(msg)

        function_payload = payload.get("function")
        if function_payload is not None and not isinstance(function_payload, Mapping):
            msg = f"tool call at index {index} must include a mapping 'function' payload"
            raise AdapterError(msg)

        if isinstance(function_payload, Mapping):
            name_value = function_payload.get("name")
            if name_value:
                if not isinstance(name_value, str):
                    msg = f"tool call at index {index} is missing a valid function name"
                    raise AdapterError(msg)
                self.name = name_value


class OpenAIStreamNormalizer(StreamNormalizer):
    """Normalize OpenAI streaming chunks into text and tool-call events."""

    def __init__(self, message_id: str) -> None:
        self._message_id = message_id
        self._text_open = False
        self._text_seen = False
        self._tool_states: dict[int, _ToolCallState] = {}

    async def normalize_chunk(self, chunk: Mapping[str, Any]) -> list[BaseEvent]:
        choice = self._extract_choice(chunk)
        if choice is None:
            return []

        events: list[BaseEvent] = []
        delta = choice.get("delta") or {}
        if not isinstance(delta, Mapping):
            msg = "choices[0].delta must be a mapping"
            raise AdapterError(msg)

        content = delta.get("content")
        if content is not None:
            if not isinstance(content, str):
                msg = "OpenAI delta content fragments must be strings"
                raise AdapterError(msg)
            if content:
                if not self._text_open:
                    if self._text_seen:
                        msg = "OpenAI stream resumed text after a tool call"
                        raise AdapterError(msg)
                    events.append(TextMessageStartEvent(message_id=self._message_id))
                    self._text_open = True
                    self._text_seen = True
                events.append(TextMessageContentEvent(message_id=self._message_id, delta=content))

        tool_calls = delta.get("tool_calls")
        if tool_calls is not None:
            events.extend(self._normalize_tool_calls(tool_calls))

        finish_reason = choice.get("finish_reason")
        if finish_reason is not None:
            if not isinstance(finish_reason, str):
                msg = "OpenAI finish_reason must be a string when present"
                raise AdapterError(msg)
            events.extend(self._close_all())
        return events

    async def finish(self) -> list[BaseEvent]:
        if self._text_open or any(s.started and not s.ended for s in self._tool_states.values()):
            msg = "OpenAI stream ended without a finish reason"
            raise AdapterError(msg)
        return []

    def _normalize_tool_calls(self, payload: Any) -> list[BaseEvent]:
        if not isinstance(payload, Sequence):
            msg = "OpenAI delta tool_calls payload must be a sequence"
            raise AdapterError(msg)

        events: list[BaseEvent] = []
        for position, item in enumerate(payload):
            if not isinstance(item, Mapping):
                msg = f"choices[0].delta.tool_calls[{position}] must be a mapping"
                raise AdapterError(msg)

            raw_index = item.get("index")
            if not isinstance(raw_index, int):
                msg = f"tool call delta missing integer index at position {position}"
                raise AdapterError(msg)

            state = self._tool_states.setdefault(raw_index, _ToolCallState())
            state.update_from_payload(item, index=raw_index)

            if not state.started:
                if state.call_id is None or state.name is None:
                    msg = f"tool call at index {raw_index} streamed arguments before its id and name"
                    raise AdapterError(msg)
                events.extend(self._close_text())
                events.append(
                    ToolCallStartEvent(
                        tool_call_id=state.call_id,
                        tool_name=state.name,
                        parent_message_id=self._message_id,
                    )
                )
                state.started = True

            function_payload = item.get("function") or {}
            fragment = function_payload.get("arguments")
            if fragment is not None and not isinstance(fragment, str):
                msg = f"tool call at index {raw_index} arguments must be a string fragment"
                raise AdapterError(msg)
            if fragment:
                events.append(ToolCallArgsEvent(tool_call_id=state.call_id, delta=fragment))

        return events

    def _close_text(self) -> list[BaseEvent]:
        if not self._text_open:
            return []
        self._text_open = False
        return [TextMessageEndEvent(message_id=self._message_id)]

    def _close_all(self) -> list[BaseEvent]:
        events = self._close_text()
        for index in sorted(self._tool_states):
            state = self._tool_states[index]
            if state.started and not state.ended:
                state.ended = True
                events.append(ToolCallEndEvent(tool_call_id=state.call_id))
        return events

    def _extract_choice(self, chunk: Mapping[str, Any]) -> Mapping[str, Any] | None:
        choices = chunk.get("choices")
        if choices is None:
            return None
        if not isinstance(choices, Sequence):
            msg = "OpenAI stream chunk choices must be a sequence"
            raise AdapterError(msg)
        if not choices:
            return None
        choice = choices[0]
        if not isinstance(choice, Mapping):
            msg = "choices[0] must be a mapping"
            raise AdapterError(msg)
        return choice


__all__ = [
    "OpenAIAdapter",
    "OpenAIStreamIterator",
    "OpenAIStreamNormalizer",
    "create_openai_stream",
]
