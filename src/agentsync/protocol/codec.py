"""Serialization of protocol events over ordered text streams.

Two framings are supported:

``sse``
    Server-Sent-Events blocks (``data: <json>`` lines terminated by a blank
    line). Comment lines starting with ``:`` are treated as keep-alives and the
    ``event``/``id``/``retry`` fields are ignored.
``jsonl``
    One JSON encoded event per line.

Decoding is incremental: :class:`EventDecoder` accepts arbitrary text chunks
and only yields events once their framing is complete. Any malformed payload
raises :class:`~agentsync.core.errors.ProtocolError`; nothing is dropped
silently.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Mapping
import codecs
import json
import logging
from typing import Any, Literal

from pydantic import ValidationError

from agentsync.core.errors import ProtocolError

from .events import EVENT_ADAPTER, BaseEvent, Event, event_to_dict

LOGGER = logging.getLogger(__name__)

StreamFormat = Literal["sse", "jsonl"]

CONTENT_TYPES: dict[str, str] = {
    "sse": "text/event-stream",
    "jsonl": "application/x-ndjson",
}


def _check_format(fmt: str) -> None:
    if fmt not in CONTENT_TYPES:
        msg = f"unsupported stream format '{fmt}'"
        raise ValueError(msg)


def encode_event(event: BaseEvent, fmt: StreamFormat = "sse") -> str:
    """Return the framed wire representation of a single event."""

    _check_format(fmt)
    payload = json.dumps(event_to_dict(event), ensure_ascii=False, separators=(",", ":"))
    if fmt == "sse":
        return f"data: {payload}\n\n"
    return f"{payload}\n"


def decode_event(payload: str | Mapping[str, Any]) -> Event:
    """Validate one JSON payload (text or decoded mapping) into an event."""

    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            msg = f"event payload is not valid JSON: {exc.msg}"
            raise ProtocolError(msg) from exc
    else:
        data = payload

    if not isinstance(data, Mapping):
        msg = "event payload must be a JSON object"
        raise ProtocolError(msg)
    if "type" not in data:
        msg = "event payload is missing the 'type' discriminator"
        raise ProtocolError(msg)

    try:
        return EVENT_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        msg = f"invalid {data.get('type')!s} event: {exc.errors()[0]['msg']}"
        raise ProtocolError(msg) from exc


class EventEncoder:
    """Frame events for a given transport format."""

    def __init__(self, fmt: StreamFormat = "sse") -> None:
        _check_format(fmt)
        self._format = fmt

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self._format]

    def encode(self, event: BaseEvent) -> str:
        return encode_event(event, self._format)

    def encode_all(self, events: Iterable[BaseEvent]) -> str:
        return "".join(self.encode(event) for event in events)


class EventDecoder:
    """Incrementally decode framed text into events."""

    def __init__(self, fmt: StreamFormat = "sse") -> None:
        _check_format(fmt)
        self._format = fmt
        self._pending = ""
        self._data_lines: list[str] = []
        self._closed = False
        self._bytes = codecs.getincrementaldecoder("utf-8")()

    def feed(self, chunk: str | bytes) -> list[Event]:
        """Consume a chunk of text and return every event it completed."""

        if self._closed:
            msg = "decoder is closed"
            raise ProtocolError(msg)
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._bytes.decode(bytes(chunk))

        self._pending += chunk.replace("\r\n", "\n").replace("\r", "\n")
        events: list[Event] = []
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            event = self._consume_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[Event]:
        """Flush buffered input; incomplete trailing frames are protocol errors."""

        if self._closed:
            return []
        events: list[Event] = []
        if self._pending:
            trailing, self._pending = self._pending, ""
            event = self._consume_line(trailing)
            if event is not None:
                events.append(event)
        if self._format == "sse" and self._data_lines:
            event = self._dispatch_block()
            events.append(event)
        self._closed = True
        return events

    def _consume_line(self, line: str) -> Event | None:
        if self._format == "jsonl":
            if not line.strip():
                return None
            return decode_event(line)

        if line == "":
            if not self._data_lines:
                return None
            return self._dispatch_block()
        if line.startswith(":"):
            LOGGER.debug("skipping SSE comment %r", line)
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data_lines.append(value)
        elif field not in {"event", "id", "retry"}:
            LOGGER.debug("ignoring unknown SSE field %r", field)
        return None

    def _dispatch_block(self) -> Event:
        payload = "\n".join(self._data_lines)
        self._data_lines = []
        return decode_event(payload)


async def decode_stream(
    chunks: AsyncIterator[str | bytes], fmt: StreamFormat = "sse"
) -> AsyncIterator[Event]:
    """Turn an async iterator of text chunks into an async iterator of events."""

    decoder = EventDecoder(fmt)
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.close():
        yield event


__all__ = [
    "CONTENT_TYPES",
    "EventDecoder",
    "EventEncoder",
    "StreamFormat",
    "decode_event",
    "decode_stream",
    "encode_event",
]
