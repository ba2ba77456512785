"""Client for agents served over HTTP event streams."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from agentsync.protocol.codec import CONTENT_TYPES, StreamFormat, decode_stream
from agentsync.protocol.events import BaseEvent, MessageRecord

from ..errors import AdapterError
from ..message import thaw_json
from .base import AgentAdapter, AgentRequest

LOGGER = logging.getLogger(__name__)


def build_run_input(request: AgentRequest) -> dict[str, Any]:
    """Serialize a request into the JSON body posted to a remote agent."""

    body: dict[str, Any] = {
        "threadId": request.thread_id,
        "runId": request.run_id,
        "messages": [
            MessageRecord.from_message(message).model_dump(mode="json", by_alias=True, exclude_none=True)
            for message in request.messages
        ],
        "context": [
            {"description": item.description, "value": thaw_json(item.value)}
            for item in request.context
        ],
        "tools": [
            {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.json_schema(),
            }
            for tool in request.tools
        ],
        "state": thaw_json(request.state),
    }
    if request.resume is not None:
        body["resume"] = {
            "checkpointId": request.resume.checkpoint_id,
            "step": request.resume.step,
            "payload": thaw_json(request.resume.payload),
        }
    return body


class RemoteAgentAdapter(AgentAdapter):
    """POST the run input to ``url`` and decode the streamed response."""

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = 60.0,
        stream_format: StreamFormat = "sse",
    ) -> None:
        if not url:
            msg = "remote agent url must not be empty"
            raise ValueError(msg)
        self._url = url
        self._client = client
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._format = stream_format

    async def stream(self, request: AgentRequest) -> AsyncIterator[BaseEvent]:
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        owns_client = self._client is None
        headers = {"Accept": CONTENT_TYPES[self._format], **self._headers}
        LOGGER.info("dispatching run %s to remote agent %s", request.run_id, self._url)
        try:
            async with client.stream(
                "POST", self._url, json=build_run_input(request), headers=headers
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    msg = f"remote agent returned HTTP {response.status_code}"
                    raise AdapterError(msg)
                async for event in decode_stream(response.aiter_text(), self._format):
                    yield event
        except httpx.HTTPError as exc:
            msg = f"remote agent request failed: {exc}"
            raise AdapterError(msg) from exc
        finally:
            if owns_client:
                await client.aclose()


__all__ = ["RemoteAgentAdapter", "build_run_input"]
