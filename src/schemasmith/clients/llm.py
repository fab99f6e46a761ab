# Copyright (c) Syntropy Systems
"""LLM chat completion client and JSON extraction from model replies."""
from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

from pydantic import Field

from schemasmith.clients.base import ServiceClient
from schemasmith.errors import LLMError
from schemasmith.models.base import ApiModel

if TYPE_CHECKING:
    import httpx

    from schemasmith.models.base import JSONValue

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.apify.actor/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class _Message(ApiModel):
    content: str | None = None


class _Choice(ApiModel):
    message: _Message


class _Completion(ApiModel):
    choices: list[_Choice] = Field(default_factory=list)


class ChatClient(ServiceClient):
    """Client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    error_class = LLMError
    service_name = "LLM"

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 300.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Bearer token for the endpoint
            base_url: API base URL
            model: Model name sent with every request
            timeout: Request timeout in seconds
            transport: Optional httpx transport

        """
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )
        self.model = model

    def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send one user prompt and return the assistant text.

        Raises:
            LLMError: On transport errors or a reply without message content.

        """
        body: dict[str, object] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        result = self._request(
            "POST",
            "/chat/completions",
            json=body,
            response_model=_Completion,
        )
        if not result.choices or not result.choices[0].message.content:
            msg = "Invalid response structure from chat completion endpoint"
            raise LLMError(msg)
        content = result.choices[0].message.content
        logger.debug("Chat completion returned %d characters", len(content))
        return content


def _balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span of ``text``, ignoring braces in strings."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def extract_json(text: str) -> JSONValue:
    """Extract a JSON document from a model reply.

    Tries, in order: the first fenced code block, the whole reply, and the
    first balanced object in the reply.

    Raises:
        ValueError: If no candidate parses as JSON.

    """
    candidates: list[str] = []
    match = _FENCED_JSON.search(text)
    if match:
        candidates.append(match.group(1))
    candidates.append(text.strip())
    for source in list(candidates):
        trimmed = _balanced_object(source)
        if trimmed is not None and trimmed not in candidates:
            candidates.append(trimmed)

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
    msg = f"No JSON document found in model reply: {last_error}"
    raise ValueError(msg)
