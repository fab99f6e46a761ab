# Copyright (c) Syntropy Systems
"""Shared httpx plumbing for the remote collaborator clients."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar, TypeVar, cast, overload

import httpx
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from schemasmith.errors import ServiceClientError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from schemasmith.models.base import JSONValue

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


def _error_detail(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if isinstance(value, str) and value:
                return value
    return response.text or response.reason_phrase


class ServiceClient:
    """Base class for a blocking JSON-over-HTTP collaborator client."""

    error_class: ClassVar[type[ServiceClientError]] = ServiceClientError
    service_name: ClassVar[str] = "service"

    base_url: str
    timeout: float
    _client: httpx.Client

    def __init__(
        self,
        base_url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL every request path is appended to
            headers: Headers sent with every request
            timeout: Request timeout in seconds
            transport: Optional transport, e.g. ``httpx.MockTransport`` in tests

        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(
            headers=dict(headers or {}),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        self.close()

    @overload
    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
        *,
        response_model: type[ResponseModel],
    ) -> ResponseModel:
        ...

    @overload
    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
        *,
        response_model: None = None,
    ) -> JSONValue:
        ...

    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
        *,
        response_model: type[ResponseModel] | None = None,
    ) -> ResponseModel | JSONValue:
        """Make an HTTP request and decode the JSON body."""
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self._client.request(
                method=method,
                url=url,
                json=json,
                params=cast("dict[str, str]", params) if params else None,
            )
            _ = response.raise_for_status()
            data = response.json() if response.content else None
            if response_model is None:
                return cast("JSONValue", data)
            return response_model.model_validate(data)
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            msg = f"{self.service_name} error ({e.response.status_code}): {detail}"
            raise self.error_class(msg, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            msg = f"Connection error ({self.service_name}): {e}"
            raise self.error_class(msg) from e
        except ValidationError as e:
            msg = f"Unexpected {self.service_name} response for {method} {path}: {e}"
            raise self.error_class(msg) from e
        except ValueError as e:
            msg = f"Invalid JSON from {self.service_name} for {method} {path}"
            raise self.error_class(msg) from e
