"""Signed HTTP transport for the Remember The Milk REST endpoint.

Builds the signed query for a method call, performs it with a bounded
timeout, unwraps the ``rsp`` envelope, and turns failures into typed errors:

- ``TransportError``: network failure, timeout, or HTTP 5xx. Retried with
  exponential backoff for idempotent calls.
- ``ServiceError``: the service answered with ``stat: fail`` (or an
  unusable response). Never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from .exceptions import ServiceError, TransportError, record_error
from .signing import signed_query

logger = logging.getLogger(__name__)

REST_URL = "https://api.rememberthemilk.com/services/rest/"
AUTH_URL = "https://www.rememberthemilk.com/services/auth/"
API_VERSION = "2"

# Service error codes this client reacts to
INVALID_SIGNATURE = 96
MISSING_SIGNATURE = 97
LOGIN_FAILED = 98
INVALID_FROB = 101
SERVICE_UNAVAILABLE = 105

MALFORMED_RESPONSE = -1


class RtmTransport:
    """Performs signed calls against the REST endpoint.

    One shared ``httpx.AsyncClient`` is used for connection pooling. It is
    created on first use unless one is supplied (tests pass a client built
    on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        rest_url: str = REST_URL,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            api_key: Application API key.
            api_secret: Shared secret used for signing.
            rest_url: REST endpoint URL.
            timeout: Per-request timeout in seconds.
            max_retries: Extra attempts for idempotent calls on TransportError.
            retry_backoff: Initial backoff in seconds, doubled per retry.
            client: Optional preconfigured httpx client.
        """
        self.api_key = api_key
        self._api_secret = api_secret
        self.rest_url = rest_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._client = client
        self._owns_client = client is None

    @property
    def api_secret(self) -> str:
        return self._api_secret

    def base_params(self, method: str) -> dict[str, str]:
        """Parameters every call carries."""
        return {
            "method": method,
            "api_key": self.api_key,
            "format": "json",
            "v": API_VERSION,
        }

    def build_query(self, method: str, params: Mapping[str, str] | None = None) -> dict[str, str]:
        """Build the full signed query for a method call."""
        query = self.base_params(method)
        if params:
            query.update(params)
        return signed_query(self._api_secret, query)

    async def call(
        self,
        method: str,
        params: Mapping[str, str] | None = None,
        *,
        idempotent: bool = True,
    ) -> dict[str, Any]:
        """Call an API method and return the ``rsp`` payload.

        Args:
            method: API method name, e.g. ``rtm.lists.getList``.
            params: Method parameters (``auth_token`` included when needed).
            idempotent: Whether the call may be retried after a TransportError.

        Returns:
            The decoded ``rsp`` object of a successful response.

        Raises:
            TransportError: Network failure or timeout after all attempts.
            ServiceError: The service rejected the call.
        """
        query = self.build_query(method, params)
        attempts = 1 + (self.max_retries if idempotent else 0)

        for attempt in range(1, attempts + 1):
            try:
                return await self._request_once(method, query)
            except TransportError as e:
                record_error(e)
                if attempt >= attempts:
                    e.attempts = attempt
                    e.context["attempts"] = attempt
                    raise
                delay = self.retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    method,
                    attempt,
                    attempts,
                    delay,
                    e.message,
                )
                await asyncio.sleep(delay)

        # Should not reach here, but satisfy type checker
        raise RuntimeError("Unexpected state in RtmTransport.call")

    async def _request_once(self, method: str, query: dict[str, str]) -> dict[str, Any]:
        """Perform one HTTP request and unwrap the envelope."""
        client = self._get_client()
        logger.debug("Calling %s", method)

        try:
            response = await client.get(self.rest_url, params=query, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"{method} timed out after {self.timeout:.1f}s",
                method=method,
                timeout=self.timeout,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"{method} failed: {e}",
                method=method,
                cause=e,
            ) from e

        if response.status_code >= 500:
            raise TransportError(
                f"{method} failed with HTTP {response.status_code}",
                method=method,
                context={"status": response.status_code},
            )
        if response.status_code != 200:
            raise ServiceError(
                response.status_code,
                f"Unexpected HTTP status {response.status_code}",
                method=method,
            )

        return self._unwrap(method, response)

    def _unwrap(self, method: str, response: httpx.Response) -> dict[str, Any]:
        """Decode the JSON body and check the ``stat`` field."""
        try:
            body = response.json()
        except ValueError as e:
            raise ServiceError(
                MALFORMED_RESPONSE, "Malformed response from service", method=method, cause=e
            ) from e

        rsp = body.get("rsp") if isinstance(body, dict) else None
        if not isinstance(rsp, dict):
            raise ServiceError(MALFORMED_RESPONSE, "Response has no rsp envelope", method=method)

        if rsp.get("stat") == "ok":
            return rsp

        err = rsp.get("err")
        if not isinstance(err, dict):
            err = {}
        try:
            code = int(err.get("code", MALFORMED_RESPONSE))
        except (TypeError, ValueError):
            code = MALFORMED_RESPONSE
        message = err.get("msg") or "Unknown service error"
        logger.info("%s rejected by service: %s (code %d)", method, message, code)
        raise ServiceError(code, message, method=method)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
