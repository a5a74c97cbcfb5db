"""
Shared httpx plumbing for the external API clients.

Each call opens its own AsyncClient with a bounded timeout (Celery tasks
run on short-lived event loops, so a client is never kept across calls)
and runs through the service's circuit breaker.
"""
from typing import Any

import httpx

from courier_sync.core.circuit_breaker import CircuitBreaker
from courier_sync.core.exceptions import ExternalServiceException, UpstreamFetchError
from courier_sync.core.logging import get_logger

logger = get_logger(__name__)


class JsonApiClient:
    """Base class: JSON request with timeout, error translation and circuit breaker"""

    service_name = "upstream"

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._timeout = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _error(self, message: str, details: dict[str, Any]) -> ExternalServiceException:
        return UpstreamFetchError(self.service_name, message, details=details)

    def _error_from_response(self, operation: str, response: httpx.Response) -> ExternalServiceException:
        return UpstreamFetchError.from_response(self.service_name, operation, response)

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body ({} for an empty body).

        Raises the client's error type (UpstreamFetchError by default) on
        timeout, network error, non-2xx or a body that is not JSON.
        """

        async def _call() -> Any:
            try:
                async with self._client() as client:
                    response = await client.request(method, url, **kwargs)
            except httpx.TimeoutException as exc:
                raise self._error(
                    f"{operation} timed out after {self._timeout}s",
                    {"operation": operation, "timeout": True},
                ) from exc
            except httpx.RequestError as exc:
                raise self._error(
                    f"{operation} network error: {exc}",
                    {"operation": operation, "network_error": True},
                ) from exc

            if not response.is_success:
                raise self._error_from_response(operation, response)
            if not response.content:
                return {}

            try:
                return response.json()
            except ValueError as exc:
                raise self._error(
                    f"{operation} returned a non-JSON body",
                    {"operation": operation, "status_code": response.status_code},
                ) from exc

        return await self._circuit_breaker.execute(_call)

    async def _get_list(self, url: str, operation: str, **kwargs: Any) -> list[dict[str, Any]]:
        data = await self._request("GET", url, operation, **kwargs)
        if not isinstance(data, list):
            raise UpstreamFetchError(
                self.service_name,
                f"{operation} returned {type(data).__name__}, expected a list",
                details={"operation": operation},
            )
        return data
