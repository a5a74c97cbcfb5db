"""
OAuth2 refresh-token exchange against the fleet authentication server.
"""
from dataclasses import dataclass

import httpx

from courier_sync.core.circuit_breaker import CircuitBreaker, get_auth_circuit_breaker
from courier_sync.core.config import settings
from courier_sync.core.exceptions import UpstreamFetchError
from courier_sync.domain.services.external.http import JsonApiClient


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str
    expires_in: int  # seconds, relative to the exchange


class AuthApiClient(JsonApiClient):

    service_name = "auth"

    def __init__(
        self,
        auth_url: str | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            circuit_breaker or get_auth_circuit_breaker(),
            timeout_seconds or settings.HTTP_TIMEOUT_SECONDS,
            transport,
        )
        self._auth_url = auth_url or settings.FLEET_AUTH_URL

    async def exchange_refresh_token(self, refresh_token: str) -> TokenGrant:
        data = await self._request(
            "POST",
            self._auth_url,
            "exchange_refresh_token",
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        try:
            return TokenGrant(
                access_token=data["access_token"],
                # some servers do not rotate refresh tokens
                refresh_token=data.get("refresh_token") or refresh_token,
                expires_in=int(data["expires_in"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamFetchError(
                self.service_name,
                "token response is missing access_token/expires_in",
                details={"operation": "exchange_refresh_token"},
            ) from exc
