"""
Fleet API client - couriers, metrics, earnings, cash balances and live tracking.

All time windows are epoch seconds; every call uses bearer-token auth.
"""
from typing import Any

import httpx

from courier_sync.core.circuit_breaker import CircuitBreaker, get_fleet_circuit_breaker
from courier_sync.core.config import settings
from courier_sync.core.logging import get_logger
from courier_sync.domain.services.external.http import JsonApiClient

logger = get_logger(__name__)


class FleetApiClient(JsonApiClient):
    """Read-only access to the fleet management system of one company"""

    service_name = "fleet"

    def __init__(
        self,
        company_id: str | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            circuit_breaker or get_fleet_circuit_breaker(),
            timeout_seconds or settings.HTTP_TIMEOUT_SECONDS,
            transport,
        )
        self.company_id = company_id if company_id is not None else settings.FLEET_COMPANY_ID
        self._couriers_url = (
            f"{settings.FLEET_MANAGEMENT_URL}/companies/{self.company_id}/couriers"
        )
        self._metrics_url = f"{settings.FLEET_METRICS_URL}/companies/{self.company_id}/metrics/v2"
        self._cash_balances_url = (
            f"{settings.FLEET_METRICS_URL}/companies/{self.company_id}/cash-balances"
        )
        self._earnings_url = f"{settings.FLEET_EARNINGS_URL}/companies/{self.company_id}/earnings"
        self._tracking_url = f"{settings.FLEET_TRACKING_URL}/companies/{self.company_id}"

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {
            "authorization": f"Bearer {token}",
            "accept": "application/json",
        }

    async def list_couriers(self, token: str) -> list[dict[str, Any]]:
        logger.info("Fetching courier list")
        return await self._get_list(
            self._couriers_url, "list_couriers", headers=self._auth_headers(token)
        )

    async def get_courier_detail(self, courier_id: int, token: str) -> dict[str, Any]:
        logger.info("Fetching courier detail", extra_data={"courier_id": courier_id})
        data = await self._request(
            "GET",
            f"{self._couriers_url}/{courier_id}",
            "get_courier_detail",
            headers=self._auth_headers(token),
        )
        return data if isinstance(data, dict) else {}

    async def get_metrics(self, from_ts: int, to_ts: int, token: str) -> list[dict[str, Any]]:
        logger.info(
            "Fetching courier metrics",
            extra_data={"from": from_ts, "to": to_ts},
        )
        return await self._get_list(
            self._metrics_url,
            "get_metrics",
            params={"from": from_ts, "to": to_ts},
            headers=self._auth_headers(token),
        )

    async def get_earnings(self, from_ts: int, to_ts: int, token: str) -> list[dict[str, Any]]:
        logger.info(
            "Fetching courier earnings",
            extra_data={"from": from_ts, "to": to_ts},
        )
        return await self._get_list(
            self._earnings_url,
            "get_earnings",
            params={"from": from_ts, "to": to_ts},
            headers=self._auth_headers(token),
        )

    async def get_cash_balances(self, token: str) -> list[dict[str, Any]]:
        logger.info("Fetching cash balances")
        return await self._get_list(
            self._cash_balances_url, "get_cash_balances", headers=self._auth_headers(token)
        )

    async def get_delivery_statuses(self, updated_after: int, token: str) -> list[dict[str, Any]]:
        return await self._get_list(
            f"{self._tracking_url}/delivery-statuses",
            "get_delivery_statuses",
            params={"updatedAfter": updated_after},
            headers=self._auth_headers(token),
        )

    async def get_locations(self, updated_after: int, token: str) -> list[dict[str, Any]]:
        return await self._get_list(
            f"{self._tracking_url}/locations",
            "get_locations",
            params={"updatedAfter": updated_after},
            headers=self._auth_headers(token),
        )
