"""
Mirror system client - Coda rows API.

The mirror receives a denormalized copy of selected courier fields for
humans. It is best-effort: failures raise MirrorWriteError and callers log
them without touching the local store. When Coda credentials are not
configured every write is skipped with a warning.
"""
from typing import Any

import httpx

from courier_sync.core.circuit_breaker import CircuitBreaker, get_mirror_circuit_breaker
from courier_sync.core.config import settings
from courier_sync.core.exceptions import MirrorWriteError
from courier_sync.core.logging import get_logger
from courier_sync.domain.services.external.http import JsonApiClient
from courier_sync.domain.services.time_window import format_utc_date

logger = get_logger(__name__)

# Column ids of the courier table
COURIER_COLUMNS = {
    "courier_id": "c-UXdYDV-9EW",
    "first_name": "c-rrbJOQgaBU",
    "last_name": "c-6lSCCPKhmj",
    "email": "c-I2SfTDe39D",
    "phone": "c-YHAnnuuDSO",
    "contract_type": "c-o1qSJ2ByaT",
    "vehicle_type": "c-B0NOCItX3Y",
    "is_disabled": "c-szUyRzXPbJ",
    "created_at": "c-k8okdVsMm1",
    "updated_at": "c-gUSN_OdgCV",
}
CASH_BALANCE_COLUMN = "c-gE09kgXnI1"

# Column ids of the hotspot table
HOTSPOT_NAME_COLUMN = "c-BGpDkBo8fv"
HOTSPOT_DISTANCE_COLUMN = "c-QO4GGRJMWE"


def _cells(fields: dict[str, Any]) -> list[dict[str, Any]]:
    return [{"column": column, "value": value} for column, value in fields.items()]


class CodaMirrorClient(JsonApiClient):
    """addRow / updateRow over the Coda API, plus the two domain writes built on them"""

    service_name = "mirror"

    def __init__(
        self,
        api_token: str | None = None,
        doc_id: str | None = None,
        courier_table_id: str | None = None,
        hotspot_table_id: str | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            circuit_breaker or get_mirror_circuit_breaker(),
            timeout_seconds or settings.HTTP_TIMEOUT_SECONDS,
            transport,
        )
        self._api_token = api_token if api_token is not None else settings.CODA_API_TOKEN
        self._doc_id = doc_id if doc_id is not None else settings.CODA_DOC_ID
        self.courier_table_id = (
            courier_table_id if courier_table_id is not None else settings.CODA_COURIER_TABLE_ID
        )
        self.hotspot_table_id = (
            hotspot_table_id if hotspot_table_id is not None else settings.CODA_HOTSPOT_TABLE_ID
        )

    def is_enabled(self, table_id: str) -> bool:
        return bool(self._api_token and self._doc_id and table_id)

    def _rows_url(self, table_id: str) -> str:
        return f"{settings.CODA_API_URL}/docs/{self._doc_id}/tables/{table_id}/rows"

    def _error(self, message: str, details: dict[str, Any]) -> MirrorWriteError:
        return MirrorWriteError(message, details=details)

    def _error_from_response(self, operation: str, response: httpx.Response) -> MirrorWriteError:
        return MirrorWriteError.from_response(operation, response)

    async def _send(self, method: str, url: str, operation: str, payload: dict) -> Any:
        return await self._request(
            method,
            url,
            operation,
            json=payload,
            headers={
                "Authorization": f"Bearer {self._api_token}",
                "Content-Type": "application/json",
            },
        )

    async def add_row(self, table_id: str, fields: dict[str, Any]) -> str | None:
        """Insert one row and return its row id (None when the mirror is disabled)"""
        if not self.is_enabled(table_id):
            logger.warning("Coda API credentials not set, skipping Coda integration")
            return None

        data = await self._send(
            "POST",
            self._rows_url(table_id),
            "add_row",
            {"rows": [{"cells": _cells(fields)}]},
        )
        row_ids = data.get("addedRowIds") if isinstance(data, dict) else None
        if not row_ids:
            raise MirrorWriteError(
                "add_row response has no addedRowIds",
                details={"operation": "add_row"},
            )
        return str(row_ids[0])

    async def update_row(self, table_id: str, row_id: str, fields: dict[str, Any]) -> bool:
        """Update cells of an existing row. Returns False when the mirror is disabled."""
        if not self.is_enabled(table_id):
            logger.warning("Coda API credentials not set, skipping Coda integration")
            return False

        await self._send(
            "PUT",
            f"{self._rows_url(table_id)}/{row_id}",
            "update_row",
            {"row": {"cells": _cells(fields)}},
        )
        return True

    # ── domain writes ──

    async def add_courier(self, courier: Any) -> str | None:
        """Push a courier profile; dates are sent as YYYY-MM-DD"""
        fields = {
            COURIER_COLUMNS["courier_id"]: courier.courier_id,
            COURIER_COLUMNS["first_name"]: courier.first_name,
            COURIER_COLUMNS["last_name"]: courier.last_name,
            COURIER_COLUMNS["email"]: courier.email,
            COURIER_COLUMNS["phone"]: courier.phone,
            COURIER_COLUMNS["contract_type"]: courier.contract_type,
            COURIER_COLUMNS["vehicle_type"]: courier.vehicle_type,
            COURIER_COLUMNS["is_disabled"]: courier.is_disabled,
            COURIER_COLUMNS["created_at"]: format_utc_date(courier.created_at),
            COURIER_COLUMNS["updated_at"]: format_utc_date(courier.updated_at),
        }
        logger.info("Adding courier to Coda", extra_data={"courier_id": courier.courier_id})
        return await self.add_row(self.courier_table_id, fields)

    async def update_cash_balance(self, row_id: str, amount: float | None) -> bool:
        logger.info("Updating cash balance in Coda", extra_data={"row_id": row_id})
        return await self.update_row(self.courier_table_id, row_id, {CASH_BALANCE_COLUMN: amount})

    async def update_hotspot(self, row_id: str, hotspot_name: str, distance_km: float) -> bool:
        return await self.update_row(
            self.hotspot_table_id,
            row_id,
            {HOTSPOT_NAME_COLUMN: hotspot_name, HOTSPOT_DISTANCE_COLUMN: distance_km},
        )
