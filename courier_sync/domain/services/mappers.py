"""
Fleet payload -> local column mapping.

Malformed values never fail a batch: a MappingError is logged and the
field falls back to None (dates) or to "now" (instants that must exist).
"""
from typing import Any

from courier_sync.core.exceptions import MappingError
from courier_sync.core.logging import get_logger
from courier_sync.db.models.courier_stats import METRIC_FIELDS
from courier_sync.domain.services.time_window import (
    parse_instant_ms,
    parse_utc_calendar_date_ms,
)

logger = get_logger(__name__)


def _instant_or_default(value: Any, field: str, default_ms: int, courier_id: Any) -> int:
    if value is None or value == "":
        return default_ms
    try:
        return parse_instant_ms(value, field)
    except MappingError as exc:
        logger.warning(
            "Invalid timestamp, using current time instead",
            extra_data={"courier_id": courier_id, **exc.details},
        )
        return default_ms


def _calendar_date_or_none(value: Any, field: str, courier_id: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return parse_utc_calendar_date_ms(value, field)
    except MappingError as exc:
        logger.warning(
            "Invalid calendar date, storing null",
            extra_data={"courier_id": courier_id, **exc.details},
        )
        return None


def map_courier(
    payload: dict[str, Any],
    now_ms: int,
    created_default_ms: int | None = None,
) -> dict[str, Any]:
    """
    Courier roster entry -> Courier column values (without mirror fields).

    A missing or invalid createdAt falls back to created_default_ms (the
    stored value for a known courier), else to now.
    """
    if created_default_ms is None:
        created_default_ms = now_ms
    courier_id = payload.get("id")
    return {
        "courier_id": courier_id,
        "first_name": payload.get("firstName"),
        "last_name": payload.get("lastName"),
        "name": payload.get("name"),
        "email": payload.get("email"),
        "phone": payload.get("phone"),
        "contract_type": payload.get("contractType"),
        "vehicle_type": payload.get("vehicleType"),
        "allow_shift_reservation": payload.get("allowShiftReservation"),
        "capabilities": payload.get("capabilities"),
        "contract_valid_from": _calendar_date_or_none(
            payload.get("contractValidFrom"), "contractValidFrom", courier_id
        ),
        "is_disabled": bool(payload.get("isDisabled", False)),
        "created_at": _instant_or_default(
            payload.get("createdAt"), "createdAt", created_default_ms, courier_id
        ),
        "updated_at": _instant_or_default(payload.get("updatedAt"), "updatedAt", now_ms, courier_id),
    }


def map_metrics(entry: dict[str, Any], now_ms: int) -> dict[str, dict[str, Any]]:
    """
    Extract every ``{value, updatedAt}`` field of a metrics entry.

    Returns column -> {"value", "updated_at"} for known metrics only.
    Fields absent from the entry are absent from the result.
    """
    courier_id = entry.get("courierId")
    mapped: dict[str, dict[str, Any]] = {}
    for key, value in entry.items():
        if not (isinstance(value, dict) and "value" in value and "updatedAt" in value):
            continue
        column = METRIC_FIELDS.get(key)
        if column is None:
            logger.debug(
                "Ignoring unknown metric",
                extra_data={"courier_id": courier_id, "metric": key},
            )
            continue
        mapped[column] = {
            "value": value["value"],
            "updated_at": _instant_or_default(value["updatedAt"], key, now_ms, courier_id),
        }
    return mapped


def map_earnings(
    entry: dict[str, Any],
    default_company_id: str,
    now_ms: int,
) -> list[dict[str, Any]]:
    """Aggregated transactions of one earnings entry -> CourierEarning values"""
    company_id = entry.get("companyId") or default_company_id
    return [
        {
            "amount": transaction.get("amount"),
            "currency": transaction.get("currency"),
            "transaction_type": transaction.get("transactionType"),
            "company_id": company_id,
            "recorded_at": now_ms,
        }
        for transaction in entry.get("aggregatedTransactions") or []
    ]


def map_cash_balance(
    entry: dict[str, Any],
    default_company_id: str,
    default_currency: str,
    now_ms: int,
) -> dict[str, Any]:
    """Cash balance entry -> cash_balance_* column values"""
    return {
        "cash_balance_amount": entry.get("amount"),
        "cash_balance_currency": entry.get("currencyCode") or default_currency,
        "cash_balance_company_id": entry.get("companyId") or default_company_id,
        "cash_balance_updated_at": _instant_or_default(
            entry.get("updatedAt"), "updatedAt", now_ms, entry.get("courierId")
        ),
    }
