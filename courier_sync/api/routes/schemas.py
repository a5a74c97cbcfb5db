"""
Response and request schemas shared by the routes
"""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CourierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    courier_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    contract_type: Optional[str] = None
    vehicle_type: Optional[str] = None
    allow_shift_reservation: Optional[bool] = None
    capabilities: Any = None
    contract_valid_from: Optional[int] = None
    is_disabled: bool
    team: Optional[str] = None
    created_at: int
    updated_at: int
    mirror_row_id: Optional[str] = None
    mirror_last_synced: Optional[int] = None


class MetricValue(BaseModel):
    value: Any = None
    updated_at: int


class EarningResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount: Optional[float] = None
    currency: Optional[str] = None
    transaction_type: Optional[str] = None
    company_id: Optional[str] = None
    recorded_at: int


class CashBalanceResponse(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    company_id: Optional[str] = None
    updated_at: int


class CourierStatsResponse(BaseModel):
    """One daily bucket"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    courier_id: int
    date: int
    latest_update: int
    collection_date: int
    tar: Optional[MetricValue] = None
    tcr: Optional[MetricValue] = None
    dph: Optional[MetricValue] = None
    num_deliveries: Optional[MetricValue] = None
    online_hours: Optional[MetricValue] = None
    on_task_hours: Optional[MetricValue] = None
    idle_hours: Optional[MetricValue] = None
    tar_shown_tasks: Optional[MetricValue] = None
    tar_started_tasks: Optional[MetricValue] = None
    cash_balance: Optional[CashBalanceResponse] = None
    earnings: List[EarningResponse] = []


class StatsListResponse(BaseModel):
    success: bool = True
    data: List[CourierStatsResponse]


class DayStatsResponse(BaseModel):
    date: int  # UTC midnight, epoch ms
    stats: List[CourierStatsResponse]


class CollectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_first_run: bool = Field(default=False, alias="isFirstRun")


class TriggerResponse(BaseModel):
    message: str
