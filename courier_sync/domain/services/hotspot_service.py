"""
Hotspot Service - send idle couriers to the nearest hotspot of their team.

The mirror is the system of record for assignments. The only local state is
the courier's team, reused for TEAM_CACHE_TTL_SECONDS after a detail lookup.
"""
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from courier_sync.core.config import settings
from courier_sync.core.exceptions import HotspotAssignmentError
from courier_sync.core.logging import get_logger, log_async_operation
from courier_sync.core.rate_limiter import FixedDelayRateLimiter, RateLimiter
from courier_sync.db.database import SessionFactory
from courier_sync.db.models.courier import Courier
from courier_sync.domain.services.external.coda_mirror import CodaMirrorClient
from courier_sync.domain.services.external.distance_api import (
    DistanceElement,
    DistanceMatrixClient,
)
from courier_sync.domain.services.external.fleet_api import FleetApiClient
from courier_sync.domain.services.hotspot_dataset import CsvHotspotDataset, Hotspot
from courier_sync.domain.services.reconciliation_service import get_courier
from courier_sync.domain.services.time_window import Clock, to_epoch_ms, utc_now
from courier_sync.domain.services.token_service import TokenManager

logger = get_logger(__name__)

# Seconds looked back in the live feeds. Locations get a little more slack
# for clock skew between the two feeds.
STATUS_LOOKBACK_SECONDS = 60
LOCATION_LOOKBACK_SECONDS = 63

IDLE_STATUS = "idle"


@dataclass(frozen=True)
class CourierLocation:
    courier_id: int
    lat: float
    lng: float


@dataclass(frozen=True)
class HotspotAssignment:
    hotspot: Hotspot
    distance_km: float


def select_nearest_hotspot(
    hotspots: Sequence[Hotspot],
    elements: Sequence[DistanceElement],
) -> HotspotAssignment | None:
    """
    Smallest OK distance wins; on ties the first one is kept.

    ``elements`` are aligned with ``hotspots`` by index. Returns None when
    no element is usable.
    """
    best_index = -1
    best_meters = float("inf")
    for index, element in enumerate(elements[: len(hotspots)]):
        if element.is_ok and element.distance_meters < best_meters:
            best_meters = element.distance_meters
            best_index = index

    if best_index == -1:
        return None
    return HotspotAssignment(hotspot=hotspots[best_index], distance_km=best_meters / 1000)


class HotspotAssignmentPipeline:

    def __init__(
        self,
        session_factory: SessionFactory,
        fleet: FleetApiClient,
        distance: DistanceMatrixClient,
        mirror: CodaMirrorClient,
        token_manager: TokenManager,
        dataset: CsvHotspotDataset | None = None,
        limiter: RateLimiter | None = None,
        clock: Clock = utc_now,
        travel_mode: str | None = None,
        team_ttl_seconds: int | None = None,
    ):
        self._session_factory = session_factory
        self._fleet = fleet
        self._distance = distance
        self._mirror = mirror
        self._token_manager = token_manager
        self._dataset = dataset or CsvHotspotDataset(settings.HOTSPOTS_CSV_PATH)
        self._limiter = limiter or FixedDelayRateLimiter(settings.HOTSPOT_SYNC_DELAY_MS)
        self._clock = clock
        self._travel_mode = travel_mode or settings.DISTANCE_TRAVEL_MODE
        if team_ttl_seconds is None:
            team_ttl_seconds = settings.TEAM_CACHE_TTL_SECONDS
        self._team_ttl_ms = team_ttl_seconds * 1000

    @log_async_operation("track_idle_couriers")
    async def track_idle_couriers(self) -> int:
        """
        One tracking cycle. Returns the number of assignments pushed.

        Raises:
            AuthError: no usable token
            UpstreamFetchError: status or location feed unavailable
            HotspotDatasetError: hotspot dataset cannot be loaded
        """
        token = await self._token_manager.get_valid_token()
        now_s = int(self._clock().timestamp())

        statuses = await self._fleet.get_delivery_statuses(now_s - STATUS_LOOKBACK_SECONDS, token)
        idle_ids = {
            entry.get("courierId")
            for entry in statuses
            if entry.get("status") == IDLE_STATUS and entry.get("courierId") is not None
        }
        logger.info("Found idle couriers", extra_data={"count": len(idle_ids)})
        if not idle_ids:
            logger.info("No idle couriers found, skipping tracking")
            return 0

        locations = self._idle_locations(
            await self._fleet.get_locations(now_s - LOCATION_LOOKBACK_SECONDS, token),
            idle_ids,
        )
        hotspots = self._dataset.load()

        assigned = 0
        async with self._session_factory() as db:
            for location in locations:
                try:
                    if await self._assign(db, token, location, hotspots):
                        assigned += 1
                except Exception as exc:
                    await db.rollback()
                    logger.error(
                        "Error processing courier",
                        extra_data={
                            "courier_id": location.courier_id,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                await self._limiter.wait()

        logger.info(
            "Idle courier tracking completed",
            extra_data={"locations": len(locations), "assigned": assigned},
        )
        return assigned

    @staticmethod
    def _idle_locations(entries: list[dict[str, Any]], idle_ids: set) -> list[CourierLocation]:
        locations = []
        for entry in entries:
            if entry.get("courierId") not in idle_ids:
                continue
            try:
                locations.append(
                    CourierLocation(
                        courier_id=entry["courierId"],
                        lat=float(entry["latitude"]),
                        lng=float(entry["longitude"]),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(
                    "Skipping location without coordinates",
                    extra_data={"courier_id": entry.get("courierId")},
                )
        return locations

    async def _resolve_team(self, db: AsyncSession, courier: Courier | None, courier_id: int, token: str) -> str:
        now_ms = to_epoch_ms(self._clock())
        if (
            courier is not None
            and courier.team
            and courier.team_synced_at is not None
            and now_ms - courier.team_synced_at < self._team_ttl_ms
        ):
            return courier.team

        detail = await self._fleet.get_courier_detail(courier_id, token)
        team = (detail.get("team") or "").strip()
        if courier is not None and team:
            courier.team = team
            courier.team_synced_at = now_ms
            await db.commit()
        return team

    async def _assign(
        self,
        db: AsyncSession,
        token: str,
        location: CourierLocation,
        hotspots: list[Hotspot],
    ) -> bool:
        courier_id = location.courier_id
        courier = await get_courier(db, courier_id)
        team = await self._resolve_team(db, courier, courier_id, token)
        logger.info("Courier team resolved", extra_data={"courier_id": courier_id, "team": team})

        team_hotspots = self._dataset.for_team(hotspots, team)
        if not team_hotspots:
            raise HotspotAssignmentError(courier_id, f"no hotspots found for team '{team}'")

        elements = await self._distance.matrix(
            (location.lat, location.lng),
            [(h.lat, h.lng) for h in team_hotspots],
            mode=self._travel_mode,
        )
        for hotspot, element in zip(team_hotspots, elements):
            logger.debug(
                "Distance to hotspot",
                extra_data={
                    "courier_id": courier_id,
                    "hotspot": hotspot.name,
                    "status": element.status,
                    "distance": element.distance_text or "N/A",
                },
            )

        assignment = select_nearest_hotspot(team_hotspots, elements)
        if assignment is None:
            raise HotspotAssignmentError(courier_id, "could not determine nearest hotspot")

        logger.info(
            "Nearest hotspot found",
            extra_data={
                "courier_id": courier_id,
                "team": team,
                "hotspot": assignment.hotspot.name,
                "distance_km": f"{assignment.distance_km:.3f}",
            },
        )

        if courier is None or not courier.mirror_row_id:
            logger.warning(
                "Courier not found or has no mirror row, skipping hotspot update",
                extra_data={"courier_id": courier_id},
            )
            return False

        return await self._mirror.update_hotspot(
            courier.mirror_row_id, assignment.hotspot.name, assignment.distance_km
        )
