"""
Road-network distance service (Google Distance Matrix API).
"""
from dataclasses import dataclass

import httpx

from courier_sync.core.circuit_breaker import CircuitBreaker, get_distance_circuit_breaker
from courier_sync.core.config import settings
from courier_sync.core.exceptions import UpstreamFetchError
from courier_sync.domain.services.external.http import JsonApiClient

Coordinates = tuple[float, float]


@dataclass(frozen=True)
class DistanceElement:
    """Result for one destination, in request order"""
    status: str
    distance_meters: float | None = None
    distance_text: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.status == "OK" and self.distance_meters is not None


class DistanceMatrixClient(JsonApiClient):

    service_name = "distance"

    def __init__(
        self,
        api_key: str | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            circuit_breaker or get_distance_circuit_breaker(),
            timeout_seconds or settings.HTTP_TIMEOUT_SECONDS,
            transport,
        )
        self._api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self._url = settings.DISTANCE_MATRIX_URL

    @staticmethod
    def _format(point: Coordinates) -> str:
        return f"{point[0]},{point[1]}"

    async def matrix(
        self,
        origin: Coordinates,
        destinations: list[Coordinates],
        mode: str = "bicycling",
    ) -> list[DistanceElement]:
        """One origin to many destinations; returns one element per destination"""
        data = await self._request(
            "GET",
            self._url,
            "distance_matrix",
            params={
                "origins": self._format(origin),
                "destinations": "|".join(self._format(d) for d in destinations),
                "mode": mode,
                "key": self._api_key,
            },
        )

        status = data.get("status") if isinstance(data, dict) else None
        if status != "OK":
            raise UpstreamFetchError(
                self.service_name,
                f"distance matrix status {status}",
                details={
                    "operation": "distance_matrix",
                    "api_status": status,
                    "error_message": data.get("error_message") if isinstance(data, dict) else None,
                },
            )

        try:
            elements = data["rows"][0]["elements"]
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamFetchError(
                self.service_name,
                "distance matrix response has no rows",
                details={"operation": "distance_matrix"},
            ) from exc

        result = []
        for element in elements:
            distance = element.get("distance") or {}
            result.append(
                DistanceElement(
                    status=element.get("status", "UNKNOWN"),
                    distance_meters=distance.get("value"),
                    distance_text=distance.get("text"),
                )
            )
        return result
