"""
Static hotspot dataset, loaded from a CSV file once per tracking run.

Expected header: Team,name,lat,lng
"""
import csv
from dataclasses import dataclass
from pathlib import Path

from courier_sync.core.exceptions import HotspotDatasetError
from courier_sync.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Hotspot:
    team: str
    name: str
    lat: float
    lng: float


class CsvHotspotDataset:

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> list[Hotspot]:
        """
        Read every hotspot row.

        Raises:
            HotspotDatasetError: file missing/unreadable, malformed row, or no rows
        """
        hotspots: list[Hotspot] = []
        try:
            with self.path.open(newline="", encoding="utf-8-sig") as handle:
                for line_no, row in enumerate(csv.DictReader(handle), start=2):
                    try:
                        hotspots.append(
                            Hotspot(
                                team=row["Team"].strip(),
                                name=row["name"].strip(),
                                lat=float(row["lat"]),
                                lng=float(row["lng"]),
                            )
                        )
                    except (KeyError, TypeError, ValueError, AttributeError) as exc:
                        raise HotspotDatasetError(
                            str(self.path), f"malformed row {line_no}: {exc}"
                        ) from exc
        except OSError as exc:
            raise HotspotDatasetError(str(self.path), str(exc)) from exc

        if not hotspots:
            raise HotspotDatasetError(str(self.path), "no hotspots available")

        logger.info(
            "Loaded hotspots from CSV",
            extra_data={"count": len(hotspots), "path": str(self.path)},
        )
        return hotspots

    def for_team(self, hotspots: list[Hotspot], team: str) -> list[Hotspot]:
        """Hotspots of one team, case-insensitive, in file order"""
        wanted = (team or "").strip().casefold()
        return [h for h in hotspots if h.team.casefold() == wanted]
