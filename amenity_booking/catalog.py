from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml

from .errors import StorageFailure
from .models import AMENITIES, CAFETERIA, MEETING_ROOM, Resource

MEETING_ROOMS_PER_FLOOR = 5
MEETING_ROOM_FLOORS = 2
CAFETERIA_SEATS = 40
_ROOM_CAPACITIES = [2, 4, 6, 8, 12]


class ResourceCatalog:
    """Read-only lookup of the bookable resources of one amenity."""

    def __init__(self, amenity: str, resources: Iterable[Resource]) -> None:
        self.amenity = amenity
        self._resources = list(resources)
        self._by_id = {resource.resource_id: resource for resource in self._resources}

    def find_resource(self, resource_id: str) -> Resource | None:
        return self._by_id.get(str(resource_id))

    def list_resources(self) -> list[Resource]:
        return list(self._resources)

    def list_resources_by_min_capacity(self, capacity: int) -> list[Resource]:
        return [resource for resource in self._resources if resource.capacity >= capacity]

    def count_resources(self) -> int:
        return len(self._resources)


def generate_default_catalogs() -> dict[str, ResourceCatalog]:
    rooms: list[Resource] = []
    for floor_id in range(1, MEETING_ROOM_FLOORS + 1):
        for index in range(1, MEETING_ROOMS_PER_FLOOR + 1):
            rooms.append(
                Resource(
                    resource_id=f"room-{floor_id}{index:02d}",
                    label=f"Room {floor_id}{index:02d}",
                    capacity=_ROOM_CAPACITIES[(index - 1) % len(_ROOM_CAPACITIES)],
                    floor_id=floor_id,
                )
            )

    seats = [
        Resource(resource_id=f"seat-{number}", label=f"Seat {number}", capacity=1, floor_id=0)
        for number in range(1, CAFETERIA_SEATS + 1)
    ]
    return {
        MEETING_ROOM: ResourceCatalog(MEETING_ROOM, rooms),
        CAFETERIA: ResourceCatalog(CAFETERIA, seats),
    }


def load_catalogs(path: str | Path | None) -> dict[str, ResourceCatalog]:
    """Read catalogs from a YAML mapping of amenity tag to resource rows.

    Amenities absent from the file (or a missing file) fall back to the
    generated default catalog.
    """
    catalogs = generate_default_catalogs()
    if path is None:
        return catalogs

    catalog_path = Path(path)
    if not catalog_path.exists():
        return catalogs

    try:
        payload = yaml.safe_load(catalog_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
        raise StorageFailure(f"Failed to read catalog file: {catalog_path}") from error

    if payload is None:
        return catalogs
    if not isinstance(payload, dict):
        raise StorageFailure(f"Catalog file must contain a mapping: {catalog_path}")

    for amenity in AMENITIES:
        rows: Any = payload.get(amenity)
        if rows is None:
            continue
        if not isinstance(rows, list):
            raise StorageFailure(f"Catalog entry for {amenity} must be a list")
        catalogs[amenity] = ResourceCatalog(amenity, [Resource.from_dict(row) for row in rows if isinstance(row, dict)])
    return catalogs
