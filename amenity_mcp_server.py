from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from amenity_booking import (
    MEETING_ROOM,
    AvailabilityCalculator,
    BookingEngine,
    BookingProposal,
    BookingYamlStore,
    load_catalogs,
)

mcp = FastMCP(
    "Amenity Booking MCP Server",
    instructions="Expose meeting-room and cafeteria bookings from the amenity_booking project.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
STORE = BookingYamlStore(DATA_DIR)
CATALOGS = load_catalogs(None)
ENGINES = {amenity: BookingEngine(STORE, catalog) for amenity, catalog in CATALOGS.items()}


@mcp.resource("booking://meeting-rooms")
async def list_rooms() -> list[dict]:
    """List bookable meeting rooms with capacity and floor."""
    return [resource.to_dict() for resource in CATALOGS[MEETING_ROOM].list_resources()]


@mcp.tool()
def list_bookings(amenity: str = MEETING_ROOM) -> list[dict]:
    """Return every booking of an amenity (meeting_room or cafeteria)."""
    return [booking.to_dict() for booking in ENGINES[amenity].find_all()]


@mcp.tool()
def find_free_rooms(date_iso: str, start_iso: str, end_iso: str, capacity: int = 1) -> list[dict]:
    """List meeting rooms with at least ``capacity`` seats that are free for the whole window."""
    calculator = AvailabilityCalculator(STORE, CATALOGS[MEETING_ROOM])
    free = calculator.list_free(
        date.fromisoformat(date_iso),
        datetime.fromisoformat(start_iso),
        datetime.fromisoformat(end_iso),
        capacity,
    )
    return [resource.to_dict() for resource in free]


@mcp.tool()
def book_room(resource_id: str, start_iso: str, end_iso: str, owner_token: str, occupants: list[str] | None = None) -> dict:
    """Book a meeting room using ISO timestamps."""
    start = datetime.fromisoformat(start_iso)
    proposal = BookingProposal(
        resource_id=resource_id,
        date=start.date(),
        start=start,
        end=datetime.fromisoformat(end_iso),
        owner_token=owner_token,
        occupants=tuple(occupants or ()),
    )
    return ENGINES[MEETING_ROOM].create(proposal).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
