from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from station_booking import ConsoleType, PoolDirectory, ReservationError, ReservationService, ReservationYamlRepository
from station_booking.config import Config

mcp = FastMCP(
    "Station Booking MCP Server",
    instructions="Check station availability and place reservations at gaming venues.",
    json_response=True,
)

REPOSITORY = ReservationYamlRepository(
    Config.DATA_DIR,
    transaction_timeout=Config.TX_TIMEOUT_SECONDS,
    max_attempts=Config.TX_MAX_ATTEMPTS,
)
SERVICE = ReservationService(
    REPOSITORY,
    PoolDirectory.from_yaml(Config.pools_path()),
    min_duration_minutes=Config.MIN_DURATION_MINUTES,
    notes_max_length=Config.NOTES_MAX_LENGTH,
)


@mcp.resource("booking://console-types")
async def list_console_types() -> list[str]:
    """List the console families that can be reserved."""
    return [console.value for console in ConsoleType]


@mcp.tool()
def list_available_units(
    pool_id: str,
    date: str,
    start: str,
    end: str,
    kind: str = "generic",
    subtype: str | None = None,
) -> dict[str, Any]:
    """Return the free unit numbers for a time range at a venue."""
    try:
        return {"ok": True, **SERVICE.list_available_units(pool_id, kind, subtype, date, start, end).to_dict()}
    except ReservationError as error:
        return error.to_dict()


@mcp.tool()
def check_availability(
    pool_id: str,
    date: str,
    start: str,
    end: str,
    kind: str = "generic",
    subtype: str | None = None,
    unit_number: int | None = None,
) -> dict[str, Any]:
    """Check whether a unit (or any unit) is free and quote the price."""
    try:
        result = SERVICE.check_availability(pool_id, kind, subtype, date, start, end, unit_number=unit_number)
        return {"ok": True, **result.to_dict()}
    except ReservationError as error:
        return error.to_dict()


@mcp.tool()
def create_reservation(
    requester_id: str,
    pool_id: str,
    unit_number: int,
    date: str,
    start: str,
    end: str,
    kind: str = "generic",
    subtype: str | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Reserve a unit. On conflict the response lists the units that are still free."""
    try:
        created = SERVICE.create_reservation(requester_id, pool_id, kind, subtype, unit_number, date, start, end, notes)
        return {"ok": True, "reservation": created.to_dict()}
    except ReservationError as error:
        return error.to_dict()


@mcp.tool()
def cancel_reservation(requester_id: str, reservation_id: str) -> dict[str, Any]:
    """Cancel a reservation as its requester or as the venue owner."""
    try:
        return {"ok": True, "reservation": SERVICE.cancel_reservation(requester_id, reservation_id).to_dict()}
    except ReservationError as error:
        return error.to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
