from __future__ import annotations

from pathlib import Path
import tempfile
import traceback

from station_booking import ConflictError, PoolDirectory, ReservationService, ReservationYamlRepository, ResourcePool


def main() -> int:
    print("[INFO] Station Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        repo = ReservationYamlRepository(data_dir)
        pools = PoolDirectory(
            [
                ResourcePool(
                    pool_id="quickcheck-cafe",
                    name="Quick Check Cafe",
                    owner_id="owner-1",
                    opening_time="09:00",
                    closing_time="23:00",
                    generic_units=2,
                    generic_rate=100.0,
                )
            ]
        )
        service = ReservationService(repo, pools)

        existing = service.create_reservation("player-0", "quickcheck-cafe", "generic", None, 1, "2025-01-10", "10:00", "12:00")
        print(f"[OK] Seeded reservation: unit #{existing.unit_number} {existing.start}~{existing.end}")

        units = service.list_available_units("quickcheck-cafe", "generic", None, "2025-01-10", "11:00", "13:00")
        print(f"[OK] Available units for 11:00~13:00: {units.available_units}")

        created = service.create_reservation("player-1", "quickcheck-cafe", "generic", None, 2, "2025-01-10", "11:00", "13:00")
        print(f"[OK] Reserved unit #{created.unit_number}: status={created.status.value}, total={created.total_amount}")

        try:
            service.create_reservation("player-2", "quickcheck-cafe", "generic", None, 2, "2025-01-10", "11:00", "13:00")
        except ConflictError as error:
            print(f"[OK] Second request rejected with conflict, available units: {error.available_units}")
        else:
            print("[ERROR] Second request for the same unit was accepted.")
            return 1

        print(f"[OK] Reservations: {len(repo.all_reservations())}")
        print(f"[OK] Event log entries: {len(repo.read_events())}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
