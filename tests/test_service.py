import tempfile
import threading
import unittest
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from station_booking import (
    ConflictError,
    ConsoleConfig,
    ConsoleType,
    ForbiddenError,
    InMemoryReservationRepository,
    InvalidStateError,
    NotFoundError,
    PaymentStatus,
    PoolDirectory,
    ReservationService,
    ReservationStatus,
    ReservationYamlRepository,
    ResourcePool,
    ValidationError,
)

NOW = datetime(2025, 1, 9, 12, 0)
DAY = "2025-01-10"


def _pools() -> PoolDirectory:
    return PoolDirectory(
        [
            ResourcePool(
                pool_id="arena",
                name="Arena",
                owner_id="owner-1",
                opening_time="09:00",
                closing_time="23:00",
                generic_units=2,
                generic_rate=100.0,
                typed_rate=120.0,
                consoles={ConsoleType.PS5: ConsoleConfig(quantity=1, hourly_rate=150.0)},
            ),
            ResourcePool(
                pool_id="hall",
                name="Hall",
                owner_id="owner-2",
                opening_time="09:00",
                closing_time="23:00",
                generic_units=4,
                generic_rate=100.0,
            ),
            ResourcePool(
                pool_id="night",
                name="Night Owl",
                owner_id="owner-3",
                opening_time="22:00",
                closing_time="02:00",
                generic_units=2,
                generic_rate=50.0,
            ),
            ResourcePool(
                pool_id="closed",
                name="Closed",
                owner_id="owner-4",
                opening_time="09:00",
                closing_time="23:00",
                is_active=False,
                generic_units=2,
                generic_rate=100.0,
            ),
            ResourcePool(
                pool_id="holiday",
                name="Holiday Cafe",
                owner_id="owner-5",
                opening_time="09:00",
                closing_time="23:00",
                generic_units=2,
                generic_rate=100.0,
                closed_on_holidays=True,
                holiday_country="KR",
            ),
        ]
    )


class _UntouchableRepository(InMemoryReservationRepository):
    def _load_rows(self):
        raise AssertionError("store must not be read")


def _service(repository=None) -> ReservationService:
    repository = repository or InMemoryReservationRepository(clock=lambda: NOW)
    return ReservationService(repository, _pools(), clock=lambda: NOW)


class TestBookingScenario(unittest.TestCase):
    def test_second_caller_for_the_same_unit_gets_conflict(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        units = service.list_available_units("arena", "generic", None, DAY, "11:00", "13:00")
        self.assertEqual(units.available_units, [2])
        self.assertEqual(units.first_available, 2)
        self.assertEqual(units.capacity, 2)

        created = service.create_reservation("player-1", "arena", "generic", None, 2, DAY, "11:00", "13:00")
        self.assertIs(created.status, ReservationStatus.CONFIRMED)
        self.assertIs(created.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(created.total_amount, 200.0)

        with self.assertRaises(ConflictError) as raised:
            service.create_reservation("player-2", "arena", "generic", None, 2, DAY, "11:00", "13:00")

        self.assertEqual(raised.exception.available_units, [])
        self.assertEqual(raised.exception.to_dict()["first_available"], None)

    def test_conflict_offers_the_remaining_units(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        with self.assertRaises(ConflictError) as raised:
            service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "11:00", "13:00")

        self.assertEqual(raised.exception.available_units, [2])
        self.assertEqual(raised.exception.http_status, 409)

    def test_conflict_is_logged(self) -> None:
        repository = InMemoryReservationRepository(clock=lambda: NOW)
        service = _service(repository)
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        with self.assertRaises(ConflictError):
            service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "11:00", "12:00")

        event_types = [event["event_type"] for event in repository.events]
        self.assertEqual(event_types, ["RESERVATION_CREATED", "RESERVATION_CONFLICT"])
        self.assertEqual(repository.events[1]["payload"]["available_units"], [2])

    def test_touching_reservation_on_the_same_unit_succeeds(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        created = service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "12:00", "13:00")
        self.assertEqual(created.start, "12:00")

    def test_cancelled_reservation_frees_its_unit(self) -> None:
        service = _service()
        first = service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")
        service.cancel_reservation("player-0", first.reservation_id)

        again = service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "10:00", "12:00")
        self.assertEqual(again.unit_number, 1)

    def test_capacity_exhaustion(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")
        service.create_reservation("player-1", "arena", "generic", None, 2, DAY, "09:00", "14:00")

        units = service.list_available_units("arena", "generic", None, DAY, "11:00", "13:00")
        self.assertEqual(units.available_units, [])
        self.assertIsNone(units.first_available)

        for unit_number in (1, 2):
            with self.subTest(unit_number=unit_number):
                with self.assertRaises(ConflictError) as raised:
                    service.create_reservation("player-2", "arena", "generic", None, unit_number, DAY, "11:00", "13:00")
                self.assertEqual(raised.exception.available_units, [])

    def test_consoles_are_booked_separately_from_pcs(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        console = service.create_reservation("player-1", "arena", "console", "PS5", 1, DAY, "10:00", "12:00")

        self.assertEqual(console.selector.subtype, ConsoleType.PS5)
        self.assertEqual(console.unit_rate, 150.0)
        self.assertEqual(console.total_amount, 300.0)


class TestMidnightCrossing(unittest.TestCase):
    def test_overnight_reservation_is_priced_and_blocks_its_unit(self) -> None:
        service = _service()

        created = service.create_reservation("player-0", "night", "generic", None, 1, DAY, "23:00", "01:00")
        self.assertEqual(created.duration_hours, 2.0)
        self.assertEqual(created.total_amount, 100.0)
        self.assertEqual((created.start, created.end), ("23:00", "01:00"))

        units = service.list_available_units("night", "generic", None, DAY, "00:30", "01:30")
        self.assertEqual(units.available_units, [2])

        with self.assertRaises(ConflictError):
            service.create_reservation("player-1", "night", "generic", None, 1, DAY, "00:30", "01:30")

    def test_after_closing_request_is_rejected(self) -> None:
        service = _service()
        with self.assertRaisesRegex(ValidationError, "opening hours"):
            service.create_reservation("player-0", "night", "generic", None, 1, DAY, "01:30", "03:00")

    def test_overnight_booking_still_counts_after_hours_change(self) -> None:
        repository = InMemoryReservationRepository(clock=lambda: NOW)
        _service(repository).create_reservation("player-0", "night", "generic", None, 1, DAY, "23:00", "01:00")

        night = replace(_pools().get_pool("night"), opening_time="09:00", closing_time="23:30")
        service = ReservationService(repository, PoolDirectory([night]), clock=lambda: NOW)

        self.assertEqual(service.list_available_units("night", "generic", None, DAY, "10:00", "11:00").available_units, [1, 2])
        self.assertFalse(service.check_availability("night", "generic", None, DAY, "22:30", "23:30", unit_number=1).available)
        with self.assertRaises(ConflictError) as raised:
            service.create_reservation("player-1", "night", "generic", None, 1, DAY, "22:30", "23:30")
        self.assertEqual(raised.exception.available_units, [2])


class TestAvailabilityCheck(unittest.TestCase):
    def test_estimates_the_price(self) -> None:
        result = _service().check_availability("arena", "generic", None, DAY, "10:00", "11:30")

        self.assertTrue(result.available)
        self.assertEqual(result.duration_hours, 1.5)
        self.assertEqual(result.unit_rate, 100.0)
        self.assertEqual(result.estimated_cost, 150.0)
        self.assertEqual(result.capacity, 2)

    def test_reports_a_specific_unit(self) -> None:
        service = _service()
        service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00")

        self.assertFalse(service.check_availability("arena", "generic", None, DAY, "11:00", "12:00", unit_number=1).available)
        self.assertTrue(service.check_availability("arena", "generic", None, DAY, "11:00", "12:00", unit_number=2).available)
        self.assertTrue(service.check_availability("arena", "generic", None, DAY, "11:00", "12:00").available)

    def test_unconfigured_console_has_no_capacity(self) -> None:
        result = _service(_UntouchableRepository()).check_availability(
            "arena", "typed", "xbox_one", DAY, "10:00", "11:00"
        )

        self.assertFalse(result.available)
        self.assertEqual(result.capacity, 0)
        self.assertEqual(result.unit_rate, 120.0)


class TestValidation(unittest.TestCase):
    def setUp(self) -> None:
        self.service = _service(_UntouchableRepository())

    def _create(self, **overrides):
        values = {
            "requester_id": "player-0",
            "pool_id": "arena",
            "kind": "generic",
            "subtype": None,
            "unit_number": 1,
            "target_date": DAY,
            "start": "10:00",
            "end": "12:00",
        }
        values.update(overrides)
        return self.service.create_reservation(**values)

    def test_rejected_before_touching_the_store(self) -> None:
        cases = {
            "typed without subtype": {"kind": "typed"},
            "generic with subtype": {"subtype": "ps5"},
            "unknown subtype": {"kind": "typed", "subtype": "dreamcast"},
            "unknown kind": {"kind": "arcade"},
            "unit zero": {"unit_number": 0},
            "unit above capacity": {"unit_number": 3},
            "unit not a number": {"unit_number": "first"},
            "unit is a bool": {"unit_number": True},
            "missing unit": {"unit_number": None},
            "inverted interval": {"start": "12:00", "end": "11:00"},
            "empty interval": {"start": "12:00", "end": "12:00"},
            "before opening": {"start": "08:00", "end": "10:00"},
            "after closing": {"start": "22:00", "end": "23:30"},
            "too short": {"start": "10:00", "end": "10:30"},
            "bad time": {"start": "10am"},
            "bad date": {"target_date": "10/01/2025"},
            "missing requester": {"requester_id": "  "},
            "notes too long": {"notes": "x" * 501},
            "inactive venue": {"pool_id": "closed"},
            "console without capacity": {"kind": "typed", "subtype": "xbox_one"},
            "public holiday": {"pool_id": "holiday", "target_date": "2025-01-01"},
        }
        for name, overrides in cases.items():
            with self.subTest(name):
                with self.assertRaises(ValidationError) as raised:
                    self._create(**overrides)
                self.assertEqual(raised.exception.http_status, 400)

    def test_unknown_venue_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self._create(pool_id="nowhere")

    def test_blank_notes_are_dropped(self) -> None:
        service = _service()
        created = service.create_reservation("player-0", "arena", "generic", None, 1, DAY, "10:00", "12:00", notes="   ")
        self.assertIsNone(created.notes)


class TestConcurrentCreation(unittest.TestCase):
    def _race(self, service_factory, requests):
        barrier = threading.Barrier(len(requests))
        outcomes: list[str] = []
        unexpected: list[Exception] = []
        guard = threading.Lock()

        def worker(index: int, unit_number: int, start: str) -> None:
            service = service_factory()
            barrier.wait()
            try:
                service.create_reservation(f"player-{index}", "hall", "generic", None, unit_number, DAY, start, "12:00")
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            except Exception as error:
                with guard:
                    unexpected.append(error)
                return
            with guard:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=worker, args=(index, unit_number, start))
            for index, (unit_number, start) in enumerate(requests)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(unexpected, [])
        return outcomes

    def test_exactly_one_winner_for_the_same_unit_in_memory(self) -> None:
        repository = InMemoryReservationRepository(clock=lambda: NOW)
        starts = ["09:00", "09:10", "09:20", "09:30", "09:40", "09:50", "10:00", "10:10"]

        outcomes = self._race(lambda: _service(repository), [(1, start) for start in starts])

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("conflict"), len(starts) - 1)
        self.assertEqual(len(repository.all_reservations()), 1)

    def test_exactly_one_winner_for_the_same_unit_on_disk(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            starts = ["10:00", "10:10", "10:20", "10:30", "10:40", "10:50"]

            outcomes = self._race(
                lambda: _service(ReservationYamlRepository(data_dir, clock=lambda: NOW)),
                [(1, start) for start in starts],
            )

            self.assertEqual(outcomes.count("ok"), 1)
            self.assertEqual(outcomes.count("conflict"), len(starts) - 1)
            self.assertEqual(len(ReservationYamlRepository(data_dir).all_reservations()), 1)

    def test_different_units_do_not_block_each_other(self) -> None:
        repository = InMemoryReservationRepository(clock=lambda: NOW, max_attempts=10)

        outcomes = self._race(lambda: _service(repository), [(unit, "10:00") for unit in (1, 2, 3, 4)])

        self.assertEqual(outcomes, ["ok"] * 4)
        self.assertEqual(sorted(record.unit_number for record in repository.all_reservations()), [1, 2, 3, 4])


class TestLifecycleOperations(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryReservationRepository(clock=lambda: NOW)
        self.service = _service(self.repository)
        self.record = self.service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "10:00", "12:00")

    def test_requester_can_cancel(self) -> None:
        cancelled = self.service.cancel_reservation("player-1", self.record.reservation_id)

        self.assertIs(cancelled.status, ReservationStatus.CANCELLED)
        self.assertEqual(cancelled.cancelled_at, NOW)
        self.assertIs(self.repository.get(self.record.reservation_id).status, ReservationStatus.CANCELLED)

    def test_owner_can_cancel(self) -> None:
        cancelled = self.service.cancel_reservation("owner-1", self.record.reservation_id)
        self.assertIs(cancelled.status, ReservationStatus.CANCELLED)

    def test_stranger_cannot_cancel(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.service.cancel_reservation("player-9", self.record.reservation_id)
        self.assertIs(self.repository.get(self.record.reservation_id).status, ReservationStatus.CONFIRMED)

    def test_cancel_twice_is_invalid_state(self) -> None:
        self.service.cancel_reservation("player-1", self.record.reservation_id)
        with self.assertRaises(InvalidStateError):
            self.service.cancel_reservation("player-1", self.record.reservation_id)

    def test_unknown_reservation_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.cancel_reservation("player-1", "missing")
        with self.assertRaises(NotFoundError):
            self.service.get_reservation("player-1", "missing")

    def test_owner_sets_status(self) -> None:
        completed = self.service.set_reservation_status("owner-1", self.record.reservation_id, "completed")

        self.assertIs(completed.status, ReservationStatus.COMPLETED)
        self.assertEqual(self.repository.events[-1]["event_type"], "RESERVATION_STATUS_CHANGED")

    def test_requester_cannot_set_status(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.service.set_reservation_status("player-1", self.record.reservation_id, "completed")

    def test_terminal_status_rejects_every_target(self) -> None:
        self.service.cancel_reservation("player-1", self.record.reservation_id)
        for target in ("pending", "confirmed", "cancelled", "completed"):
            with self.subTest(target=target):
                with self.assertRaises(InvalidStateError):
                    self.service.set_reservation_status("owner-1", self.record.reservation_id, target)

    def test_unknown_status_is_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.set_reservation_status("owner-1", self.record.reservation_id, "archived")

    def test_payment_status_only_touches_payment(self) -> None:
        paid = self.service.set_payment_status(self.record.reservation_id, "paid")

        self.assertIs(paid.payment_status, PaymentStatus.PAID)
        self.assertIs(paid.status, ReservationStatus.CONFIRMED)
        self.assertEqual(paid.total_amount, self.record.total_amount)
        with self.assertRaises(ValidationError):
            self.service.set_payment_status(self.record.reservation_id, "free")

    def test_get_reservation_is_limited_to_requester_and_owner(self) -> None:
        self.assertEqual(self.service.get_reservation("player-1", self.record.reservation_id), self.record)
        self.assertEqual(self.service.get_reservation("owner-1", self.record.reservation_id), self.record)
        with self.assertRaises(ForbiddenError):
            self.service.get_reservation("player-9", self.record.reservation_id)


class TestListings(unittest.TestCase):
    def setUp(self) -> None:
        self.service = _service()
        self.upcoming = self.service.create_reservation("player-1", "arena", "generic", None, 1, DAY, "10:00", "12:00")
        self.past = self.service.create_reservation("player-1", "arena", "generic", None, 1, "2025-01-08", "10:00", "12:00")
        self.cancelled = self.service.create_reservation("player-1", "arena", "generic", None, 2, DAY, "15:00", "16:00")
        self.service.cancel_reservation("player-1", self.cancelled.reservation_id)
        self.service.create_reservation("player-2", "arena", "generic", None, 2, DAY, "10:00", "11:00")

    def test_my_reservations_are_categorised(self) -> None:
        listing = self.service.list_my_reservations("player-1")

        self.assertEqual(
            [record.reservation_id for record in listing.reservations],
            [self.cancelled.reservation_id, self.upcoming.reservation_id, self.past.reservation_id],
        )
        self.assertEqual([record.reservation_id for record in listing.upcoming], [self.upcoming.reservation_id])
        self.assertEqual(
            [record.reservation_id for record in listing.past],
            [self.cancelled.reservation_id, self.past.reservation_id],
        )
        self.assertEqual(listing.pagination(), {"total": 3, "page": 1, "pages": 1, "limit": 10})

    def test_my_reservations_filter_by_status(self) -> None:
        listing = self.service.list_my_reservations("player-1", status="cancelled")
        self.assertEqual([record.reservation_id for record in listing.reservations], [self.cancelled.reservation_id])
        self.assertEqual(listing.total, 1)

    def test_my_reservations_second_page_is_categorised_on_its_own(self) -> None:
        listing = self.service.list_my_reservations("player-1", page="2", limit="2")

        self.assertEqual([record.reservation_id for record in listing.reservations], [self.past.reservation_id])
        self.assertEqual(listing.upcoming, [])
        self.assertEqual(listing.past, [listing.reservations[0]])
        self.assertEqual(listing.pagination(), {"total": 3, "page": 2, "pages": 2, "limit": 2})

    def test_my_reservations_default_to_ten_per_page(self) -> None:
        for day in range(11, 23):
            self.service.create_reservation("player-3", "arena", "generic", None, 1, f"2025-01-{day}", "10:00", "11:00")

        first = self.service.list_my_reservations("player-3")
        second = self.service.list_my_reservations("player-3", page=2)

        self.assertEqual(len(first.reservations), 10)
        self.assertEqual(first.reservations[0].date.day, 22)
        self.assertEqual([record.date.day for record in second.reservations], [12, 11])
        self.assertEqual(second.pagination(), {"total": 12, "page": 2, "pages": 2, "limit": 10})

    def test_page_beyond_the_end_is_empty(self) -> None:
        listing = self.service.list_my_reservations("player-1", page=5)
        self.assertEqual(listing.reservations, [])
        self.assertEqual(listing.total, 3)

    def test_invalid_paging_is_rejected(self) -> None:
        for page, limit in [(0, None), ("two", None), (None, 0), (None, -5), (1.5, None)]:
            with self.assertRaises(ValidationError):
                self.service.list_my_reservations("player-1", page=page, limit=limit)
        with self.assertRaises(ValidationError):
            self.service.list_pool_reservations("owner-1", "arena", limit="many")

    def test_pool_reservations_are_for_the_owner(self) -> None:
        listing = self.service.list_pool_reservations("owner-1", "arena", target_date=DAY)

        self.assertEqual(listing.total, 3)
        self.assertEqual(
            [(record.start, record.unit_number) for record in listing.reservations],
            [("10:00", 1), ("10:00", 2), ("15:00", 2)],
        )
        with self.assertRaises(ForbiddenError):
            self.service.list_pool_reservations("player-1", "arena")

    def test_pool_reservations_filter_by_status(self) -> None:
        listing = self.service.list_pool_reservations("owner-1", "arena", status="confirmed")
        self.assertEqual(listing.total, 3)

    def test_pool_reservations_are_paged_twenty_at_a_time(self) -> None:
        for day in range(11, 31):
            self.service.create_reservation("player-3", "arena", "generic", None, 1, f"2025-01-{day}", "10:00", "11:00")

        first = self.service.list_pool_reservations("owner-1", "arena")
        second = self.service.list_pool_reservations("owner-1", "arena", page=2)
        narrow = self.service.list_pool_reservations("owner-1", "arena", page=3, limit=5)

        self.assertEqual(len(first.reservations), 20)
        self.assertEqual(first.pagination(), {"total": 24, "page": 1, "pages": 2, "limit": 20})
        self.assertEqual([record.date.day for record in second.reservations], [27, 28, 29, 30])
        self.assertEqual([record.date.day for record in narrow.reservations], [17, 18, 19, 20, 21])
        self.assertEqual(narrow.pages, 5)


if __name__ == "__main__":
    unittest.main()
