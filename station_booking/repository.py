from __future__ import annotations

from datetime import date, datetime
import logging
import threading
import time
from typing import Any, Callable, Iterable, TypeVar

from .errors import ReservationStorageError, UnavailableError
from .models import ReservationRecord, ReservationStatus, UnitSelector, index_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TRANSACTION_TIMEOUT = 5.0
DEFAULT_MAX_ATTEMPTS = 5


class Transaction:
    """Reads from a snapshot and stages writes until the repository commits them.

    Every read is remembered so that the commit can tell whether another
    writer changed the same rows in the meantime.
    """

    def __init__(self, snapshot: list[ReservationRecord], now: datetime) -> None:
        self.now = now
        self._snapshot = snapshot
        self._key_reads: dict[tuple[str, str, str | None, str], tuple] = {}
        self._id_reads: dict[str, tuple] = {}
        self._writes: dict[str, ReservationRecord] = {}
        self._created: set[str] = set()
        self._events: list[tuple[str, dict[str, Any]]] = []

    def find(self, pool_id: str, selector: UnitSelector, target_date: date) -> list[ReservationRecord]:
        key = index_key(pool_id, selector, target_date)
        rows = [record for record in self._snapshot if record.index_key == key]
        self._key_reads[key] = _fingerprint(rows)
        return rows

    def get(self, reservation_id: str) -> ReservationRecord | None:
        rows = [record for record in self._snapshot if record.reservation_id == reservation_id]
        self._id_reads[reservation_id] = _fingerprint(rows)
        return rows[0] if rows else None

    def create(self, record: ReservationRecord) -> None:
        self._writes[record.reservation_id] = record
        self._created.add(record.reservation_id)

    def update(self, record: ReservationRecord) -> None:
        self._writes[record.reservation_id] = record

    def log(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.append((event_type, payload))

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)

    @property
    def events(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._events)

    def is_stale(self, current: list[ReservationRecord]) -> bool:
        for key, seen in self._key_reads.items():
            if _fingerprint([record for record in current if record.index_key == key]) != seen:
                return True
        for reservation_id, seen in self._id_reads.items():
            if _fingerprint([record for record in current if record.reservation_id == reservation_id]) != seen:
                return True
        existing_ids = {record.reservation_id for record in current}
        return any(reservation_id in existing_ids for reservation_id in self._created)

    def apply(self, current: list[ReservationRecord]) -> list[ReservationRecord]:
        merged = [self._writes.get(record.reservation_id, record) for record in current]
        merged.extend(self._writes[reservation_id] for reservation_id in self._writes if reservation_id in self._created)
        return merged


class ReservationRepository:
    """Reservation storage with optimistic, retrying transactions.

    Subclasses provide ``_load_rows``, ``_store_rows`` and ``_log_event``.
    """

    def __init__(
        self,
        *,
        transaction_timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        commit_lock: threading.Lock | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        self.transaction_timeout = transaction_timeout
        self.max_attempts = max_attempts
        self._commit_lock = commit_lock or threading.Lock()
        self._clock: Callable[[], datetime] = clock or datetime.now

    def _load_rows(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _store_rows(self, rows: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        raise NotImplementedError

    def _load_records(self) -> list[ReservationRecord]:
        records: list[ReservationRecord] = []
        for row in self._load_rows():
            try:
                records.append(ReservationRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                raise ReservationStorageError(f"Unreadable reservation row: {row.get('reservation_id')!r}") from error
        return records

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        self._log_event(event_type, payload, event_time)

    def all_reservations(self) -> list[ReservationRecord]:
        return self._load_records()

    def get(self, reservation_id: str) -> ReservationRecord | None:
        for record in self._load_records():
            if record.reservation_id == reservation_id:
                return record
        return None

    def find(self, pool_id: str, selector: UnitSelector, target_date: date) -> list[ReservationRecord]:
        key = index_key(pool_id, selector, target_date)
        return [record for record in self._load_records() if record.index_key == key]

    def list_by_requester(self, requester_id: str) -> list[ReservationRecord]:
        return [record for record in self._load_records() if record.requester_id == requester_id]

    def list_by_pool(
        self,
        pool_id: str,
        target_date: date | None = None,
        status: ReservationStatus | None = None,
    ) -> list[ReservationRecord]:
        rows = [record for record in self._load_records() if record.pool_id == pool_id]
        if target_date is not None:
            rows = [record for record in rows if record.date == target_date]
        if status is not None:
            rows = [record for record in rows if record.status is status]
        return rows

    def run_transaction(self, fn: Callable[[Transaction], T], timeout: float | None = None) -> T:
        """Run ``fn`` against a snapshot and commit its writes atomically.

        When a row the transaction read changed before the commit, the attempt
        is thrown away and ``fn`` runs again on a fresh snapshot. Exceptions from
        ``fn`` abort the transaction without writing anything.
        """
        deadline = time.monotonic() + (self.transaction_timeout if timeout is None else timeout)

        for attempt in range(1, self.max_attempts + 1):
            if time.monotonic() >= deadline:
                break

            tx = Transaction(self._load_records(), self._clock())
            result = fn(tx)
            if not tx.has_writes:
                return result

            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self._commit_lock.acquire(timeout=remaining):
                break
            try:
                current = self._load_records()
                if tx.is_stale(current):
                    logger.warning("Transaction attempt %s hit a concurrent write, retrying", attempt)
                    continue
                self._store_rows([record.to_dict() for record in tx.apply(current)])
            finally:
                self._commit_lock.release()

            for event_type, payload in tx.events:
                self._log_event(event_type, payload, tx.now)
            return result

        raise UnavailableError("Reservation store is busy, please retry")


class InMemoryReservationRepository(ReservationRepository):
    """Process-local store used by tests and by the MCP demo server."""

    def __init__(self, records: Iterable[ReservationRecord] = (), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rows: list[dict[str, Any]] = [record.to_dict() for record in records]
        self.events: list[dict[str, Any]] = []

    def _load_rows(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self._rows]

    def _store_rows(self, rows: list[dict[str, Any]]) -> None:
        self._rows = [dict(row) for row in rows]

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        self.events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})


def _fingerprint(rows: Iterable[ReservationRecord]) -> tuple:
    return tuple(sorted((record.reservation_id, repr(sorted(record.to_dict().items()))) for record in rows))
