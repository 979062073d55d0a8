from __future__ import annotations

from datetime import datetime
from pathlib import Path
import shutil
import threading
from typing import Any

import yaml

from .errors import ReservationStorageError
from .repository import ReservationRepository

_DIRECTORY_LOCKS: dict[str, threading.Lock] = {}
_DIRECTORY_LOCKS_GUARD = threading.Lock()


def _lock_for(base_dir: Path) -> threading.Lock:
    key = str(base_dir.resolve())
    with _DIRECTORY_LOCKS_GUARD:
        if key not in _DIRECTORY_LOCKS:
            _DIRECTORY_LOCKS[key] = threading.Lock()
        return _DIRECTORY_LOCKS[key]


class ReservationYamlRepository(ReservationRepository):
    """Reservations kept as a YAML list on disk, plus an append-only event log.

    Repositories opened on the same directory share one commit lock.
    """

    def __init__(self, base_dir: str | Path = "data", **kwargs: Any) -> None:
        self.base_dir = Path(base_dir)
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._ensure_files()
        self._log_lock = _lock_for(self.base_dir / "events")
        kwargs.setdefault("commit_lock", _lock_for(self.base_dir))
        super().__init__(**kwargs)

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for path in (self.reservations_file, self.log_file):
                if not path.exists():
                    path.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise ReservationStorageError(f"Failed to prepare data directory: {self.base_dir}") from error

    def _load_rows(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.reservations_file)

    def _store_rows(self, rows: list[dict[str, Any]]) -> None:
        self._write_yaml_list(self.reservations_file, rows)

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError as copy_error:
            raise ReservationStorageError(f"Failed to back up corrupted YAML file: {path}") from copy_error

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._log_lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def read_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)
