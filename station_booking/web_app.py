from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Callable

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ReservationError
from .pools import PoolDirectory
from .models import ReservationRecord
from .service import ReservationService
from .yaml_store import ReservationYamlRepository

logger = logging.getLogger(__name__)


def create_app(
    data_dir: str | Path | None = None,
    pools: PoolDirectory | None = None,
    now_provider: Callable[[], datetime] | None = None,
    config: type[Config] = Config,
) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config)

    clock: Callable[[], datetime] = now_provider or datetime.now
    repository = ReservationYamlRepository(
        data_dir or config.DATA_DIR,
        transaction_timeout=config.TX_TIMEOUT_SECONDS,
        max_attempts=config.TX_MAX_ATTEMPTS,
        clock=clock,
    )
    directory = pools if pools is not None else PoolDirectory.from_yaml(
        Path(data_dir) / "pools.yaml" if data_dir else config.pools_path()
    )
    service = ReservationService(
        repository,
        directory,
        clock=clock,
        min_duration_minutes=config.MIN_DURATION_MINUTES,
        notes_max_length=config.NOTES_MAX_LENGTH,
    )
    app.extensions["reservation_service"] = service

    def _serialize(record: ReservationRecord) -> dict[str, Any]:
        payload = record.to_dict()
        pool = directory.get_pool(record.pool_id)
        payload["pool_name"] = pool.name if pool else None
        return payload

    def _requester() -> str:
        return g.requester_id

    @app.before_request
    def load_requester() -> Any:
        requester_id = str(request.headers.get(config.REQUESTER_HEADER, "")).strip()
        if request.path.startswith("/api/") and not requester_id:
            return jsonify({"ok": False, "error": "unauthenticated", "message": "Missing requester identity."}), 401
        g.requester_id = requester_id
        return None

    @app.errorhandler(ReservationError)
    def handle_reservation_error(error: ReservationError) -> Any:
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> Any:
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unhandled error while serving %s %s", request.method, request.path)
        return jsonify({"ok": False, "error": "internal", "message": "Unexpected server error."}), 500

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = f"Content-Type,{config.REQUESTER_HEADER}"
        return response

    @app.get("/health")
    def health() -> Any:
        return jsonify({"ok": True})

    @app.get("/api/availability")
    def check_availability() -> Any:
        args = request.args
        result = service.check_availability(
            pool_id=args.get("pool_id", ""),
            kind=args.get("kind"),
            subtype=args.get("subtype"),
            target_date=args.get("date", ""),
            start=args.get("start", ""),
            end=args.get("end", ""),
            unit_number=args.get("unit_number"),
        )
        return jsonify({"ok": True, **result.to_dict()})

    @app.get("/api/availability/units")
    def list_available_units() -> Any:
        args = request.args
        result = service.list_available_units(
            pool_id=args.get("pool_id", ""),
            kind=args.get("kind"),
            subtype=args.get("subtype"),
            target_date=args.get("date", ""),
            start=args.get("start", ""),
            end=args.get("end", ""),
        )
        return jsonify({"ok": True, **result.to_dict()})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        payload = request.get_json(silent=True) or {}
        created = service.create_reservation(
            requester_id=_requester(),
            pool_id=str(payload.get("pool_id", "")),
            kind=payload.get("kind"),
            subtype=payload.get("subtype"),
            unit_number=payload.get("unit_number"),
            target_date=str(payload.get("date", "")),
            start=str(payload.get("start", "")),
            end=str(payload.get("end", "")),
            notes=payload.get("notes"),
        )
        return jsonify({"ok": True, "reservation": _serialize(created)}), 201

    @app.get("/api/reservations/<reservation_id>")
    def get_reservation(reservation_id: str) -> Any:
        record = service.get_reservation(_requester(), reservation_id)
        return jsonify({"ok": True, "reservation": _serialize(record)})

    @app.post("/api/reservations/<reservation_id>/cancel")
    def cancel_reservation(reservation_id: str) -> Any:
        record = service.cancel_reservation(_requester(), reservation_id)
        return jsonify({"ok": True, "reservation": _serialize(record)})

    @app.post("/api/reservations/<reservation_id>/status")
    def set_reservation_status(reservation_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        record = service.set_reservation_status(_requester(), reservation_id, str(payload.get("status", "")))
        return jsonify({"ok": True, "reservation": _serialize(record)})

    @app.get("/api/my-reservations")
    def get_my_reservations() -> Any:
        listing = service.list_my_reservations(
            _requester(),
            status=request.args.get("status"),
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify(
            {
                "ok": True,
                "reservations": [_serialize(record) for record in listing.reservations],
                "categorized": {
                    "upcoming": [record.reservation_id for record in listing.upcoming],
                    "past": [record.reservation_id for record in listing.past],
                },
                "pagination": listing.pagination(),
            }
        )

    @app.get("/api/pools/<pool_id>/reservations")
    def get_pool_reservations(pool_id: str) -> Any:
        listing = service.list_pool_reservations(
            _requester(),
            pool_id,
            target_date=request.args.get("date"),
            status=request.args.get("status"),
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify(
            {
                "ok": True,
                "reservations": [_serialize(record) for record in listing.reservations],
                "pagination": listing.pagination(),
            }
        )

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
