import os
from pathlib import Path


class Config:
    # Storage
    DATA_DIR = os.getenv("STATION_BOOKING_DATA_DIR", "data")
    POOLS_FILE = os.getenv("STATION_BOOKING_POOLS_FILE")

    # Transactions: deadline per authoritative write and optimistic retries
    TX_TIMEOUT_SECONDS = float(os.getenv("STATION_BOOKING_TX_TIMEOUT_SECONDS", "5.0"))
    TX_MAX_ATTEMPTS = int(os.getenv("STATION_BOOKING_TX_MAX_ATTEMPTS", "5"))

    # Booking rules
    MIN_DURATION_MINUTES = int(os.getenv("STATION_BOOKING_MIN_DURATION_MINUTES", "60"))
    NOTES_MAX_LENGTH = int(os.getenv("STATION_BOOKING_NOTES_MAX_LENGTH", "500"))

    # Header set by the identity collaborator in front of the API
    REQUESTER_HEADER = "X-Requester-Id"

    @classmethod
    def pools_path(cls) -> Path:
        if cls.POOLS_FILE:
            return Path(cls.POOLS_FILE)
        return Path(cls.DATA_DIR) / "pools.yaml"
