# backend/stockscan/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockscan.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Keystroke gap (ms) above which a hardware-scanner burst is discarded
    SCANNER_KEY_GAP_MS = int(os.environ.get("SCANNER_KEY_GAP_MS", "50"))

    # Camera initialization retry policy
    CAMERA_MAX_ATTEMPTS = int(os.environ.get("CAMERA_MAX_ATTEMPTS", "5"))
    CAMERA_RETRY_BACKOFF_SECONDS = float(os.environ.get("CAMERA_RETRY_BACKOFF_SECONDS", "0.2"))

    # Warn when a product bound to a line has fewer units available than this
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "6"))

    # Delimiter used for code/tag lists in persisted rows
    CODE_DELIMITER = os.environ.get("CODE_DELIMITER", ",")

    # Open scan sessions idle longer than this are closed and dropped (0 disables)
    SCAN_SESSION_TTL_SECONDS = int(os.environ.get("SCAN_SESSION_TTL_SECONDS", "1800"))
