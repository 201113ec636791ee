"""Default configuration for the barbershop backend."""
from __future__ import annotations

import os


class DefaultConfig:
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///barbershop.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tokens are issued by the external auth service; without a key every check fails.
    SECRET_KEY = os.environ.get("SECRET_KEY")
    AUTH_TOKEN_MAX_AGE = 86400

    # Default listing window around "today" when no bounds are requested.
    APPOINTMENT_WINDOW_DAYS_BEFORE = 7
    APPOINTMENT_WINDOW_DAYS_AFTER = 60

    RECURRENCE_BACKFILL_LOOKBACK_DAYS = 180
    RECURRENCE_MIN_MEMBERS = 3
    RECURRENCE_GAP_TOLERANCE_DAYS = 1
    RECURRENCE_MAX_OCCURRENCES = 52

    DEFAULT_APPOINTMENT_MINUTES = 30

    # Entries kept in the top products, services and clients of shop reports.
    REPORT_TOP_LIMIT = 10

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
