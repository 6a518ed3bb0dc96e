# stockroom/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the working directory by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockroom.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a writer waits on a locked database before giving up (Busy)
    STOCKROOM_LOCK_TIMEOUT = float(os.environ.get("STOCKROOM_LOCK_TIMEOUT", "5"))

    # Retry policy for contention failures (see services/concurrency.py)
    STOCKROOM_RETRY_ATTEMPTS = int(os.environ.get("STOCKROOM_RETRY_ATTEMPTS", "3"))
    STOCKROOM_RETRY_BACKOFF = float(os.environ.get("STOCKROOM_RETRY_BACKOFF", "0.05"))
