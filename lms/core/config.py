from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///lms.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(10 * 1024 * 1024)))
    # Review queue: rows fetched per entity type, rows per API page, and the
    # "overdue" badge threshold.
    REVIEW_QUEUE_LIMIT = int(os.getenv("REVIEW_QUEUE_LIMIT", "500"))
    REVIEW_QUEUE_PAGE_SIZE = int(os.getenv("REVIEW_QUEUE_PAGE_SIZE", "50"))
    REVIEW_OVERDUE_DAYS = int(os.getenv("REVIEW_OVERDUE_DAYS", "2"))
    NOTIFICATIONS_PAGE_SIZE = int(os.getenv("NOTIFICATIONS_PAGE_SIZE", "50"))
