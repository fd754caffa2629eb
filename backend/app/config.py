# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored in backend/instance/stocktake.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stocktake.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection pool sizing (ignored for SQLite)
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", "5"))
    DB_POOL_TIMEOUT = int(os.environ.get("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE = int(os.environ.get("DB_POOL_RECYCLE", "1800"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Defaults substituted when a stocktake is created without identity fields
    STOCKTAKE_DEFAULT_BRANCH = os.environ.get("STOCKTAKE_DEFAULT_BRANCH", "Chi nhánh mặc định")
    STOCKTAKE_DEFAULT_STAFF = os.environ.get("STOCKTAKE_DEFAULT_STAFF", "Nhân viên hệ thống")

    PRODUCT_SEARCH_LIMIT = int(os.environ.get("PRODUCT_SEARCH_LIMIT", "20"))
    PRODUCT_PAGE_SIZE = int(os.environ.get("PRODUCT_PAGE_SIZE", "20"))
    PRODUCT_MAX_PAGE_SIZE = int(os.environ.get("PRODUCT_MAX_PAGE_SIZE", "100"))
