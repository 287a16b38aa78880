"""
AgencyFlow configuration, selected by APP_ENV (development / testing / production).

Domain switches:
    PROJECT_STRICT_TRANSITIONS  enforce the status transition table (off: status is free text)
    REQUIREMENT_URL_PREFIX      public prefix for requirement PDFs recorded via upload
    NOTIFICATION_PAGE_SIZE      default inbox page size
    BROADCAST_RATE_LIMIT        Flask-Limiter rule for POST /notifications/broadcast
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _database_url():
    # SQLAlchemy 2.x only accepts the postgresql:// scheme.
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else None


_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _POOL_OPTIONS

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    BROADCAST_RATE_LIMIT = os.getenv("BROADCAST_RATE_LIMIT", "10 per minute")

    PROJECT_STRICT_TRANSITIONS = _env_flag("PROJECT_STRICT_TRANSITIONS")
    REQUIREMENT_URL_PREFIX = os.getenv("REQUIREMENT_URL_PREFIX", "/uploads/storage/project-files")
    NOTIFICATION_PAGE_SIZE = int(os.getenv("NOTIFICATION_PAGE_SIZE", "10"))


class DevelopmentConfig(Config):
    """Local PostgreSQL when DATABASE_URL is set, otherwise instance/agencyflow_dev.db."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = (
        _database_url() or f"sqlite:///{os.path.join(basedir, 'instance', 'agencyflow_dev.db')}"
    )
    SQLALCHEMY_ENGINE_OPTIONS = _POOL_OPTIONS if _database_url() else {}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    PROJECT_STRICT_TRANSITIONS = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        # 30s statement timeout.
        "connect_args": {"options": "-c statement_timeout=30000"},
    }
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
