"""
Baaseteen Case Workflow
Configuration classes for the app factory.

Selected by ``APP_ENV`` (development | testing | production):
    app.config.from_object(config[os.getenv("APP_ENV", "development")]())

Every setting can be overridden through the environment variable of the
same name.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'baaseteen_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Queue-pool sizing shared by the server-database configurations
_POOLED_ENGINE = {
    "pool_pre_ping": True,
    "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
    "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _database_url(default=None):
    raw = os.getenv("DATABASE_URL", "")
    # SQLAlchemy 2.0 only accepts the postgresql:// scheme
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    # Shared with the identity provider that issues access tokens
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "900"))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOLED_ENGINE)

    LOG_LEVEL = os.getenv("LOG_LEVEL")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))

    # Flask-Limiter storage; redis:// in production
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    WORKFLOW_RATE_LIMIT = os.getenv("WORKFLOW_RATE_LIMIT", "60/minute")
    READ_RATE_LIMIT = os.getenv("READ_RATE_LIMIT", "200/minute")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # BS-0001, BS-0002, ...
    CASE_NUMBER_PREFIX = os.getenv("CASE_NUMBER_PREFIX", "BS")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a StaticPool, which rejects queue-pool sizing
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-bytes"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    # Must be listed explicitly in production
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOLED_ENGINE,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

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
