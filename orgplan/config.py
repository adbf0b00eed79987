"""
Org Chart Planner
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
    settings = PlannerSettings.from_config(app.config)

Flask config classes carry environment defaults; ``PlannerSettings`` is the
typed, validated view the services receive once at startup.
"""

import os
import secrets
from dataclasses import dataclass

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'orgplan_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name, default="false"):
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


def _env_backoff(name, default):
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(float(part) for part in raw.split(",") if part.strip())


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Cache: Redis in production, in-process memory otherwise
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    PLAN_CACHE_TTL = int(os.getenv("PLAN_CACHE_TTL", "300"))

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Tabular store
    STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")  # sql | workbook
    WORKBOOK_PATH = os.getenv("WORKBOOK_PATH", os.path.join(basedir, "instance", "orgplan.xlsx"))

    # Identity supplied by the hosting platform
    # Trusted proxy header; only read when no IDENTITY_JWT_SECRET is set
    IDENTITY_HEADER = os.getenv("IDENTITY_HEADER") or None
    IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET")
    BOOTSTRAP_OWNER_EMAIL = os.getenv("BOOTSTRAP_OWNER_EMAIL")

    # Share links are built against this URL; request root when unset
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")

    # Storage-level access mirror for permission changes
    ACCESS_SYNC_URL = os.getenv("ACCESS_SYNC_URL")
    ACCESS_SYNC_EAGER = _env_bool("ACCESS_SYNC_EAGER")
    ACCESS_SYNC_MAX_ATTEMPTS = int(os.getenv("ACCESS_SYNC_MAX_ATTEMPTS", "3"))
    ACCESS_SYNC_BACKOFF = _env_backoff("ACCESS_SYNC_BACKOFF", (1.0, 4.0, 16.0))

    # Reject dangling parent references and cycles on save
    STRICT_TREE_VALIDATION = _env_bool("STRICT_TREE_VALIDATION")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    REDIS_URL = "memory://"
    STORE_BACKEND = "sql"
    BOOTSTRAP_OWNER_EMAIL = "owner@example.com"
    PUBLIC_BASE_URL = "https://orgplan.test/"
    IDENTITY_JWT_SECRET = "test-identity-secret"
    ACCESS_SYNC_URL = None
    ACCESS_SYNC_EAGER = True
    ACCESS_SYNC_BACKOFF = (0.0,)
    STRICT_TREE_VALIDATION = False
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        for key in ("BOOTSTRAP_OWNER_EMAIL", "PUBLIC_BASE_URL"):
            if not getattr(self, key):
                raise RuntimeError(f"{key} environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


STORE_BACKENDS = ("sql", "workbook")

REQUIRED_KEYS = (
    "STORE_BACKEND",
    "PLAN_CACHE_TTL",
    "ACCESS_SYNC_MAX_ATTEMPTS",
    "ACCESS_SYNC_BACKOFF",
)


@dataclass(frozen=True)
class PlannerSettings:
    """Typed planner settings, resolved once in ``create_app``."""

    store_backend: str
    workbook_path: str | None
    plan_cache_ttl: int
    identity_header: str | None
    identity_jwt_secret: str | None
    bootstrap_owner_email: str | None
    public_base_url: str | None
    access_sync_url: str | None
    access_sync_eager: bool
    access_sync_max_attempts: int
    access_sync_backoff: tuple
    strict_tree_validation: bool

    @classmethod
    def from_config(cls, cfg) -> "PlannerSettings":
        """Build settings from a Flask config mapping.

        Raises:
            RuntimeError: a required key is missing or holds an invalid value.
        """
        missing = [key for key in REQUIRED_KEYS if cfg.get(key) in (None, "")]
        if missing:
            raise RuntimeError(f"Missing required planner settings: {', '.join(missing)}")

        backend = str(cfg["STORE_BACKEND"]).lower()
        if backend not in STORE_BACKENDS:
            raise RuntimeError(f"STORE_BACKEND must be one of {STORE_BACKENDS}, got {backend!r}")
        if backend == "workbook" and not cfg.get("WORKBOOK_PATH"):
            raise RuntimeError("WORKBOOK_PATH is required when STORE_BACKEND=workbook")

        attempts = int(cfg["ACCESS_SYNC_MAX_ATTEMPTS"])
        if attempts < 1:
            raise RuntimeError("ACCESS_SYNC_MAX_ATTEMPTS must be at least 1")

        return cls(
            store_backend=backend,
            workbook_path=cfg.get("WORKBOOK_PATH"),
            plan_cache_ttl=int(cfg["PLAN_CACHE_TTL"]),
            identity_header=cfg.get("IDENTITY_HEADER") or None,
            identity_jwt_secret=cfg.get("IDENTITY_JWT_SECRET") or None,
            bootstrap_owner_email=(cfg.get("BOOTSTRAP_OWNER_EMAIL") or "").strip().lower() or None,
            public_base_url=cfg.get("PUBLIC_BASE_URL") or None,
            access_sync_url=cfg.get("ACCESS_SYNC_URL") or None,
            access_sync_eager=bool(cfg.get("ACCESS_SYNC_EAGER", False)),
            access_sync_max_attempts=attempts,
            access_sync_backoff=tuple(cfg["ACCESS_SYNC_BACKOFF"]),
            strict_tree_validation=bool(cfg.get("STRICT_TREE_VALIDATION", False)),
        )
