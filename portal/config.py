"""
Company Portal
Environment configuration.

``create_app`` picks a class from ``config`` by name (``APP_ENV`` when not
given). Every setting can be overridden through an environment variable of
the same name.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Local fallbacks when no DATABASE_URL / TEST_DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'portal_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Per-process key outside production (ProductionConfig insists on SECRET_KEY)
_DEV_SECRET = secrets.token_hex(32)

_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _database_url(env_name="DATABASE_URL", fallback=None):
    """Read a database URL, accepting the legacy ``postgres://`` scheme."""
    raw = os.getenv(env_name, "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)

    # Redis (read-model cache + rate limiter storage)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # Comma-separated origins, or "*"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Email / SMTP (optional; dev mode logs without sending)
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "true")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@empresa.com.br")

    # Attachments
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(basedir, "instance", "uploads"))
    UPLOAD_TIMEOUT_SECONDS = float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "30"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(20 * 1024 * 1024)))

    # Workflow engine
    WORKFLOW_COUNTER_KEY = os.getenv("WORKFLOW_COUNTER_KEY", "workflowCounter")
    REQUEST_ID_WIDTH = int(os.getenv("REQUEST_ID_WIDTH", "4"))
    WORKFLOW_STRICT_NEXT_STAGE = _env_flag("WORKFLOW_STRICT_NEXT_STAGE")

    # "alias.example=canonical.example,...": both sides compare equal
    EMAIL_DOMAIN_ALIASES = os.getenv("EMAIL_DOMAIN_ALIASES", "")

    # Rate limits (Flask-Limiter syntax)
    WORKFLOW_WRITE_RATE_LIMIT = os.getenv("WORKFLOW_WRITE_RATE_LIMIT", "60/minute")
    API_READ_RATE_LIMIT = os.getenv("API_READ_RATE_LIMIT", "200/minute")

    # Logging (DEBUG outside production unless set)
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # Access log: requests slower than this are logged at WARNING
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))


class DevelopmentConfig(Config):
    """Local run: debug on, SQLite under instance/ unless DATABASE_URL is set."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(fallback=_SQLITE_DEV)
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}


class TestingConfig(Config):
    """pytest: in-memory SQLite, memory cache, no rate limits, no SMTP."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a StaticPool, which rejects the pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    REDIS_URL = "memory://"
    MAIL_SERVER = None
    UPLOAD_TIMEOUT_SECONDS = 5.0


class ProductionConfig(Config):
    """Deployed API; refuses to start without DATABASE_URL and SECRET_KEY."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # 30s statement timeout; also bounds how long the counter row lock is held
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("ProductionConfig needs DATABASE_URL")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("ProductionConfig needs SECRET_KEY")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
