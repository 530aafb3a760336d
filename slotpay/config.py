import os
from decimal import Decimal


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None
    # Direct (non-pooled) URL for migrations (DDL), if a pooler is in front.
    DATABASE_DIRECT_URL = os.environ.get("DATABASE_DIRECT_URL")

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")

    # --- Auth (tokens issued by the external identity provider) ---
    AUTH_JWT_SECRET = os.environ.get("AUTH_JWT_SECRET")
    AUTH_JWT_AUDIENCE = os.environ.get("AUTH_JWT_AUDIENCE", "authenticated")
    AUTH_JWT_ALGORITHM = "HS256"

    # --- Checkout ---
    CURRENCY = os.environ.get("CURRENCY", "gbp")
    # Stripe rejects charges below this amount, so payable never drops under it.
    MIN_CHARGE_MINOR_UNITS = int(os.environ.get("MIN_CHARGE_MINOR_UNITS", 50))
    CHECKOUT_SUCCESS_URL = os.environ.get(
        "CHECKOUT_SUCCESS_URL", "http://localhost:5000/bookings?stripe=success"
    )
    CHECKOUT_CANCEL_URL = os.environ.get(
        "CHECKOUT_CANCEL_URL", "http://localhost:5000/?stripe=cancel"
    )
    CHECKOUT_RATE_LIMIT = os.environ.get("CHECKOUT_RATE_LIMIT", "20 per minute")

    # --- Credits ---
    # 1 credit == 1 minor unit. Award 1% of the amount paid, only on
    # purchases of at least 1000 minor units (e.g. £10).
    AWARD_RATE = Decimal(os.environ.get("AWARD_RATE", "0.01"))
    AWARD_MIN_AMOUNT_MINOR_UNITS = int(
        os.environ.get("AWARD_MIN_AMOUNT_MINOR_UNITS", 1000)
    )

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "AUTH_JWT_SECRET",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — in-memory SQLite, rate limits off."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    AUTH_JWT_SECRET = "test-jwt-secret-not-for-production-use"
    AUTH_JWT_AUDIENCE = "authenticated"
    CURRENCY = "gbp"
    MIN_CHARGE_MINOR_UNITS = 50
    AWARD_RATE = Decimal("0.01")
    AWARD_MIN_AMOUNT_MINOR_UNITS = 1000
    CHECKOUT_SUCCESS_URL = "http://localhost:5000/bookings?stripe=success"
    CHECKOUT_CANCEL_URL = "http://localhost:5000/?stripe=cancel"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
