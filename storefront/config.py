import os


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: Supabase and other PaaS providers hand out
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5173")
    # Public base URL the payment processors call back into
    WEBHOOK_BASE_URL = os.environ.get("WEBHOOK_BASE_URL") or APP_BASE_URL

    # --- Supabase Auth ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")            # e.g. https://xyz.supabase.co
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY")  # publishable key, sent as apikey

    # --- PagBank ---
    PAGBANK_TOKEN = os.environ.get("PAGBANK_TOKEN")
    PAGBANK_API_URL = os.environ.get("PAGBANK_API_URL", "https://api.pagseguro.com")
    PAGBANK_WEBHOOK_SECRET = os.environ.get("PAGBANK_WEBHOOK_SECRET")  # optional
    PAGBANK_TIMEOUT_SECONDS = int(os.environ.get("PAGBANK_TIMEOUT_SECONDS", 15))

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")

    # --- Checkout ---
    HIGH_VALUE_ORDER_THRESHOLD = float(
        os.environ.get("HIGH_VALUE_ORDER_THRESHOLD", 5000.00)
    )
    CHECKOUT_EXPIRATION_HOURS = int(os.environ.get("CHECKOUT_EXPIRATION_HOURS", 24))
    PENDING_PURCHASE_TTL_HOURS = int(os.environ.get("PENDING_PURCHASE_TTL_HOURS", 48))

    # --- Rate limits (requests per minute, per client IP) ---
    CHECKOUT_RATE_LIMIT = int(os.environ.get("CHECKOUT_RATE_LIMIT", 20))
    WEBHOOK_RATE_LIMIT = int(os.environ.get("WEBHOOK_RATE_LIMIT", 100))
    RECORD_PURCHASE_RATE_LIMIT = int(os.environ.get("RECORD_PURCHASE_RATE_LIMIT", 30))
    # memory:// counters are per process; point at redis:// when running
    # more than one instance.
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    # --- CORS ---
    CORS_ALLOWED_ORIGIN = os.environ.get("CORS_ALLOWED_ORIGIN", "*")

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
            "SUPABASE_URL",
            "SUPABASE_ANON_KEY",
            "PAGBANK_TOKEN",
            "APP_BASE_URL",
        ]
        # Stripe is the secondary processor; its webhook secret is only
        # required once a key is configured.
        if os.environ.get("STRIPE_SECRET_KEY"):
            required.append("STRIPE_WEBHOOK_SECRET")
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — in-memory SQLite, fake processor credentials."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_BASE_URL = "http://localhost:5173"
    WEBHOOK_BASE_URL = "https://functions.example.test"
    SUPABASE_URL = "https://project.supabase.test"
    SUPABASE_ANON_KEY = "anon-test-key"
    PAGBANK_TOKEN = "pagbank-test-token"
    PAGBANK_API_URL = "https://sandbox.api.pagseguro.com"
    PAGBANK_WEBHOOK_SECRET = None  # override per-test as needed
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    RATELIMIT_ENABLED = False  # Flask-Limiter only; checkout limits stay on
    RATELIMIT_STORAGE_URI = "memory://"

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
