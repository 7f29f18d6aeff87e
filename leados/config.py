import os


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

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Function endpoints ---
    # Shared bearer secret for machine callers of /functions/v1/*
    SERVICE_API_KEY = os.environ.get("SERVICE_API_KEY")

    # --- LLM vendors ---
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_API_URL = os.environ.get(
        "GEMINI_API_URL",
        "https://generativelanguage.googleapis.com/v1beta/models",
    )
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL")  # None = api.openai.com
    LLM_TIMEOUT = int(os.environ.get("LLM_TIMEOUT", 60))

    # --- Email (Resend HTTP API) ---
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Leados AI")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS", "onboarding@leados.ai")
    CAMPAIGN_SENDER_NAME = os.environ.get(
        "CAMPAIGN_SENDER_NAME", "Equipe Consultoria Tributária Premium"
    )

    # --- WhatsApp Business (Meta Graph API) ---
    WHATSAPP_VERIFY_TOKEN = os.environ.get("WHATSAPP_VERIFY_TOKEN")
    WHATSAPP_GRAPH_URL = os.environ.get(
        "WHATSAPP_GRAPH_URL", "https://graph.facebook.com/v17.0"
    )
    WHATSAPP_FALLBACK_PHONE = os.environ.get(
        "WHATSAPP_FALLBACK_PHONE", "5562981959829"
    )  # support line used when a lead has no phone
    WHATSAPP_BRAND_NAME = os.environ.get(
        "WHATSAPP_BRAND_NAME", "Consultoria Tributária Premium"
    )

    # --- ReceitaWS (CNPJ lookups) ---
    RECEITAWS_URL = os.environ.get(
        "RECEITAWS_URL", "https://www.receitaws.com.br/v1/cnpj"
    )
    RECEITAWS_DELAY_SECONDS = float(os.environ.get("RECEITAWS_DELAY_SECONDS", 1.0))

    # --- External sales agent (content generation, optional) ---
    SALES_AGENT_URL = os.environ.get("SALES_AGENT_URL")  # None = Gemini only
    SALES_AGENT_API_KEY = os.environ.get("SALES_AGENT_API_KEY")

    # --- Meetings ---
    MEETING_TIMEZONE = os.environ.get("MEETING_TIMEZONE", "America/Sao_Paulo")
    MEETING_LINK_BASE = os.environ.get(
        "MEETING_LINK_BASE", "https://meet.google.com/lookup"
    )

    # --- Stripe (plan upgrades) ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRO_PRICE_ID = os.environ.get("STRIPE_PRO_PRICE_ID")
    STRIPE_ENTERPRISE_PRICE_ID = os.environ.get("STRIPE_ENTERPRISE_PRICE_ID")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///leados-dev.db"
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing: in-memory SQLite, CSRF disabled, vendors unconfigured."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_BASE_URL = "http://localhost:5000"
    SERVICE_API_KEY = "svc_test_key"
    GEMINI_API_KEY = None
    OPENAI_API_KEY = None
    RESEND_API_KEY = None
    WHATSAPP_VERIFY_TOKEN = "verify_test_token"
    RECEITAWS_DELAY_SECONDS = 0
    SALES_AGENT_URL = None
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_PRO_PRICE_ID = "price_pro_test"
    STRIPE_ENTERPRISE_PRICE_ID = "price_enterprise_test"
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode; everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
