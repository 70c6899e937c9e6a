import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file for development; PostgreSQL in production via DATABASE_URL
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "jobtracker.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    # Schema normally comes from `flask db upgrade`
    AUTO_CREATE_TABLES = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "15"))
    FAILED_LOGIN_WINDOW_MINUTES = int(os.getenv("FAILED_LOGIN_WINDOW_MINUTES", "15"))
    FAILED_LOGIN_ALERT_THRESHOLD = int(os.getenv("FAILED_LOGIN_ALERT_THRESHOLD", "3"))
    NEW_DEVICE_ALERTS = os.getenv("NEW_DEVICE_ALERTS", "true").lower() == "true"

    # Impossible travel
    IMPOSSIBLE_TRAVEL_WINDOW_HOURS = 24
    IMPOSSIBLE_TRAVEL_MAX_SPEED_KMH = 1000
    IMPOSSIBLE_TRAVEL_MIN_DISTANCE_KM = 10
    IMPOSSIBLE_TRAVEL_MIN_RESOLUTION_SECONDS = 30

    # AI assist quota
    AI_ASSIST_DAILY_LIMIT = int(os.getenv("AI_ASSIST_DAILY_LIMIT", "10"))
    QUOTA_TIMEZONE = os.getenv("QUOTA_TIMEZONE", "UTC")
    QUOTA_MAX_OVERRIDE = 10000

    SESSION_UPSERT_RETRIES = 3

    # IP geolocation (ip-api.com compatible response)
    GEO_LOOKUP_ENABLED = os.getenv("GEO_LOOKUP_ENABLED", "false").lower() == "true"
    GEO_LOOKUP_URL = os.getenv("GEO_LOOKUP_URL", "http://ip-api.com/json/{ip}?fields=status,lat,lon,city,country")
    GEO_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("GEO_LOOKUP_TIMEOUT_SECONDS", "2.0"))

    # External identity provider
    IDENTITY_PROVIDER_URL = os.getenv("IDENTITY_PROVIDER_URL")
    IDENTITY_PROVIDER_API_KEY = os.getenv("IDENTITY_PROVIDER_API_KEY")
    IDENTITY_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("IDENTITY_PROVIDER_TIMEOUT_SECONDS", "5.0"))
    IDENTITY_PROVIDER = None  # object override, used by tests

    # Alert delivery callable; None means SMTP email
    ALERT_DELIVERY = None

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = 10

    # Retention job
    RETENTION_SECRET = os.getenv("RETENTION_SECRET")
    RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "30"))

    # Basic app settings
    DEBUG = False
