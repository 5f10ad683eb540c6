import os

# PostgreSQL settings
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "attendance")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# Identity boundary: tokens are issued by the external auth service
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Campus geofence
CAMPUS_LAT = float(os.getenv("CAMPUS_LAT", "0"))
CAMPUS_LNG = float(os.getenv("CAMPUS_LNG", "0"))
CAMPUS_RADIUS_M = float(os.getenv("CAMPUS_RADIUS_M", "200"))

# Sessions
SESSION_CODE_ATTEMPTS = int(os.getenv("SESSION_CODE_ATTEMPTS", "5"))
DEFAULT_ROSTER_SIZE = int(os.getenv("DEFAULT_ROSTER_SIZE", "60"))
MAX_SESSION_MINUTES = int(os.getenv("MAX_SESSION_MINUTES", "480"))

# Realtime
BROADCAST_QUEUE_SIZE = int(os.getenv("BROADCAST_QUEUE_SIZE", "100"))

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()
DEBUG = ENVIRONMENT in ["development", "dev"]

# Database retry settings
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_DELAY = float(os.getenv("DB_RETRY_DELAY", "1.0"))
DB_RETRY_BACKOFF_FACTOR = float(os.getenv("DB_RETRY_BACKOFF_FACTOR", "2.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json" if not DEBUG else "text")

# Rate limiting
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Application
APP_NAME = os.getenv("APP_NAME", "Class Attendance API")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]


def validate_config():
    """Validate settings at startup"""
    errors = []

    if not JWT_SECRET:
        errors.append("JWT_SECRET is required")

    if not DATABASE_URL:
        errors.append("DATABASE_URL is required")

    if not -90 <= CAMPUS_LAT <= 90:
        errors.append("CAMPUS_LAT must be between -90 and 90")

    if not -180 <= CAMPUS_LNG <= 180:
        errors.append("CAMPUS_LNG must be between -180 and 180")

    if CAMPUS_RADIUS_M <= 0:
        errors.append("CAMPUS_RADIUS_M must be > 0")

    if SESSION_CODE_ATTEMPTS < 1:
        errors.append("SESSION_CODE_ATTEMPTS must be >= 1")

    if BROADCAST_QUEUE_SIZE < 1:
        errors.append("BROADCAST_QUEUE_SIZE must be >= 1")

    if DB_RETRY_ATTEMPTS < 1:
        errors.append("DB_RETRY_ATTEMPTS must be >= 1")

    if DB_RETRY_DELAY < 0:
        errors.append("DB_RETRY_DELAY must be >= 0")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
