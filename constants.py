import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

SERVER_HOST = os.getenv("HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("PORT", 8000))
SERVER_RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
SERVER_WORKERS = int(os.getenv("WORKERS", 1))

# Room lifetimes
DEFAULT_TTL_MINUTES = 10
MIN_TTL_MINUTES = 0  # 0 = permanent (no expiry)
MAX_TTL_MINUTES = 60
MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 10
MAX_EXTEND_MINUTES = 60

SECURE_ROOM_TTL_SECONDS = 60 * 60
SECURE_STREAM_MAXLEN = 50
ROOM_EVENT_STREAM_MAXLEN = 100
LIFECYCLE_FALLBACK_TTL_SECONDS = 120
PERMANENT_FALLBACK_TTL_SECONDS = 60 * 60

# Redis TTL sentinels
TTL_NO_EXPIRY = -1
TTL_MISSING = -2

# Secure gatekeeper
KDF_DEFAULT_ITERATIONS = 100_000
KDF_MIN_ITERATIONS = 100_000
KDF_MAX_ITERATIONS = 500_000
ROOM_KEY_BYTES = 32
GATEKEEPER_TAG = "redacted:gatekeeper:v1"

# Cookies
AUTH_TOKEN_COOKIE = "x-auth-token"
SESSION_COOKIE = "x-session"
GUEST_PARTICIPANT_COOKIE = "x-participant-id"
SECURE_ROOM_COOKIE_PREFIX = "room-secure-"
ROOM_VERIFIED_COOKIE_PREFIX = "room-verified-"
LONG_COOKIE_MAX_AGE = 30 * 24 * 60 * 60

