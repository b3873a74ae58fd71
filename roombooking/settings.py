import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
rooms_ms_url = os.environ.get("ROOMS_MS_URL", "http://localhost:8001")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
HISTORY_CACHE_TTL = int(os.environ.get("HISTORY_CACHE_TTL", "300"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Both checks are off by default: the booking store accepts overlapping
# windows and unknown room ids unless told otherwise.
STRICT_ROOM_CHECK = os.environ.get("STRICT_ROOM_CHECK", "false").lower() == "true"
ENFORCE_ROOM_OVERLAP = (
    os.environ.get("ENFORCE_ROOM_OVERLAP", "false").lower() == "true"
)
