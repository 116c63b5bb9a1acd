import os
from dotenv import load_dotenv

load_dotenv()

FAMILY_API_BASE_URL = os.getenv("FAMILY_API_BASE_URL", "http://localhost:3000/api")
# Optional: if the family backend requires an API key or bearer token, set
# FAMILY_API_KEY. By default it's sent as an Authorization header with the
# 'Bearer ' prefix. Override the header name or prefix with
# FAMILY_API_KEY_HEADER and FAMILY_API_KEY_PREFIX.
FAMILY_API_KEY = os.getenv("FAMILY_API_KEY")
FAMILY_API_KEY_HEADER = os.getenv("FAMILY_API_KEY_HEADER", "Authorization")
FAMILY_API_KEY_PREFIX = os.getenv("FAMILY_API_KEY_PREFIX", "Bearer ")
FAMILY_API_TIMEOUT_SECONDS = float(os.getenv("FAMILY_API_TIMEOUT_SECONDS", 15.0))

# Trailing window of completion history used for workload statistics.
HISTORY_WINDOW_DAYS = int(os.getenv("HISTORY_WINDOW_DAYS", 30))

# Calendar lookups are cached per member and date.
CALENDAR_CACHE_TTL_MINUTES = float(os.getenv("CALENDAR_CACHE_TTL_MINUTES", 15))
CALENDAR_CACHE_MAX_ENTRIES = int(os.getenv("CALENDAR_CACHE_MAX_ENTRIES", 1024))
AVAILABILITY_TIMEOUT_SECONDS = float(os.getenv("AVAILABILITY_TIMEOUT_SECONDS", 5.0))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
