import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# "development" or "production" - test-mode payments are only processed in development
APP_ENV = os.getenv("APP_ENV", "development")

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Stripe Webhook Configuration
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
if not STRIPE_WEBHOOK_SECRET:
    import warnings

    warnings.warn(
        "STRIPE_WEBHOOK_SECRET not set! Payment webhooks will be rejected", RuntimeWarning, stacklevel=2
    )
# Maximum age of a signed webhook in seconds (5 minutes)
WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

# Google Calendar Service Account Configuration
# GOOGLE_SERVICE_ACCOUNT_KEY holds the full JSON key; CALENDAR_ID doubles as the
# domain-wide delegation subject
GOOGLE_SERVICE_ACCOUNT_KEY = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY")
CALENDAR_ID = os.getenv("CALENDAR_ID", "primary")
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "America/New_York")
CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "10"))
CALENDAR_MAX_RETRIES = int(os.getenv("CALENDAR_MAX_RETRIES", "3"))

# S3-compatible Object Store (AWS S3 or Cloudflare R2)
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")  # e.g. https://<account>.r2.cloudflarestorage.com
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_ACCESS_KEY_ID = os.getenv("S3_ACCESS_KEY_ID")
S3_SECRET_ACCESS_KEY = os.getenv("S3_SECRET_ACCESS_KEY")
S3_REGISTRATIONS_BUCKET = os.getenv("S3_REGISTRATIONS_BUCKET", "registrations")
REGISTRATIONS_PREFIX = "registrations/"

# Redis side cache for the admin dashboard (optional)
REDIS_URL = os.getenv("REDIS_URL")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "New Era Hockey <noreply@newerahockeytraining.com>")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
CONTACT_EMAIL = os.getenv("CONTACT_EMAIL", "coachwill@newerahockeytraining.com")

# Admin API key for the registration management endpoints
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Google Calendar color IDs (Google's fixed palette)
CALENDAR_COLORS = {
    "camp": "11",  # Red (Tomato)
    "lesson": "9",  # Blue (Blueberry)
    "at_home_available": "6",  # Orange (Tangerine)
    "at_home_booked": "5",  # Yellow (Banana)
    "mt_vernon_available": "10",  # Green (Basil)
    "mt_vernon_registered": "5",  # Yellow (Banana) - shared with at_home_booked
    "rockville_small_group": "7",  # Peacock
    "dev_only": "8",  # Graphite - hidden in production
}

# Default capacities by booking type
DEFAULT_CAPACITY = {
    "camp": 20,
    "lesson": 10,
    "at_home_training": 1,
    "mt_vernon_skating": 1,
    "rockville_small_group": 5,
    "other": 15,
}

# Booking types that never sell out
UNLIMITED_CAPACITY_TYPES = frozenset(
    t.strip() for t in os.getenv("UNLIMITED_CAPACITY_TYPES", "camp").split(",") if t.strip()
)

# Accepted range for "Spots: N" / "Capacity: N" in event descriptions
MIN_DESCRIPTION_CAPACITY = 1
MAX_DESCRIPTION_CAPACITY = 100

# Mutually exclusive at-home slots sharing one travel visit ("HH:MM" local time)
PAIRED_SLOT_BUCKETS = tuple(
    b.strip() for b in os.getenv("PAIRED_SLOT_BUCKETS", "15:30,17:00").split(",") if b.strip()
)

# Side cache TTLs (seconds)
CACHE_REGISTRATION_TTL = 60
CACHE_STATS_TTL = 300


def is_production() -> bool:
    return APP_ENV.lower() == "production"
