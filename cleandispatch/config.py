import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cleandispatch.db")
REDIS_URL = os.getenv("REDIS_URL")

# Security - tokens are issued by the identity service, we only verify them
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    import warnings

    warnings.warn(
        "JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Midtrans Snap Configuration
MIDTRANS_SERVER_KEY = os.getenv("MIDTRANS_SERVER_KEY", "")
MIDTRANS_CLIENT_KEY = os.getenv("MIDTRANS_CLIENT_KEY", "")
MIDTRANS_IS_PRODUCTION = os.getenv("MIDTRANS_IS_PRODUCTION", "false").lower() == "true"
# Re-fetch transaction status from Midtrans before trusting a webhook
MIDTRANS_VERIFY_WITH_STATUS_API = os.getenv("MIDTRANS_VERIFY_WITH_STATUS_API", "true").lower() == "true"
PAYMENT_ORDER_PREFIX = os.getenv("PAYMENT_ORDER_PREFIX", "CLEANDISPATCH")

# Outbound notification delivery (push gateway); logs only when unset
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")

# Service area: "min_lat,min_lng,max_lat,max_lng" boxes separated by ";"
# Default covers Lombok, Indonesia
SERVICE_AREA_BOUNDS = os.getenv("SERVICE_AREA_BOUNDS", "-9.1,115.8,-8.0,116.8")

# Dispatch
# Candidates ranked per booking; the provider ranks before truncating
DISPATCH_CANDIDATE_LIMIT = int(os.getenv("DISPATCH_CANDIDATE_LIMIT", "5"))
DISPATCH_MAX_RADIUS_METERS = float(os.getenv("DISPATCH_MAX_RADIUS_METERS", "50000"))

# Guest checkouts get a synthetic email under this domain
GUEST_EMAIL_SUFFIX = os.getenv("GUEST_EMAIL_SUFFIX", "@guest.cleandispatch.app")

# Order lifecycle timings (minutes)
UNPAID_ORDER_TIMEOUT_MINUTES = int(os.getenv("UNPAID_ORDER_TIMEOUT_MINUTES", "60"))
COMPLETION_GRACE_MINUTES = int(os.getenv("COMPLETION_GRACE_MINUTES", "5"))
SWEEP_INTERVAL_MINUTES = int(os.getenv("SWEEP_INTERVAL_MINUTES", "5"))

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
