import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Remote data API (Supabase/PostgREST). Also hosts the identity provider and edge functions.
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
DATA_STORE_TIMEOUT = float(os.getenv("DATA_STORE_TIMEOUT", "30"))

# "supabase" or "sql" - default to the remote API when it is configured
DATA_STORE_BACKEND = os.getenv("DATA_STORE_BACKEND", "supabase" if SUPABASE_URL else "sql").lower()

# SQL row store (local development and tests)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./operations.db")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
if not STRIPE_SECRET_KEY:
    import warnings

    warnings.warn(
        "STRIPE_SECRET_KEY not set! Payment endpoints will fail until configured",
        RuntimeWarning,
        stacklevel=2,
    )
STRIPE_API_URL = os.getenv("STRIPE_API_URL", "https://api.stripe.com/v1")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")
# Extra reads of an intent that is still "processing" after confirmation
STRIPE_CONFIRM_POLL_ATTEMPTS = int(os.getenv("STRIPE_CONFIRM_POLL_ATTEMPTS", "3"))
STRIPE_CONFIRM_POLL_INTERVAL = float(os.getenv("STRIPE_CONFIRM_POLL_INTERVAL", "1.0"))

# Customer-facing app that renders the invoice payment page
PAYMENT_LINK_BASE_URL = os.getenv("PAYMENT_LINK_BASE_URL", "https://app.bremembered.io")

# Skip bearer token verification - ONLY for local development
AUTH_DISABLED = os.getenv("AUTH_DISABLED", "false").lower() == "true"

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
