import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://shopilent:shopilent@db:5432/shopilent")

# Application Metadata
PROJECT_NAME = "Shopilent"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Outbox Processing Configuration
OUTBOX_ENABLED = os.getenv("OUTBOX_ENABLED", "true").lower() in ("1", "true", "yes")
POLLING_INTERVAL = float(os.getenv("OUTBOX_POLLING_INTERVAL", 5))  # Seconds between drain passes
BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", 50))  # Messages fetched per pass
MAX_RETRIES = int(os.getenv("OUTBOX_MAX_RETRIES", 5))  # Failures before a message is parked as failed
RETRY_BASE_SECONDS = int(os.getenv("OUTBOX_RETRY_BASE_SECONDS", 2))
MAX_BACKOFF_SECONDS = int(os.getenv("OUTBOX_MAX_BACKOFF_SECONDS", 300))
CLEANUP_INTERVAL_HOURS = float(os.getenv("OUTBOX_CLEANUP_INTERVAL_HOURS", 24))
DAYS_TO_KEEP_PROCESSED = int(os.getenv("OUTBOX_DAYS_TO_KEEP", 7))

# Payment Provider Webhooks
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", 300))  # Replay window

# Bearer Token Authentication
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ISSUER = os.getenv("JWT_ISSUER", "shopilent")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "shopilent-api")
ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", 30))
