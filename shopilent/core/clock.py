from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current time in UTC. All persisted timestamps use this."""
    return datetime.now(timezone.utc)
