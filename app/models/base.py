from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp; all engine timestamps are stored in UTC."""
    return datetime.now(timezone.utc)
