from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what Mongo hands back."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    # Mongo keeps millisecond precision
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def expires_in(seconds: int) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


def is_expired(expires_at: datetime) -> bool:
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return expires_at <= utcnow()
