from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from store_platform.models.rate_limit_bucket import RateLimitBucket


class RateLimiter:
    def __init__(self, window_seconds: int):
        self.window = timedelta(seconds=window_seconds)

    def allow(self, db: Session, key: str, limit: int) -> tuple[bool, int]:
        now = datetime.now(timezone.utc)
        bucket = db.get(RateLimitBucket, key)
        if bucket is None:
            db.add(RateLimitBucket(key=key, hits=1, window_started_at=now))
            db.commit()
            return True, limit - 1

        started = bucket.window_started_at
        if started.tzinfo is None:
            # SQLite hands back naive timestamps.
            started = started.replace(tzinfo=timezone.utc)
        if now - started > self.window:
            bucket.hits = 1
            bucket.window_started_at = now
            db.commit()
            return True, limit - 1

        if bucket.hits >= limit:
            return False, 0

        bucket.hits += 1
        db.commit()
        return True, limit - bucket.hits
