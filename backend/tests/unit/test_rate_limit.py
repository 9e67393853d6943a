from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from store_platform.models.rate_limit_bucket import RateLimitBucket
from store_platform.services.rate_limit import RateLimiter


def test_rate_limit_allows_then_blocks_within_window():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    RateLimitBucket.__table__.create(engine)

    limiter = RateLimiter(window_seconds=60)

    with Session(engine) as db:
        ok_1, remaining_1 = limiter.allow(db, "create:127.0.0.1", 2)
        ok_2, remaining_2 = limiter.allow(db, "create:127.0.0.1", 2)
        ok_3, remaining_3 = limiter.allow(db, "create:127.0.0.1", 2)

    assert ok_1 is True and remaining_1 == 1
    assert ok_2 is True and remaining_2 == 0
    assert ok_3 is False and remaining_3 == 0


def test_rate_limit_resets_after_window():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    RateLimitBucket.__table__.create(engine)

    limiter = RateLimiter(window_seconds=60)
    stale = datetime.now(timezone.utc) - timedelta(seconds=120)

    with Session(engine) as db:
        db.add(RateLimitBucket(key="action:10.0.0.1", hits=10, window_started_at=stale))
        db.commit()
        ok, remaining = limiter.allow(db, "action:10.0.0.1", 10)

    assert ok is True and remaining == 9


def test_rate_limit_keys_are_independent():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    RateLimitBucket.__table__.create(engine)

    limiter = RateLimiter(window_seconds=60)

    with Session(engine) as db:
        assert limiter.allow(db, "create:10.0.0.1", 1)[0] is True
        assert limiter.allow(db, "create:10.0.0.1", 1)[0] is False
        assert limiter.allow(db, "create:10.0.0.2", 1)[0] is True
