import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promo_engine.config import Settings, settings
from promo_engine.models.rate_limit import RateLimitState
from promo_engine.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class AttemptLimiter:
    """Sliding-window throttle on code validation attempts, keyed by user id.

    State lives in the ``rate_limit_states`` table and is best-effort: there
    is no cross-process lock, and storage failures let the attempt through
    rather than locking legitimate users out.
    """

    def __init__(self, max_attempts: int = 5, window: timedelta = timedelta(minutes=15)):
        self.max_attempts = max_attempts
        self.window = window

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AttemptLimiter":
        return cls(
            max_attempts=cfg.rate_limit_max_attempts,
            window=timedelta(minutes=cfg.rate_limit_window_minutes),
        )

    def check_and_consume(self, db: Session, user_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        try:
            allowed = self._consume(db, user_id, now)
            db.commit()
            return allowed
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Rate limit storage failed for user %s, allowing attempt", user_id, exc_info=True)
            return True

    def _consume(self, db: Session, user_id: str, now: datetime) -> bool:
        state = db.get(RateLimitState, user_id)
        if state is None:
            state = RateLimitState(user_id=user_id, attempts=0, last_attempt=now)
            db.add(state)

        blocked_until = as_utc(state.blocked_until)
        if blocked_until is not None and blocked_until > now:
            return False

        if now - as_utc(state.last_attempt) > self.window:
            state.attempts = 0
            state.blocked_until = None

        state.attempts += 1
        state.last_attempt = now

        if state.attempts > self.max_attempts:
            state.blocked_until = now + self.window
            logger.info("User %s blocked from code validation until %s", user_id, state.blocked_until)
            return False
        return True


attempt_limiter = AttemptLimiter.from_settings(settings)
