from sqlalchemy import Column, Integer, String, DateTime
from promo_engine.database import Base


class RateLimitState(Base):
    # Best-effort abuse deterrence, not part of the authoritative records
    __tablename__ = "rate_limit_states"

    user_id = Column(String(128), primary_key=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt = Column(DateTime(timezone=True), nullable=False)
    blocked_until = Column(DateTime(timezone=True), nullable=True)
