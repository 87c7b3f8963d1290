from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from promo_engine.database import Base
from promo_engine.utils import utcnow

DEFAULT_PLAN = "free"


class UserAccount(Base):
    """Subscription state of an externally authenticated user."""

    __tablename__ = "user_accounts"

    user_id = Column(String(128), primary_key=True)
    plan_id = Column(String(64), nullable=False, default=DEFAULT_PLAN)
    plan_is_permanent = Column(Boolean, nullable=False, default=False)
    plan_expires_at = Column(DateTime(timezone=True), nullable=True)
    plan_activated_at = Column(DateTime(timezone=True), nullable=True)
    # "promotion" when granted by a redeemed code
    plan_activated_by = Column(String(32), nullable=True)
    promotion_code = Column(String(8), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    redeemed_codes = relationship(
        "RedemptionRecord",
        back_populates="user",
        order_by="RedemptionRecord.redeemed_at",
        cascade="all, delete-orphan",
    )


class RedemptionRecord(Base):
    __tablename__ = "redemption_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), ForeignKey("user_accounts.user_id", ondelete="CASCADE"), nullable=False)
    code = Column(String(8), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    benefit_received = Column(String(255), nullable=False)

    user = relationship("UserAccount", back_populates="redeemed_codes")

    __table_args__ = (
        Index("ix_redemption_records_user_code", "user_id", "code"),
    )
