from sqlalchemy import Column, Integer, String, Enum, Boolean, DateTime, CheckConstraint, Index
from promo_engine.database import Base
from promo_engine.utils import as_utc, utcnow

CodeStatuses = ("active", "inactive")
BenefitTypes = ("subscription_upgrade",)
UNLIMITED_USES = -1


class PromotionCode(Base):
    __tablename__ = "promotion_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(8), unique=True, nullable=False, index=True)
    integrity_tag = Column(String(64), nullable=False)

    event_start = Column(DateTime(timezone=True), nullable=False)
    event_end = Column(DateTime(timezone=True), nullable=False)

    benefit_type = Column(Enum(*BenefitTypes, name="benefit_type"), nullable=False, default="subscription_upgrade")
    plan_id = Column(String(64), nullable=False)
    is_permanent = Column(Boolean, nullable=False, default=False)
    duration_days = Column(Integer, nullable=True)

    max_uses = Column(Integer, nullable=False, default=UNLIMITED_USES)
    max_uses_per_user = Column(Integer, nullable=False, default=1)
    current_uses = Column(Integer, nullable=False, default=0)

    status = Column(Enum(*CodeStatuses, name="promotion_code_status"), nullable=False, default="active", index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = Column(String(128), nullable=False)
    description = Column(String(255), nullable=False, default="")

    __table_args__ = (
        CheckConstraint("current_uses >= 0", name="ck_promotion_codes_current_uses"),
        CheckConstraint("max_uses = -1 OR current_uses <= max_uses", name="ck_promotion_codes_usage_cap"),
        Index("ix_promotion_codes_status_code", "status", "code"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.max_uses == UNLIMITED_USES

    @property
    def usage_exhausted(self) -> bool:
        return not self.is_unlimited and self.current_uses >= self.max_uses

    def effective_status_at(self, at) -> str:
        # "expired" is derived from the event window, never stored
        if self.status == "active" and at > as_utc(self.event_end):
            return "expired"
        return self.status

    @property
    def effective_status(self) -> str:
        return self.effective_status_at(utcnow())

    @property
    def event_period(self) -> dict:
        return {"start_date": as_utc(self.event_start), "end_date": as_utc(self.event_end)}

    @property
    def benefit(self) -> dict:
        return {
            "type": self.benefit_type,
            "plan_id": self.plan_id,
            "is_permanent": self.is_permanent,
            "duration_days": self.duration_days,
        }
