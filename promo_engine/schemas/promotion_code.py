from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import List, Optional, Literal
from datetime import datetime
from enum import Enum
from promo_engine.utils import as_utc


class ErrorCode(str, Enum):
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    INVALID_HASH = "INVALID_HASH"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_NOT_ACTIVE_YET = "CODE_NOT_ACTIVE_YET"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    INVALID_FORMAT = "INVALID_FORMAT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# Shared value objects
class EventPeriod(BaseModel):
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        # naive timestamps are taken as UTC
        return as_utc(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PromotionBenefit(BaseModel):
    type: Literal["subscription_upgrade"] = "subscription_upgrade"
    plan_id: str = Field(..., min_length=1, max_length=64, description="Subscription plan granted on redemption")
    is_permanent: bool = False
    duration_days: Optional[int] = Field(default=None, ge=1, description="Required when is_permanent is false")

    @model_validator(mode="after")
    def check_duration(self):
        if self.is_permanent:
            # duration is meaningless for permanent plans
            self.duration_days = None
        elif self.duration_days is None:
            raise ValueError("duration_days is required for non-permanent benefits")
        return self


# Request schemas
class CodeGenerationRequest(BaseModel):
    event_period: EventPeriod
    benefit: PromotionBenefit
    max_uses: int = Field(..., description="Total redemption cap, -1 for unlimited")
    max_uses_per_user: int = Field(default=1, ge=1)
    description: str = Field(..., min_length=1, max_length=255)
    count: int = Field(default=1, ge=1, le=100, description="Number of codes to generate")

    @field_validator("max_uses")
    @classmethod
    def check_max_uses(cls, v: int) -> int:
        if v != -1 and v < 1:
            raise ValueError("max_uses must be -1 (unlimited) or a positive integer")
        return v

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be blank")
        return v


class CodeInput(BaseModel):
    # any length; the format check rejects what is not a code
    code: str


# Response schemas
class CodeGenerationResponse(BaseModel):
    codes: List[str]
    code_ids: List[int]


class PromotionCodeResponse(BaseModel):
    id: int
    code: str
    event_period: EventPeriod
    benefit: PromotionBenefit
    max_uses: int
    max_uses_per_user: int
    current_uses: int
    status: str
    effective_status: str
    created_at: datetime
    created_by: str
    description: str

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class ValidationResult(BaseModel):
    valid: bool
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    promotion_code: Optional[PromotionCodeResponse] = None


class RedemptionResult(BaseModel):
    success: bool
    message: str
    error_code: Optional[ErrorCode] = None
    benefit: Optional[PromotionBenefit] = None
    expires_at: Optional[datetime] = None


class RedemptionRecordResponse(BaseModel):
    code: str
    redeemed_at: datetime
    benefit_received: str

    model_config = ConfigDict(from_attributes=True)

    @field_validator("redeemed_at")
    @classmethod
    def redeemed_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class SubscriptionResponse(BaseModel):
    user_id: str
    plan_id: str
    is_permanent: bool
    expires_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    activated_by: Optional[str] = None
    promotion_code: Optional[str] = None
    redeemed_codes: List[RedemptionRecordResponse] = []

    @field_validator("expires_at", "activated_at")
    @classmethod
    def dates_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)
