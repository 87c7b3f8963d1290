import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promo_engine.config import get_integrity_secret
from promo_engine.models.promotion_code import PromotionCode
from promo_engine.models.user_account import RedemptionRecord
from promo_engine.schemas.promotion_code import ErrorCode, PromotionCodeResponse, ValidationResult
from promo_engine.services import integrity
from promo_engine.services.code_generator import is_valid_code_format
from promo_engine.services.rate_limiter import AttemptLimiter, attempt_limiter
from promo_engine.utils import as_utc, normalize_code, utcnow

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid code"

# Codes whose distinction would tell a caller whether a code exists
_ORACLE_CODES = {ErrorCode.INVALID_HASH: ErrorCode.CODE_NOT_FOUND}


@dataclass
class ValidationOutcome:
    valid: bool
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    promotion_code: Optional[PromotionCode] = None

    @classmethod
    def reject(cls, error_code: ErrorCode, message: str) -> "ValidationOutcome":
        return cls(valid=False, error_code=error_code, message=message)

    def public_error_code(self) -> Optional[ErrorCode]:
        return _ORACLE_CODES.get(self.error_code, self.error_code)

    def to_response(self) -> ValidationResult:
        if self.valid:
            return ValidationResult(
                valid=True,
                promotion_code=PromotionCodeResponse.model_validate(self.promotion_code),
            )
        return ValidationResult(valid=False, error_code=self.public_error_code(), message=self.message)


def count_user_redemptions(db: Session, user_id: str, code: str) -> int:
    stmt = select(func.count(RedemptionRecord.id)).where(
        RedemptionRecord.user_id == user_id,
        RedemptionRecord.code == code,
    )
    return db.scalar(stmt) or 0


class CodeValidator:
    """Ordered check pipeline deciding whether a user may redeem a code.

    Checks run cheapest first and stop at the first failure: rate limit,
    format, lookup, integrity tag, event window, global usage, per-user
    usage. The result is advisory; redemption re-confirms usage inside its
    own transaction.
    """

    @staticmethod
    def validate(
        db: Session,
        code: str,
        user_id: str,
        *,
        limiter: Optional[AttemptLimiter] = None,
        secret: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ValidationOutcome:
        limiter = limiter or attempt_limiter
        now = now or utcnow()

        if not limiter.check_and_consume(db, user_id, now=now):
            return ValidationOutcome.reject(
                ErrorCode.RATE_LIMIT_EXCEEDED, "Too many attempts. Please try again later."
            )

        normalized = normalize_code(code)
        if not is_valid_code_format(normalized):
            return ValidationOutcome.reject(ErrorCode.INVALID_FORMAT, "Invalid code format")

        try:
            promo = db.scalar(
                select(PromotionCode).where(
                    PromotionCode.code == normalized,
                    PromotionCode.status == "active",
                )
            )
            if promo is None:
                logger.warning("Unknown promotion code %s submitted by user %s", normalized, user_id)
                return ValidationOutcome.reject(ErrorCode.CODE_NOT_FOUND, INVALID_CODE_MESSAGE)

            secret = secret if secret is not None else get_integrity_secret()
            if not integrity.verify(normalized, promo.integrity_tag, secret):
                logger.warning("Integrity tag mismatch for code %s (user %s)", normalized, user_id)
                return ValidationOutcome.reject(ErrorCode.INVALID_HASH, INVALID_CODE_MESSAGE)

            start, end = as_utc(promo.event_start), as_utc(promo.event_end)
            if now < start:
                return ValidationOutcome.reject(
                    ErrorCode.CODE_NOT_ACTIVE_YET,
                    f"This code is not active yet. It will be active from {start:%Y-%m-%d}.",
                )
            if now > end:
                return ValidationOutcome.reject(ErrorCode.CODE_EXPIRED, "This code has expired")

            if promo.usage_exhausted:
                return ValidationOutcome.reject(
                    ErrorCode.USAGE_LIMIT_REACHED, "This code has reached its usage limit"
                )

            if count_user_redemptions(db, user_id, normalized) >= promo.max_uses_per_user:
                return ValidationOutcome.reject(ErrorCode.ALREADY_REDEEMED, "You've already redeemed this code")
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Store failure while validating code %s", normalized)
            return ValidationOutcome.reject(
                ErrorCode.SERVICE_UNAVAILABLE, "Failed to validate code. Please try again."
            )

        return ValidationOutcome(valid=True, promotion_code=promo)
