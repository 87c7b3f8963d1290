import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promo_engine.models.promotion_code import PromotionCode, UNLIMITED_USES
from promo_engine.models.user_account import RedemptionRecord, UserAccount
from promo_engine.schemas.promotion_code import ErrorCode, PromotionBenefit, RedemptionResult
from promo_engine.services.benefit_calculator import BenefitCalculator
from promo_engine.services.code_validator import (
    INVALID_CODE_MESSAGE,
    CodeValidator,
    count_user_redemptions,
)
from promo_engine.services.rate_limiter import AttemptLimiter
from promo_engine.utils import utcnow

logger = logging.getLogger(__name__)


class RedemptionService:
    """Consumes one use of a code and grants its benefit in one transaction"""

    @staticmethod
    def redeem(
        db: Session,
        user_id: str,
        code: str,
        *,
        limiter: Optional[AttemptLimiter] = None,
        secret: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RedemptionResult:
        now = now or utcnow()

        outcome = CodeValidator.validate(db, code, user_id, limiter=limiter, secret=secret, now=now)
        if not outcome.valid:
            return RedemptionResult(
                success=False,
                message=outcome.message or INVALID_CODE_MESSAGE,
                error_code=outcome.public_error_code(),
            )

        promo_id = outcome.promotion_code.id
        normalized = outcome.promotion_code.code

        try:
            # close the validation reads so the guarded UPDATE opens the write transaction
            db.commit()
            return RedemptionService._consume_and_grant(db, user_id, promo_id, normalized, now)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Redemption of %s by user %s failed", normalized, user_id)
            return RedemptionResult(
                success=False,
                message="Failed to redeem code. Please try again.",
                error_code=ErrorCode.SERVICE_UNAVAILABLE,
            )

    @staticmethod
    def _consume_and_grant(db: Session, user_id: str, promo_id: int, code: str, now: datetime) -> RedemptionResult:
        # The usage check and increment are one statement; a concurrent
        # redeemer that lost the race sees zero affected rows.
        result = db.execute(
            update(PromotionCode)
            .where(
                PromotionCode.id == promo_id,
                PromotionCode.status == "active",
                or_(
                    PromotionCode.max_uses == UNLIMITED_USES,
                    PromotionCode.current_uses < PromotionCode.max_uses,
                ),
            )
            .values(current_uses=PromotionCode.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            status = db.scalar(select(PromotionCode.status).where(PromotionCode.id == promo_id))
            if status != "active":
                logger.warning("Code %s was deactivated before user %s could redeem it", code, user_id)
                return RedemptionResult(success=False, message=INVALID_CODE_MESSAGE, error_code=ErrorCode.CODE_NOT_FOUND)
            logger.info("Code %s exhausted before user %s could redeem it", code, user_id)
            return RedemptionResult(
                success=False,
                message="This code has reached its usage limit",
                error_code=ErrorCode.USAGE_LIMIT_REACHED,
            )

        promo = db.execute(
            select(PromotionCode)
            .where(PromotionCode.id == promo_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

        if count_user_redemptions(db, user_id, code) >= promo.max_uses_per_user:
            db.rollback()
            return RedemptionResult(
                success=False,
                message="You've already redeemed this code",
                error_code=ErrorCode.ALREADY_REDEEMED,
            )

        account = db.get(UserAccount, user_id)
        if account is None:
            account = UserAccount(user_id=user_id)
            db.add(account)

        expires_at = BenefitCalculator.apply_subscription_upgrade(account, promo, now)
        summary = BenefitCalculator.describe(promo)
        account.redeemed_codes.append(RedemptionRecord(code=code, redeemed_at=now, benefit_received=summary))
        benefit = PromotionBenefit.model_validate(promo.benefit)

        db.commit()
        logger.info("User %s redeemed %s (%s)", user_id, code, summary)
        return RedemptionResult(
            success=True,
            message="Promotion code redeemed successfully!",
            benefit=benefit,
            expires_at=expires_at,
        )
