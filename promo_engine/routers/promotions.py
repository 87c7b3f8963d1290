from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from promo_engine.database import get_db
from promo_engine.dependencies import get_current_user_id
from promo_engine.models.user_account import DEFAULT_PLAN
from promo_engine.schemas.promotion_code import (
    CodeInput, ValidationResult, RedemptionResult, SubscriptionResponse, RedemptionRecordResponse
)
from promo_engine.services.code_validator import CodeValidator
from promo_engine.services.promotion_service import PromotionCodeService
from promo_engine.services.redemption_service import RedemptionService

router = APIRouter(prefix="", tags=["promotions"])


@router.post("/promotion-codes/validate", response_model=ValidationResult)
def validate_code(body: CodeInput, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return CodeValidator.validate(db, body.code, user_id).to_response()


@router.post("/promotion-codes/redeem", response_model=RedemptionResult)
def redeem_code(body: CodeInput, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return RedemptionService.redeem(db, user_id, body.code)


@router.get("/users/me/subscription", response_model=SubscriptionResponse)
def get_subscription(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    account = PromotionCodeService.get_account(db, user_id)
    if account is None:
        return SubscriptionResponse(user_id=user_id, plan_id=DEFAULT_PLAN, is_permanent=False)
    return SubscriptionResponse(
        user_id=account.user_id,
        plan_id=account.plan_id,
        is_permanent=account.plan_is_permanent,
        expires_at=account.plan_expires_at,
        activated_at=account.plan_activated_at,
        activated_by=account.plan_activated_by,
        promotion_code=account.promotion_code,
        redeemed_codes=[RedemptionRecordResponse.model_validate(r) for r in account.redeemed_codes],
    )
