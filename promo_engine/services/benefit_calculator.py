from datetime import datetime, timedelta
from typing import Optional

from promo_engine.models.promotion_code import PromotionCode
from promo_engine.models.user_account import UserAccount


class BenefitCalculator:
    """Service class to compute and apply the effect of a redeemed code"""

    @staticmethod
    def calculate_expiry(promo: PromotionCode, redeemed_at: datetime) -> Optional[datetime]:
        if promo.is_permanent:
            return None
        return redeemed_at + timedelta(days=promo.duration_days)

    @staticmethod
    def describe(promo: PromotionCode) -> str:
        summary = f"{promo.plan_id} subscription"
        if not promo.is_permanent:
            summary += f" for {promo.duration_days} days"
        return summary

    @staticmethod
    def apply_subscription_upgrade(account: UserAccount, promo: PromotionCode, redeemed_at: datetime) -> Optional[datetime]:
        if promo.benefit_type != "subscription_upgrade":
            raise ValueError(f"Unsupported benefit type: {promo.benefit_type}")
        expires_at = BenefitCalculator.calculate_expiry(promo, redeemed_at)
        account.plan_id = promo.plan_id
        account.plan_is_permanent = promo.is_permanent
        account.plan_expires_at = expires_at
        account.plan_activated_at = redeemed_at
        account.plan_activated_by = "promotion"
        account.promotion_code = promo.code
        return expires_at
