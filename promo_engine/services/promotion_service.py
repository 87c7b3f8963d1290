import logging
from typing import List, Optional, Set

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from promo_engine.config import get_integrity_secret
from promo_engine.models.promotion_code import PromotionCode
from promo_engine.models.user_account import UserAccount
from promo_engine.schemas.promotion_code import CodeGenerationRequest, CodeGenerationResponse
from promo_engine.services import integrity
from promo_engine.services.code_generator import CodeGenerationError, generate_promotion_code
from promo_engine.utils import normalize_code, utcnow

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 5


class PromotionCodeService:
    """Service class for issuing and managing promotion codes"""

    @staticmethod
    def generate_codes(
        db: Session,
        request: CodeGenerationRequest,
        admin_id: str,
        secret: Optional[str] = None,
    ) -> CodeGenerationResponse:
        """Issue ``request.count`` signed codes in one transaction.

        A code can pass the existence check and still collide with a
        concurrent insert at commit. The batch is then rolled back and rebuilt
        from fresh codes, up to ``MAX_GENERATION_ATTEMPTS`` times, before the
        request fails with 409.
        """
        secret = secret if secret is not None else get_integrity_secret()

        for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
            try:
                batch = PromotionCodeService._build_batch(db, request, admin_id, secret)
                db.add_all(batch)
                db.commit()
            except CodeGenerationError as exc:
                db.rollback()
                logger.error("Code generation aborted for admin %s: %s", admin_id, exc)
                raise HTTPException(status_code=503, detail="Failed to generate promotion codes")
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "Generated code collided with a concurrent insert (attempt %d/%d), rebuilding batch",
                    attempt, MAX_GENERATION_ATTEMPTS,
                )
                continue
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Failed to persist promotion code batch")
                raise HTTPException(status_code=503, detail="Failed to generate promotion codes")

            logger.info("Admin %s generated %d promotion code(s)", admin_id, len(batch))
            return CodeGenerationResponse(codes=[p.code for p in batch], code_ids=[p.id for p in batch])

        raise HTTPException(status_code=409, detail="Code collision while generating, please retry")

    @staticmethod
    def _build_batch(
        db: Session, request: CodeGenerationRequest, admin_id: str, secret: str
    ) -> List[PromotionCode]:
        created_at = utcnow()
        batch: List[PromotionCode] = []
        taken: Set[str] = set()
        for _ in range(request.count):
            code = PromotionCodeService._unique_code(db, taken)
            taken.add(code)
            batch.append(PromotionCode(
                code=code,
                integrity_tag=integrity.sign(code, secret),
                event_start=request.event_period.start_date,
                event_end=request.event_period.end_date,
                benefit_type=request.benefit.type,
                plan_id=request.benefit.plan_id,
                is_permanent=request.benefit.is_permanent,
                duration_days=request.benefit.duration_days,
                max_uses=request.max_uses,
                max_uses_per_user=request.max_uses_per_user,
                current_uses=0,
                status="active",
                created_at=created_at,
                created_by=admin_id,
                description=request.description,
            ))
        return batch

    @staticmethod
    def _unique_code(db: Session, taken: Set[str]) -> str:
        for _ in range(MAX_GENERATION_ATTEMPTS):
            code = generate_promotion_code()
            if code in taken:
                continue
            exists = db.scalar(select(PromotionCode.id).where(PromotionCode.code == code))
            if exists is None:
                return code
            logger.info("Generated code %s already exists, regenerating", code)
        raise CodeGenerationError(f"No unique code after {MAX_GENERATION_ATTEMPTS} attempts")

    @staticmethod
    def get_code(db: Session, code: str) -> Optional[PromotionCode]:
        return db.query(PromotionCode).filter(PromotionCode.code == normalize_code(code)).first()

    @staticmethod
    def list_codes(db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[PromotionCode]:
        limit = min(max(limit, 1), 500)
        q = db.query(PromotionCode)
        # filter on effective status; "expired" only exists at read time
        now = utcnow()
        if status == "expired":
            q = q.filter(PromotionCode.status == "active", PromotionCode.event_end < now)
        elif status == "active":
            q = q.filter(PromotionCode.status == "active", PromotionCode.event_end >= now)
        elif status is not None:
            q = q.filter(PromotionCode.status == status)
        return q.order_by(PromotionCode.created_at.desc(), PromotionCode.id.desc()).offset(skip).limit(limit).all()

    @staticmethod
    def deactivate_code(db: Session, code: str) -> Optional[PromotionCode]:
        promo = PromotionCodeService.get_code(db, code)
        if not promo:
            return None
        if promo.status != "inactive":
            promo.status = "inactive"
            db.commit()
            db.refresh(promo)
            logger.info("Promotion code %s deactivated", promo.code)
        return promo

    @staticmethod
    def get_account(db: Session, user_id: str) -> Optional[UserAccount]:
        return db.get(UserAccount, user_id)
