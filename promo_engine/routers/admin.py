from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from promo_engine.database import get_db
from promo_engine.dependencies import require_admin
from promo_engine.schemas.promotion_code import (
    CodeGenerationRequest, CodeGenerationResponse, PromotionCodeResponse
)
from promo_engine.services.promotion_service import PromotionCodeService

router = APIRouter(prefix="/admin/promotion-codes", tags=["admin"])


@router.post("", response_model=CodeGenerationResponse, status_code=201)
def generate_codes(
    request: CodeGenerationRequest,
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return PromotionCodeService.generate_codes(db, request, admin_id)


@router.get("", response_model=List[PromotionCodeResponse])
def list_codes(
    status: Optional[Literal["active", "inactive", "expired"]] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = 100,
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return PromotionCodeService.list_codes(db, status, skip, limit)


@router.get("/{code}", response_model=PromotionCodeResponse)
def get_code(code: str, _: str = Depends(require_admin), db: Session = Depends(get_db)):
    promo = PromotionCodeService.get_code(db, code)
    if not promo:
        raise HTTPException(status_code=404, detail="Promotion code not found")
    return promo


@router.post("/{code}/deactivate", response_model=PromotionCodeResponse)
def deactivate_code(code: str, _: str = Depends(require_admin), db: Session = Depends(get_db)):
    promo = PromotionCodeService.deactivate_code(db, code)
    if not promo:
        raise HTTPException(status_code=404, detail="Promotion code not found")
    return promo
