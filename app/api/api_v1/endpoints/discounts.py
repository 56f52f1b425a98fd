from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.schemas.auth import Principal
from app.schemas.discount import DiscountApply, DiscountPreview, DiscountRemove
from app.schemas.quote import QuoteResponse
from app.services import discount_service

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/validate", response_model=DiscountPreview)
async def validate_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_in: DiscountApply,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Check a code against a quote and show the resulting totals.

    Nothing is saved.
    """
    logger.info(f"Discount code validation on quote {discount_in.quote_id} by user: {principal.user_id}")
    return await discount_service.preview_discount(db, principal, discount_in.quote_id, discount_in.code)

@router.post("/apply", response_model=QuoteResponse)
async def apply_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_in: DiscountApply,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Apply a discount code to an open quote.
    """
    logger.info(f"Discount code apply on quote {discount_in.quote_id} by user: {principal.user_id}")
    return await discount_service.apply_discount_code(db, principal, discount_in.quote_id, discount_in.code)

@router.post("/remove", response_model=QuoteResponse)
async def remove_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_in: DiscountRemove,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Remove the discount code from a quote.
    """
    logger.info(f"Discount code removal on quote {discount_in.quote_id} by user: {principal.user_id}")
    return await discount_service.remove_discount_code(db, principal, discount_in.quote_id)
