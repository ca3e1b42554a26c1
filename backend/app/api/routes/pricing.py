"""
Price quote endpoint. Read-only; safe to call as often as the checkout
page needs. Invalid input surfaces as a BookingError (handled app-wide).
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_current_user_id
from app.db.session import get_db
from app.schemas.pricing import PriceCalculation, PriceQuoteRequest
from app.services.pricing_service import calculate_price

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/quote", response_model=PriceCalculation)
async def quote(
    request: PriceQuoteRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Full price breakdown including the best applicable promotion."""
    calculation = await calculate_price(
        db,
        request.instance_id,
        request.seats,
        request.services,
        coupon_code=request.coupon_code,
        user_id=user_id,
    )
    if calculation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tour departure {request.instance_id} not found",
        )
    return calculation
