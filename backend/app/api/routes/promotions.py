"""
Promotion administration endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import require_staff
from app.db.session import get_db
from app.schemas.promotion import PromotionCreate, PromotionResponse
from app.services.promotion_service import create_promotion, list_active_promotions

router = APIRouter(prefix="/promotions", tags=["Promotions"])


@router.post("/", response_model=PromotionResponse, status_code=status.HTTP_201_CREATED)
async def create_promotion_endpoint(
    promotion_data: PromotionCreate,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create a promotion with its rules, targets and coupon codes (staff only)."""
    promotion = await create_promotion(db, promotion_data)
    await db.commit()
    return promotion


@router.get("/active", response_model=list[PromotionResponse])
async def list_active_promotions_endpoint(db: AsyncSession = Depends(get_db)):
    """Promotions currently running and not exhausted."""
    return await list_active_promotions(db)
