"""
Departure availability. Not cached: seat counts must be live.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.tour import TourInstance
from app.schemas.tour import InstanceResponse

router = APIRouter(prefix="/instances", tags=["Tour instances"])


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(instance_id: int, db: AsyncSession = Depends(get_db)):
    instance = await db.get(TourInstance, instance_id, populate_existing=True)
    if not instance:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tour departure {instance_id} not found",
        )
    return instance
