from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel


class InstanceResponse(BaseModel):
    id: int
    tour_id: int
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    capacity: int
    seats_booked: int
    seats_held: int
    seats_available: int
    status: str
    price_base: Decimal
    currency: str

    model_config = {"from_attributes": True}
