"""
Proof of delivery schemas.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from backend.app.models.load_enums import DeliveryCondition


class ProofOfDeliveryCreate(BaseModel):
    """Schema for submitting proof of delivery."""
    signed_by: str = Field(..., min_length=1, max_length=255, description="Name of the receiver who signed")
    delivered_at: datetime
    signature_url: Optional[str] = Field(None, max_length=1000)
    pieces: Optional[int] = Field(None, ge=0)
    condition: DeliveryCondition = DeliveryCondition.GOOD
    notes: Optional[str] = None
    photos: List[str] = []
