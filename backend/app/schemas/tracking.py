"""
Tracking event schemas.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from backend.app.models.load_enums import TrackingEventType


class TrackingEventCreate(BaseModel):
    """User-attested event (delay, breakdown, note)."""
    event_type: TrackingEventType = TrackingEventType.EXCEPTION
    description: str = Field(..., min_length=1, max_length=500)
    timestamp: Optional[datetime] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class TrackingEventResponse(BaseModel):
    id: int
    event_id: str
    load_id: int
    event_type: TrackingEventType
    description: str
    latitude: Optional[float]
    longitude: Optional[float]
    address: Optional[str]
    timestamp: datetime
    created_by: str
    automatic: bool

    model_config = ConfigDict(from_attributes=True)


class TrackingEventListResponse(BaseModel):
    events: List[TrackingEventResponse]
    total: int


class Location(BaseModel):
    """Position reported with an arrival or a backhaul query."""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)
