"""
Assignment schemas.
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from backend.app.schemas.load import LoadResponse
from backend.app.schemas.tracking import Location


class AssignRequest(BaseModel):
    """Request to bind a driver and vehicle to a load."""
    driver_id: str = Field(..., min_length=1, max_length=64)
    vehicle_id: str = Field(..., min_length=1, max_length=64)


class AutoAssignRequest(BaseModel):
    strategy: Optional[str] = Field(None, description="Ranking strategy; defaults to the configured one")


class BackhaulRequest(BaseModel):
    location: Location
    limit: Optional[int] = Field(None, ge=1, le=50)


class BackhaulSuggestion(BaseModel):
    load: LoadResponse
    distance_km: Optional[float]


class BackhaulResponse(BaseModel):
    driver_id: str
    suggestions: List[BackhaulSuggestion]
