"""
Analytics Schemas.
"""

from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime


class ReportingWindowResponse(BaseModel):
    start: datetime
    end: datetime


class AnalyticsSummary(BaseModel):
    """Dashboard headline numbers for a period."""
    period: str
    window: ReportingWindowResponse
    revenue: float
    on_time_percentage: float
    average_transit_time_hours: float
    delivered_count: int


class LoadsByStatus(BaseModel):
    """Point-in-time count of loads per status (zeros included)."""
    counts: Dict[str, int]
    total: int


class VehicleUtilization(BaseModel):
    """Vehicle performance stats."""
    vehicle_id: str
    unit_number: Optional[str]
    total_loads: int
    delivered_loads: int
    total_revenue: float


class VehicleUtilizationResponse(BaseModel):
    period: str
    vehicles: List[VehicleUtilization]
