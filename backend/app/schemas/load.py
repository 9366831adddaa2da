"""
Load schemas.

Request and response shapes for load creation, editing and reads.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from backend.app.models.load_enums import (
    LoadStatus, StopType, StopStatus, EquipmentType, LoadPriority, DeliveryCondition
)


class Accessorial(BaseModel):
    """Additional charge on top of the line-haul rate (detention, lumper, ...)."""
    type: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    amount: float = Field(..., ge=0)


class StopCreate(BaseModel):
    """Schema for one stop of a new load."""
    stop_type: StopType
    facility_name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    appointment_time: Optional[datetime] = None
    instructions: Optional[str] = None


class LoadCreate(BaseModel):
    """Schema for creating a load."""
    commodity: str = Field(..., min_length=1, max_length=255, description="Commodity description")
    weight: float = Field(..., gt=0, description="Weight in lbs")
    pieces: int = Field(default=1, ge=1)
    equipment_type: EquipmentType = EquipmentType.DRY_VAN
    priority: LoadPriority = LoadPriority.NORMAL
    hazmat: bool = False
    hazmat_class: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None

    rate: float = Field(..., ge=0, description="Line-haul rate")
    fuel_surcharge: float = Field(default=0.0, ge=0)
    accessorials: List[Accessorial] = []

    pickup_date: datetime
    delivery_date: datetime

    customer_id: Optional[str] = Field(None, max_length=64)
    company_id: Optional[str] = Field(None, max_length=64, description="Ignored for non-admin callers")
    stops: List[StopCreate] = Field(..., description="Ordered stops; first pickup, last delivery")


class LoadUpdate(BaseModel):
    """
    Schema for editing a load.

    Status, assignment and stops are not editable here; they change only
    through the lifecycle operations.
    """
    commodity: Optional[str] = Field(None, min_length=1, max_length=255)
    weight: Optional[float] = Field(None, gt=0)
    pieces: Optional[int] = Field(None, ge=1)
    equipment_type: Optional[EquipmentType] = None
    priority: Optional[LoadPriority] = None
    hazmat: Optional[bool] = None
    hazmat_class: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
    rate: Optional[float] = Field(None, ge=0)
    fuel_surcharge: Optional[float] = Field(None, ge=0)
    accessorials: Optional[List[Accessorial]] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    customer_id: Optional[str] = Field(None, max_length=64)


class TransitionRequest(BaseModel):
    """Request body for a generic status transition."""
    target_status: LoadStatus


class StopResponse(BaseModel):
    """Schema for stop response."""
    id: int
    sequence: int
    stop_type: StopType
    facility_name: str
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    appointment_time: Optional[datetime]
    arrival_time: Optional[datetime]
    departure_time: Optional[datetime]
    instructions: Optional[str]
    status: StopStatus

    model_config = ConfigDict(from_attributes=True)


class ProofOfDeliveryResponse(BaseModel):
    signed_by: str
    delivered_at: datetime
    signature_url: Optional[str]
    pieces: Optional[int]
    condition: DeliveryCondition
    notes: Optional[str]
    photos: List[str] = []
    submitted_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoadResponse(BaseModel):
    """Schema for load response."""
    id: int
    load_number: str
    company_id: Optional[str]
    customer_id: Optional[str]
    status: LoadStatus
    priority: LoadPriority
    commodity: str
    weight: float
    pieces: int
    equipment_type: EquipmentType
    hazmat: bool
    hazmat_class: Optional[str]
    notes: Optional[str]
    rate: float
    fuel_surcharge: float
    accessorials: List[Accessorial] = []
    total_charges: float
    driver_id: Optional[str]
    vehicle_id: Optional[str]
    pickup_date: datetime
    delivery_date: datetime
    actual_pickup_time: Optional[datetime]
    actual_delivery_time: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime
    stops: List[StopResponse] = []
    proof_of_delivery: Optional[ProofOfDeliveryResponse] = None

    model_config = ConfigDict(from_attributes=True)


class LoadListResponse(BaseModel):
    """Schema for load list."""
    loads: List[LoadResponse]
    total: int
