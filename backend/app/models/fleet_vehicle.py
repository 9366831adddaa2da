"""
Fleet Vehicle database model.

Read-only mirror of the fleet service's tractor/trailer records, used to
check equipment compatibility and availability during dispatch.
"""

from sqlalchemy import Column, String, Boolean, Enum
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now
from backend.app.models.load_enums import EquipmentType


class FleetVehicle(Base):
    """
    Fleet Vehicle model.

    Keyed by the fleet service's own vehicle id. Dispatch never edits these
    rows outside of seeding and tests.
    """
    __tablename__ = "fleet_vehicles"

    id = Column(String(64), primary_key=True)

    company_id = Column(String(64), nullable=True, index=True)

    # Vehicle identification
    unit_number = Column(String(100), unique=True, nullable=False, index=True)
    equipment_type = Column(Enum(EquipmentType), nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)

    def __repr__(self):
        return f"<FleetVehicle(id='{self.id}', unit='{self.unit_number}', equipment='{self.equipment_type.value}')>"
