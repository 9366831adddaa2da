"""
Fleet Driver database model.
"""

from sqlalchemy import Column, String, Float, Boolean, ForeignKey
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now


class FleetDriver(Base):
    """
    Fleet Driver model.

    Mirrors the driver records of the fleet service: identity, hazmat
    endorsement, the tractor usually driven and the last known position.
    """
    __tablename__ = "fleet_drivers"

    id = Column(String(64), primary_key=True)

    company_id = Column(String(64), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    hazmat_endorsed = Column(Boolean, default=False, nullable=False)

    # Default tractor (used by auto-assign)
    default_vehicle_id = Column(String(64), ForeignKey('fleet_vehicles.id'), nullable=True)

    # Last known location
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_updated_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self):
        return f"<FleetDriver(id='{self.id}', name='{self.name}', active={self.is_active})>"
