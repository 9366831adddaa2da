"""
Load Stop database model.

Stops are the ordered pickup/delivery (and fuel/rest) points of a load.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, Enum, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime
from backend.app.models.load_enums import StopType, StopStatus


class LoadStop(Base):
    """
    Load Stop model.

    Exclusively owned by its load and addressed by `sequence`
    (0 is the origin, the highest is the final destination).
    """
    __tablename__ = "load_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Load reference
    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), nullable=False, index=True)

    # Stop details
    stop_type = Column(Enum(StopType), nullable=False)
    sequence = Column(Integer, nullable=False)  # Position in route (0, 1, 2, ...)

    # Facility
    facility_name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    instructions = Column(Text, nullable=True)

    # Appointment and actuals
    appointment_time = Column(UTCDateTime, nullable=True)
    arrival_time = Column(UTCDateTime, nullable=True)
    departure_time = Column(UTCDateTime, nullable=True)

    # Status
    status = Column(Enum(StopStatus), default=StopStatus.PENDING, nullable=False)

    load = relationship("Load", back_populates="stops")

    __table_args__ = (
        UniqueConstraint('load_id', 'sequence', name='uq_load_stops_load_sequence'),
    )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self):
        return f"<LoadStop(load_id={self.load_id}, seq={self.sequence}, type='{self.stop_type.value}', status='{self.status.value}')>"
