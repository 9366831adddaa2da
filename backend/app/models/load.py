"""
Load database model.

A load is a single truckload shipment contract moving from creation
through pickup, transit, delivery and billing.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, Enum, JSON, Text
from sqlalchemy.orm import relationship
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now
from backend.app.models.load_enums import LoadStatus, EquipmentType, LoadPriority


class Load(Base):
    """
    Load model.

    Status is the single source of truth for the lifecycle and is only
    written by the dispatch services. Every write bumps `version`, so a
    write based on a stale read fails instead of clobbering newer state.
    The tracking event log is stored separately (tracking_events) and
    joined at read time.
    """
    __tablename__ = "loads"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    load_number = Column(String(32), unique=True, nullable=True, index=True)

    # Tenant and customer references (owned by other services)
    company_id = Column(String(64), nullable=True, index=True)
    customer_id = Column(String(64), nullable=True, index=True)

    # Status
    status = Column(Enum(LoadStatus), default=LoadStatus.PENDING, nullable=False, index=True)
    priority = Column(Enum(LoadPriority), default=LoadPriority.NORMAL, nullable=False)

    # Freight details
    commodity = Column(String(255), nullable=False)
    weight = Column(Float, nullable=False)  # lbs
    pieces = Column(Integer, nullable=False, default=1)
    equipment_type = Column(Enum(EquipmentType), nullable=False, default=EquipmentType.DRY_VAN)
    hazmat = Column(Boolean, nullable=False, default=False)
    hazmat_class = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    # Rates and charges
    rate = Column(Float, nullable=False)
    fuel_surcharge = Column(Float, nullable=False, default=0.0)
    accessorials = Column(JSON, nullable=False, default=list)  # [{type, description, amount}]
    total_charges = Column(Float, nullable=False)

    # Assignment (both set or both null)
    driver_id = Column(String(64), ForeignKey('fleet_drivers.id'), nullable=True, index=True)
    vehicle_id = Column(String(64), ForeignKey('fleet_vehicles.id'), nullable=True, index=True)

    # Target and actual timing
    pickup_date = Column(UTCDateTime, nullable=False)
    delivery_date = Column(UTCDateTime, nullable=False)
    actual_pickup_time = Column(UTCDateTime, nullable=True)
    actual_delivery_time = Column(UTCDateTime, nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(UTCDateTime, default=utc_now, nullable=False, index=True)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    stops = relationship(
        "LoadStop",
        back_populates="load",
        order_by="LoadStop.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    proof_of_delivery = relationship(
        "ProofOfDelivery",
        back_populates="load",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def origin(self):
        return self.stops[0] if self.stops else None

    @property
    def destination(self):
        return self.stops[-1] if self.stops else None

    def __repr__(self):
        return f"<Load(id={self.id}, number='{self.load_number}', status='{self.status.value}')>"
