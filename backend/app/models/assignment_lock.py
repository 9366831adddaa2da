"""
Assignment Lock database model.

Ensures a driver or vehicle is bound to at most one load at a time
through partial unique indexes on the unreleased rows.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index, text
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now


class AssignmentLock(Base):
    """
    Assignment Lock model.

    Taken when a load is assigned, released on unassign, cancel or delivery.
    A second unreleased row for the same driver (or vehicle) violates the
    index, which is how cross-process assignment races are caught.
    """
    __tablename__ = "assignment_locks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(String(64), nullable=False, index=True)
    vehicle_id = Column(String(64), nullable=False, index=True)
    locked_by = Column(String(100), nullable=False)

    # Lock lifecycle
    locked_at = Column(UTCDateTime, default=utc_now, nullable=False)
    released_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index('ix_assignment_locks_active_driver', 'driver_id', unique=True,
              postgresql_where=text('released_at IS NULL'),
              sqlite_where=text('released_at IS NULL')),
        Index('ix_assignment_locks_active_vehicle', 'vehicle_id', unique=True,
              postgresql_where=text('released_at IS NULL'),
              sqlite_where=text('released_at IS NULL')),
    )

    def __repr__(self):
        return f"<AssignmentLock(load_id={self.load_id}, driver_id={self.driver_id}, vehicle_id={self.vehicle_id}, active={self.released_at is None})>"
