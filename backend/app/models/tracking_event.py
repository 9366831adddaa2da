"""
Tracking Event database model.

Append-only log of everything that happened to a load. Kept in its own
table keyed by load id so history appends do not rewrite the load row.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, Enum, Index
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now
from backend.app.models.load_enums import TrackingEventType


class TrackingEvent(Base):
    """
    Tracking Event model.

    `id` is the insertion sequence; `event_id` is the time-ordered token
    handed out on append. Rows are never updated.
    """
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(String(40), unique=True, nullable=False)

    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), nullable=False)

    event_type = Column(Enum(TrackingEventType), nullable=False, index=True)
    description = Column(String(500), nullable=False)

    # Optional geolocation
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String(500), nullable=True)

    # When it happened (may differ from insertion time, e.g. POD delivered_at)
    timestamp = Column(UTCDateTime, nullable=False)

    # Who recorded it
    created_by = Column(String(100), nullable=False)
    automatic = Column(Boolean, nullable=False, default=True)

    recorded_at = Column(UTCDateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index('ix_tracking_events_load_seq', 'load_id', 'id'),
    )

    def __repr__(self):
        return f"<TrackingEvent(load_id={self.load_id}, type='{self.event_type.value}', event_id='{self.event_id}')>"
