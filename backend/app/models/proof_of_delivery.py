"""
Proof of Delivery database model.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Enum, JSON, Text
from sqlalchemy.orm import relationship
from backend.app.db.session import Base
from backend.app.db.types import UTCDateTime, utc_now
from backend.app.models.load_enums import DeliveryCondition


class ProofOfDelivery(Base):
    """
    Proof of Delivery model.

    Created once, when the load enters `delivered`. Immutable afterwards.
    """
    __tablename__ = "proofs_of_delivery"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), unique=True, nullable=False)

    signed_by = Column(String(255), nullable=False)
    delivered_at = Column(UTCDateTime, nullable=False)
    signature_url = Column(String(1000), nullable=True)
    pieces = Column(Integer, nullable=True)
    condition = Column(Enum(DeliveryCondition), nullable=False, default=DeliveryCondition.GOOD)
    notes = Column(Text, nullable=True)
    photos = Column(JSON, nullable=False, default=list)

    submitted_by = Column(String(100), nullable=False)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)

    load = relationship("Load", back_populates="proof_of_delivery")

    def __repr__(self):
        return f"<ProofOfDelivery(load_id={self.load_id}, signed_by='{self.signed_by}')>"
