"""Availability block model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from tourfleet.database import Base

BLOCK_TYPE_BOOKING = "booking"
BLOCK_TYPE_HOLD = "hold"
BLOCK_TYPE_MAINTENANCE = "maintenance"
BLOCK_TYPE_BUFFER = "buffer"
BLOCK_TYPE_BLACKOUT = "blackout"

BLOCK_TYPES = (
    BLOCK_TYPE_BOOKING,
    BLOCK_TYPE_HOLD,
    BLOCK_TYPE_MAINTENANCE,
    BLOCK_TYPE_BUFFER,
    BLOCK_TYPE_BLACKOUT,
)


class AvailabilityBlock(Base):
    """A committed interval during which a vehicle cannot take new bookings."""
    __tablename__ = "vehicle_availability_blocks"

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    block_date = Column(Date, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    block_type = Column(String, nullable=False)
    booking_id = Column(Integer)
    brand_id = Column(Integer)
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    vehicle = relationship("Vehicle", lazy="joined")
