"""Availability rule model definitions."""

from sqlalchemy import Boolean, Column, Date, Integer, String
from tourfleet.database import Base

RULE_TYPE_BLACKOUT_DATE = "blackout_date"


class AvailabilityRule(Base):
    """Operator-wide rule such as a blackout date."""
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True)
    rule_type = Column(String, nullable=False)
    blackout_date = Column(Date)
    reason = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
