"""Vehicle model definitions."""

from sqlalchemy import Boolean, Column, Integer, JSON, String
from tourfleet.database import Base

VEHICLE_STATUS_ACTIVE = "active"


class Vehicle(Base):
    """A schedulable vehicle in the shared fleet."""
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    capacity = Column(Integer, nullable=False)
    vehicle_type = Column(String)
    license_plate = Column(String)
    status = Column(String, default=VEHICLE_STATUS_ACTIVE, nullable=False)
    available_to_all_brands = Column(Boolean, default=True, nullable=False)
    brand_ids = Column(JSON, default=list)

    def serves_brand(self, brand_id: int | None) -> bool:
        if brand_id is None or self.available_to_all_brands:
            return True
        return brand_id in (self.brand_ids or [])
