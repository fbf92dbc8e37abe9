import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from tourfleet.database import Base  # noqa: E402
from tourfleet.models.availability_block import AvailabilityBlock  # noqa: E402
from tourfleet.models.availability_rule import RULE_TYPE_BLACKOUT_DATE, AvailabilityRule  # noqa: E402
from tourfleet.models.vehicle import Vehicle  # noqa: E402


@pytest.fixture
def availability_db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def add_vehicle(availability_db):
    def _add_vehicle(name: str = 'Sprinter 14', capacity: int = 10, **overrides) -> Vehicle:
        vehicle = Vehicle(name=name, capacity=capacity, status=overrides.pop('status', 'active'), **overrides)
        availability_db.add(vehicle)
        availability_db.commit()
        availability_db.refresh(vehicle)
        return vehicle

    return _add_vehicle


@pytest.fixture
def add_block(availability_db):
    def _add_block(
        vehicle: Vehicle,
        start: datetime,
        end: datetime,
        block_type: str = 'booking',
        booking_id: int | None = None,
        created_at: datetime | None = None,
    ) -> AvailabilityBlock:
        block = AvailabilityBlock(
            vehicle_id=vehicle.id,
            block_date=start.date(),
            start_time=start,
            end_time=end,
            block_type=block_type,
            booking_id=booking_id,
            created_at=created_at or start,
        )
        availability_db.add(block)
        availability_db.commit()
        availability_db.refresh(block)
        return block

    return _add_block


@pytest.fixture
def add_blackout(availability_db):
    def _add_blackout(day, reason: str = 'Harvest festival') -> AvailabilityRule:
        rule = AvailabilityRule(rule_type=RULE_TYPE_BLACKOUT_DATE, blackout_date=day, reason=reason, is_active=True)
        availability_db.add(rule)
        availability_db.commit()
        return rule

    return _add_blackout
