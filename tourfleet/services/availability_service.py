"""Vehicle availability checks.

Read-only and advisory: every answer here is a snapshot. Reserving vehicle
time goes through ``block_service``, which re-checks at insert time.
"""

import calendar
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, not_
from sqlalchemy.orm import Session

from tourfleet.core import config
from tourfleet.core.exceptions import AvailabilityValidationError
from tourfleet.models.availability_block import BLOCK_TYPE_HOLD, AvailabilityBlock
from tourfleet.models.availability_rule import RULE_TYPE_BLACKOUT_DATE, AvailabilityRule
from tourfleet.models.vehicle import VEHICLE_STATUS_ACTIVE, Vehicle
from tourfleet.schemas.availability import (
    AvailabilityCheckResponse,
    BlockResponse,
    TimeSlot,
    VehicleSummary,
)

logger = logging.getLogger(__name__)

PAST_DATE_REASON = 'Cannot book tours in the past'
FULLY_BOOKED_REASON = 'All suitable vehicles are booked for this time slot'


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # Half-open intervals: touching endpoints do not overlap.
    return start_a < end_b and end_a > start_b


def expired_hold_clause(now: datetime):
    cutoff = now - timedelta(minutes=config.HOLD_EXPIRATION_MINUTES)
    return and_(
        AvailabilityBlock.block_type == BLOCK_TYPE_HOLD,
        AvailabilityBlock.booking_id.is_(None),
        AvailabilityBlock.created_at < cutoff,
    )


def is_expired_hold(block: AvailabilityBlock, now: datetime) -> bool:
    cutoff = now - timedelta(minutes=config.HOLD_EXPIRATION_MINUTES)
    return (
        block.block_type == BLOCK_TYPE_HOLD
        and block.booking_id is None
        and block.created_at < cutoff
    )


def operating_window(day: date) -> tuple[datetime, datetime]:
    return datetime.combine(day, config.DAY_START), datetime.combine(day, config.DAY_END)


def tour_window(day: date, start_time: time, duration_hours: float) -> tuple[datetime, datetime]:
    start = datetime.combine(day, start_time)
    return start, start + timedelta(hours=duration_hours)


def is_within_operating_hours(start: datetime, end: datetime) -> bool:
    day_open, day_close = operating_window(start.date())
    return start >= day_open and end <= day_close


def _operating_hours_reason() -> str:
    return (
        f'Tours must be between {config.DAY_START.strftime("%H:%M")} '
        f'and {config.DAY_END.strftime("%H:%M")}'
    )


def _no_capacity_reason(party_size: int) -> str:
    return f'No vehicles available with capacity for {party_size} guests'


def validate_tour_request(
    duration_hours: float | None = None,
    party_size: int | None = None,
    brand_id: int | None = None,
) -> None:
    errors: list[dict[str, str]] = []

    if duration_hours is not None and not (
        config.MIN_DURATION_HOURS <= duration_hours <= config.MAX_DURATION_HOURS
    ):
        errors.append({
            'field': 'duration_hours',
            'message': (
                f'Duration must be between {config.MIN_DURATION_HOURS} '
                f'and {config.MAX_DURATION_HOURS} hours.'
            ),
        })

    if party_size is not None and not (config.MIN_PARTY_SIZE <= party_size <= config.MAX_PARTY_SIZE):
        errors.append({
            'field': 'party_size',
            'message': f'Party size must be between {config.MIN_PARTY_SIZE} and {config.MAX_PARTY_SIZE}.',
        })

    if brand_id is not None and brand_id <= 0:
        errors.append({'field': 'brand_id', 'message': 'Brand id must be a positive integer.'})

    if errors:
        raise AvailabilityValidationError(errors)


def get_eligible_vehicles(db: Session, party_size: int, brand_id: int | None = None) -> list[Vehicle]:
    """Active vehicles that seat the party, smallest first."""
    vehicles = db.query(Vehicle).filter(
        Vehicle.status == VEHICLE_STATUS_ACTIVE,
        Vehicle.capacity >= party_size,
    ).order_by(Vehicle.capacity.asc(), Vehicle.id.asc()).all()

    return [vehicle for vehicle in vehicles if vehicle.serves_brand(brand_id)]


def get_blackout_reasons(db: Session, day: date) -> list[str]:
    rules = db.query(AvailabilityRule).filter(
        AvailabilityRule.rule_type == RULE_TYPE_BLACKOUT_DATE,
        AvailabilityRule.is_active.is_(True),
        AvailabilityRule.blackout_date == day,
    ).order_by(AvailabilityRule.id.asc()).all()

    return [rule.reason or 'Date unavailable' for rule in rules]


def get_closed_reasons(db: Session, day: date, now: datetime) -> list[str]:
    if day < now.date():
        return [PAST_DATE_REASON]
    return get_blackout_reasons(db, day)


def find_live_blocks(
    db: Session,
    vehicle_ids: list[int],
    start: datetime,
    end: datetime,
    now: datetime,
) -> list[AvailabilityBlock]:
    if not vehicle_ids:
        return []

    return db.query(AvailabilityBlock).filter(
        AvailabilityBlock.vehicle_id.in_(vehicle_ids),
        AvailabilityBlock.start_time < end,
        AvailabilityBlock.end_time > start,
        not_(expired_hold_clause(now)),
    ).order_by(AvailabilityBlock.start_time.asc(), AvailabilityBlock.vehicle_id.asc()).all()


def partition_vehicles(
    vehicles: list[Vehicle],
    blocks: list[AvailabilityBlock],
    start: datetime,
    end: datetime,
) -> tuple[list[Vehicle], list[AvailabilityBlock]]:
    """Split vehicles into those free for [start, end) and the blocks in the way."""
    conflicts = [
        block for block in blocks
        if intervals_overlap(block.start_time, block.end_time, start, end)
    ]
    busy_vehicle_ids = {block.vehicle_id for block in conflicts}
    usable = [vehicle for vehicle in vehicles if vehicle.id not in busy_vehicle_ids]
    return usable, conflicts


def _unavailable(reasons: list[str], conflicts: list[AvailabilityBlock] | None = None) -> AvailabilityCheckResponse:
    return AvailabilityCheckResponse(
        available=False,
        conflicts=[BlockResponse.from_block(block) for block in conflicts or []],
        reasons=reasons,
    )


def check_availability(
    db: Session,
    request_date: date,
    start_time: time,
    duration_hours: float,
    party_size: int,
    brand_id: int | None = None,
    now: datetime | None = None,
) -> AvailabilityCheckResponse:
    validate_tour_request(duration_hours, party_size, brand_id)
    now = now or datetime.now()
    start, end = tour_window(request_date, start_time, duration_hours)

    logger.info(
        'Checking availability date=%s start=%s duration=%s party_size=%s brand_id=%s',
        request_date, start_time, duration_hours, party_size, brand_id,
    )

    if not is_within_operating_hours(start, end):
        return _unavailable([_operating_hours_reason()])

    closed_reasons = get_closed_reasons(db, request_date, now)
    if closed_reasons:
        return _unavailable(closed_reasons)

    vehicles = get_eligible_vehicles(db, party_size, brand_id)
    if not vehicles:
        return _unavailable([_no_capacity_reason(party_size)])

    blocks = find_live_blocks(db, [vehicle.id for vehicle in vehicles], start, end, now)
    usable, conflicts = partition_vehicles(vehicles, blocks, start, end)

    if not usable:
        return _unavailable([FULLY_BOOKED_REASON], conflicts)

    return AvailabilityCheckResponse(
        available=True,
        vehicle=VehicleSummary.model_validate(usable[0]),
        available_vehicles=[VehicleSummary.model_validate(vehicle) for vehicle in usable],
        conflicts=[BlockResponse.from_block(block) for block in conflicts],
    )


def iterate_tour_starts(day: date, duration_hours: float) -> list[tuple[datetime, datetime]]:
    day_open, day_close = operating_window(day)
    duration = timedelta(hours=duration_hours)
    step = timedelta(minutes=config.SLOT_INTERVAL_MINUTES)

    windows: list[tuple[datetime, datetime]] = []
    current = day_open
    while current + duration <= day_close:
        windows.append((current, current + duration))
        current += step

    return windows


def _evaluate_slots(
    db: Session,
    day: date,
    duration_hours: float,
    vehicles: list[Vehicle],
    now: datetime,
) -> list[TimeSlot]:
    windows = iterate_tour_starts(day, duration_hours)

    if not vehicles or get_closed_reasons(db, day, now):
        return [TimeSlot(start=start.time(), end=end.time(), available=False) for start, end in windows]

    day_open, day_close = operating_window(day)
    blocks = find_live_blocks(db, [vehicle.id for vehicle in vehicles], day_open, day_close, now)

    slots: list[TimeSlot] = []
    for start, end in windows:
        usable, _ = partition_vehicles(vehicles, blocks, start, end)
        if usable:
            slots.append(
                TimeSlot(
                    start=start.time(),
                    end=end.time(),
                    available=True,
                    vehicle_id=usable[0].id,
                    vehicle_name=usable[0].name,
                )
            )
        else:
            slots.append(TimeSlot(start=start.time(), end=end.time(), available=False))

    return slots


def get_available_slots(
    db: Session,
    request_date: date,
    duration_hours: float,
    party_size: int,
    brand_id: int | None = None,
    now: datetime | None = None,
) -> list[TimeSlot]:
    validate_tour_request(duration_hours, party_size, brand_id)
    now = now or datetime.now()

    vehicles = get_eligible_vehicles(db, party_size, brand_id)
    return _evaluate_slots(db, request_date, duration_hours, vehicles, now)


def get_blocks_in_range(
    db: Session,
    start_date: date,
    end_date: date,
    vehicle_id: int | None = None,
    now: datetime | None = None,
) -> list[AvailabilityBlock]:
    if end_date < start_date:
        raise AvailabilityValidationError.for_field('end_date', 'end_date must not be before start_date.')

    if (end_date - start_date).days > config.MAX_CALENDAR_RANGE_DAYS:
        raise AvailabilityValidationError.for_field(
            'end_date',
            f'Date range cannot exceed {config.MAX_CALENDAR_RANGE_DAYS} days.',
        )

    now = now or datetime.now()
    query = db.query(AvailabilityBlock).filter(
        AvailabilityBlock.block_date >= start_date,
        AvailabilityBlock.block_date <= end_date,
        not_(expired_hold_clause(now)),
    )
    if vehicle_id is not None:
        query = query.filter(AvailabilityBlock.vehicle_id == vehicle_id)

    return query.order_by(
        AvailabilityBlock.block_date.asc(),
        AvailabilityBlock.vehicle_id.asc(),
        AvailabilityBlock.start_time.asc(),
    ).all()


def get_available_dates_for_month(
    db: Session,
    year: int,
    month: int,
    party_size: int,
    brand_id: int | None = None,
    now: datetime | None = None,
) -> list[date]:
    """Days in the month with at least one open baseline-length slot.

    Days closer than the minimum lead time are never offered.
    """
    if not config.MIN_YEAR <= year <= config.MAX_YEAR:
        raise AvailabilityValidationError.for_field(
            'year',
            f'Year must be between {config.MIN_YEAR} and {config.MAX_YEAR}.',
        )
    if not 1 <= month <= 12:
        raise AvailabilityValidationError.for_field('month', 'Month must be between 1 and 12.')
    validate_tour_request(party_size=party_size, brand_id=brand_id)

    now = now or datetime.now()
    earliest_day = (now + timedelta(hours=config.MIN_LEAD_HOURS)).date()

    vehicles = get_eligible_vehicles(db, party_size, brand_id)
    if not vehicles:
        return []

    available_dates: list[date] = []
    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        day = date(year, month, day_number)
        if day < earliest_day:
            continue

        slots = _evaluate_slots(db, day, config.BASELINE_DURATION_HOURS, vehicles, now)
        if any(slot.available for slot in slots):
            available_dates.append(day)

    return available_dates
