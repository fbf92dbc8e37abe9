"""Availability block writes: holds, bookings, maintenance, buffers.

Every insert is arbitrated here rather than trusted to an earlier
availability check. Writers for one vehicle are serialized in-process, the
vehicle row is locked for the transaction, and on Postgres the
``vehicle_availability_blocks_no_overlap`` exclusion constraint rejects any
overlap that slips past both.
"""

import logging
from datetime import datetime, timedelta
from threading import Lock

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tourfleet.core import config
from tourfleet.core.exceptions import (
    AvailabilityValidationError,
    BlockConflictError,
    BlockNotFoundError,
)
from tourfleet.models.availability_block import (
    BLOCK_TYPE_BLACKOUT,
    BLOCK_TYPE_BOOKING,
    BLOCK_TYPE_BUFFER,
    BLOCK_TYPE_HOLD,
    BLOCK_TYPE_MAINTENANCE,
    AvailabilityBlock,
)
from tourfleet.models.vehicle import Vehicle
from tourfleet.services.availability_service import (
    expired_hold_clause,
    is_expired_hold,
    operating_window,
)

logger = logging.getLogger(__name__)

HOLD_CONFLICT_MESSAGE = 'Time slot is no longer available. Another booking was just made for this time.'
ADMIN_BLOCK_CONFLICT_MESSAGE = 'Cannot create {block_type} block - time slot has existing bookings.'
BUFFER_CONFLICT_MESSAGE = 'Buffer overlaps an existing block.'
DEFAULT_HOLD_NOTES = 'Temporary hold for booking in progress'

_vehicle_locks: dict[int, Lock] = {}
_vehicle_locks_guard = Lock()


def _vehicle_lock(vehicle_id: int) -> Lock:
    lock = _vehicle_locks.get(vehicle_id)
    if lock is not None:
        return lock

    with _vehicle_locks_guard:
        lock = _vehicle_locks.get(vehicle_id)
        if lock is None:
            lock = Lock()
            _vehicle_locks[vehicle_id] = lock
        return lock


def validate_block_interval(start: datetime, end: datetime) -> None:
    if start >= end:
        raise AvailabilityValidationError.for_field('end_time', 'end_time must be after start_time.')
    if start.date() != end.date():
        raise AvailabilityValidationError.for_field('end_time', 'Blocks must start and end on the same day.')


def _get_block(db: Session, block_id: int) -> AvailabilityBlock:
    block = db.get(AvailabilityBlock, block_id)
    if block is None:
        raise BlockNotFoundError(block_id)
    return block


def insert_block(
    db: Session,
    *,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    block_type: str,
    conflict_message: str,
    booking_id: int | None = None,
    brand_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AvailabilityBlock:
    """Insert a block, or raise ``BlockConflictError`` if the vehicle is taken."""
    validate_block_interval(start, end)
    now = now or datetime.now()

    # Only known vehicles get a lock entry.
    if db.get(Vehicle, vehicle_id) is None:
        raise AvailabilityValidationError.for_field('vehicle_id', 'Vehicle not found.')

    with _vehicle_lock(vehicle_id):
        vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_id).with_for_update().first()
        if vehicle is None:
            db.rollback()
            raise AvailabilityValidationError.for_field('vehicle_id', 'Vehicle not found.')

        # Expired holds would still trip the exclusion constraint.
        db.query(AvailabilityBlock).filter(
            AvailabilityBlock.vehicle_id == vehicle_id,
            expired_hold_clause(now),
        ).delete(synchronize_session='fetch')

        overlapping = db.query(AvailabilityBlock.id).filter(
            AvailabilityBlock.vehicle_id == vehicle_id,
            AvailabilityBlock.start_time < end,
            AvailabilityBlock.end_time > start,
        ).all()
        if overlapping:
            db.rollback()
            logger.warning(
                'Rejected %s block for vehicle %s %s-%s: overlaps %s',
                block_type, vehicle_id, start, end, [row.id for row in overlapping],
            )
            raise BlockConflictError(conflict_message, [row.id for row in overlapping])

        block = AvailabilityBlock(
            vehicle_id=vehicle_id,
            block_date=start.date(),
            start_time=start,
            end_time=end,
            block_type=block_type,
            booking_id=booking_id,
            brand_id=brand_id,
            notes=notes,
            created_at=now,
        )
        db.add(block)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning('Exclusion constraint rejected %s block for vehicle %s', block_type, vehicle_id)
            raise BlockConflictError(conflict_message) from exc
        db.refresh(block)

    logger.info('Created %s block %s for vehicle %s %s-%s', block_type, block.id, vehicle_id, start, end)
    return block


def create_hold_block(
    db: Session,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    brand_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AvailabilityBlock:
    return insert_block(
        db,
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        block_type=BLOCK_TYPE_HOLD,
        conflict_message=HOLD_CONFLICT_MESSAGE,
        brand_id=brand_id,
        notes=notes or DEFAULT_HOLD_NOTES,
        now=now,
    )


def convert_hold_to_booking(
    db: Session,
    hold_block_id: int,
    booking_id: int,
    now: datetime | None = None,
) -> AvailabilityBlock:
    now = now or datetime.now()
    block = _get_block(db, hold_block_id)

    if block.block_type != BLOCK_TYPE_HOLD:
        raise AvailabilityValidationError.for_field('hold_block_id', 'Only hold blocks can be converted to bookings.')
    if is_expired_hold(block, now):
        raise AvailabilityValidationError.for_field(
            'hold_block_id',
            'This hold has expired. Check availability and try again.',
        )

    block.block_type = BLOCK_TYPE_BOOKING
    block.booking_id = booking_id
    block.notes = None
    db.commit()
    db.refresh(block)

    logger.info('Converted hold %s to booking %s', hold_block_id, booking_id)
    return block


def release_hold_block(db: Session, hold_block_id: int) -> None:
    block = _get_block(db, hold_block_id)
    if block.block_type != BLOCK_TYPE_HOLD:
        raise AvailabilityValidationError.for_field('hold_block_id', 'Only hold blocks can be released.')

    db.delete(block)
    db.commit()
    logger.info('Released hold %s', hold_block_id)


def create_maintenance_block(
    db: Session,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    reason: str,
    now: datetime | None = None,
) -> AvailabilityBlock:
    return insert_block(
        db,
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        block_type=BLOCK_TYPE_MAINTENANCE,
        conflict_message=ADMIN_BLOCK_CONFLICT_MESSAGE.format(block_type=BLOCK_TYPE_MAINTENANCE),
        notes=reason,
        now=now,
    )


def create_blackout_block(
    db: Session,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    reason: str,
    now: datetime | None = None,
) -> AvailabilityBlock:
    return insert_block(
        db,
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        block_type=BLOCK_TYPE_BLACKOUT,
        conflict_message=ADMIN_BLOCK_CONFLICT_MESSAGE.format(block_type=BLOCK_TYPE_BLACKOUT),
        notes=reason,
        now=now,
    )


def create_buffer_blocks(
    db: Session,
    vehicle_id: int,
    booking_start: datetime,
    booking_end: datetime,
    booking_id: int,
    buffer_minutes: int | None = None,
    now: datetime | None = None,
) -> list[AvailabilityBlock]:
    """Add turnaround blocks before and after a booking.

    A buffer that falls outside operating hours or would overlap another
    block is skipped; the booking itself stands either way.
    """
    if buffer_minutes is None:
        buffer_minutes = config.BUFFER_MINUTES
    if buffer_minutes <= 0:
        return []

    buffer = timedelta(minutes=buffer_minutes)
    day_open, day_close = operating_window(booking_start.date())

    candidates = [
        (booking_start - buffer, booking_start, 'Pre-booking buffer'),
        (booking_end, booking_end + buffer, 'Post-booking buffer'),
    ]

    created: list[AvailabilityBlock] = []
    for start, end, notes in candidates:
        if start < day_open or end > day_close:
            continue
        try:
            created.append(
                insert_block(
                    db,
                    vehicle_id=vehicle_id,
                    start=start,
                    end=end,
                    block_type=BLOCK_TYPE_BUFFER,
                    conflict_message=BUFFER_CONFLICT_MESSAGE,
                    booking_id=booking_id,
                    notes=notes,
                    now=now,
                )
            )
        except BlockConflictError:
            logger.warning('Skipped %s for booking %s on vehicle %s', notes.lower(), booking_id, vehicle_id)

    return created


def delete_block(db: Session, block_id: int) -> None:
    block = _get_block(db, block_id)

    if block.block_type == BLOCK_TYPE_BOOKING and block.booking_id:
        raise AvailabilityValidationError.for_field(
            'block_id',
            'Cannot delete booking blocks directly. Cancel the booking instead.',
        )

    block_type = block.block_type
    db.delete(block)
    db.commit()
    logger.info('Deleted %s block %s', block_type, block_id)


def delete_booking_blocks(db: Session, booking_id: int) -> int:
    deleted = db.query(AvailabilityBlock).filter(
        AvailabilityBlock.booking_id == booking_id,
    ).delete(synchronize_session='fetch')
    db.commit()

    logger.info('Deleted %s blocks for cancelled booking %s', deleted, booking_id)
    return deleted


def cleanup_expired_holds(db: Session, vehicle_id: int | None = None, now: datetime | None = None) -> int:
    now = now or datetime.now()
    query = db.query(AvailabilityBlock).filter(expired_hold_clause(now))
    if vehicle_id is not None:
        query = query.filter(AvailabilityBlock.vehicle_id == vehicle_id)

    deleted = query.delete(synchronize_session='fetch')
    db.commit()

    if deleted:
        logger.info('Cleaned up %s expired holds', deleted)
    return deleted
