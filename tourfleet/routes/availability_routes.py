from collections.abc import Callable, Mapping
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tourfleet.core.exceptions import AvailabilityValidationError, DomainException
from tourfleet.database import SessionLocal, ensure_availability_schema
from tourfleet.models.availability_block import BLOCK_TYPE_BLACKOUT
from tourfleet.schemas.availability import (
    AvailabilityQuery,
    AvailableDatesResponse,
    BlockResponse,
    CalendarQuery,
    CalendarResponse,
    CheckQuery,
    ConvertHoldRequest,
    CreateAdminBlockRequest,
    CreateBufferBlocksRequest,
    CreateHoldRequest,
    DatesQuery,
    DeletedCountResponse,
    SlotsQuery,
    TimeSlotsResponse,
)
from tourfleet.services import availability_service, block_service

router = APIRouter(tags=['availability'])

_availability_query_adapter = TypeAdapter(AvailabilityQuery)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and Postgres credentials.',
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def field_errors(errors: list[dict[str, Any]], fallback: str) -> list[dict[str, str]]:
    """Flatten pydantic error entries to ``{field, message}`` pairs.

    The first ``loc`` element is the union tag or the request part
    (``body``/``query``), so it is dropped.
    """
    flattened = []
    for error in errors:
        location = [str(part) for part in error.get('loc', ())[1:]]
        flattened.append({
            'field': '.'.join(location) or fallback,
            'message': error.get('msg', 'Invalid value.'),
        })
    return flattened


def parse_availability_query(params: Mapping[str, str]):
    try:
        return _availability_query_adapter.validate_python(dict(params))
    except ValidationError as exc:
        raise AvailabilityValidationError(field_errors(exc.errors(), fallback='action')).to_http_exception() from exc


def handle_check(query: CheckQuery, db: Session):
    return availability_service.check_availability(
        db,
        request_date=query.date,
        start_time=query.start_time,
        duration_hours=query.duration_hours,
        party_size=query.party_size,
        brand_id=query.brand_id,
    )


def handle_slots(query: SlotsQuery, db: Session) -> TimeSlotsResponse:
    slots = availability_service.get_available_slots(
        db,
        request_date=query.date,
        duration_hours=query.duration_hours,
        party_size=query.party_size,
        brand_id=query.brand_id,
    )
    return TimeSlotsResponse(
        time_slots=slots,
        available_count=sum(1 for slot in slots if slot.available),
        total_count=len(slots),
    )


def handle_dates(query: DatesQuery, db: Session) -> AvailableDatesResponse:
    return AvailableDatesResponse(
        available_dates=availability_service.get_available_dates_for_month(
            db,
            year=query.year,
            month=query.month,
            party_size=query.party_size,
            brand_id=query.brand_id,
        )
    )


def group_blocks_by_vehicle(blocks: list[BlockResponse]) -> dict[int, list[BlockResponse]]:
    grouped: dict[int, list[BlockResponse]] = {}
    for block in blocks:
        grouped.setdefault(block.vehicle_id, []).append(block)
    return grouped


def handle_calendar(query: CalendarQuery, db: Session) -> CalendarResponse:
    blocks = [
        BlockResponse.from_block(block)
        for block in availability_service.get_blocks_in_range(
            db,
            start_date=query.start_date,
            end_date=query.end_date,
            vehicle_id=query.vehicle_id,
        )
    ]
    return CalendarResponse(blocks=blocks, blocks_by_vehicle=group_blocks_by_vehicle(blocks))


QUERY_HANDLERS: dict[type, Callable[[Any, Session], Any]] = {
    CheckQuery: handle_check,
    SlotsQuery: handle_slots,
    DatesQuery: handle_dates,
    CalendarQuery: handle_calendar,
}


@router.get('')
def get_availability(request: Request, db: Session = Depends(get_db)):
    query = parse_availability_query(request.query_params)
    handler = QUERY_HANDLERS[type(query)]

    ensure_database_ready()

    try:
        return handler(query, db)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/holds', response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
def create_hold(data: CreateHoldRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        block = block_service.create_hold_block(
            db,
            vehicle_id=data.vehicle_id,
            start=data.start_time,
            end=data.end_time,
            brand_id=data.brand_id,
            notes=data.notes,
        )
        return BlockResponse.from_block(block)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/holds/cleanup', response_model=DeletedCountResponse)
def cleanup_holds(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return DeletedCountResponse(deleted=block_service.cleanup_expired_holds(db))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/holds/{hold_block_id}/convert', response_model=BlockResponse)
def convert_hold(hold_block_id: int, data: ConvertHoldRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        block = block_service.convert_hold_to_booking(db, hold_block_id, data.booking_id)
        return BlockResponse.from_block(block)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/holds/{hold_block_id}', status_code=status.HTTP_204_NO_CONTENT)
def release_hold(hold_block_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        block_service.release_hold_block(db, hold_block_id)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/blocks', response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
def create_admin_block(data: CreateAdminBlockRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    create = (
        block_service.create_blackout_block
        if data.block_type == BLOCK_TYPE_BLACKOUT
        else block_service.create_maintenance_block
    )

    try:
        block = create(db, data.vehicle_id, data.start_time, data.end_time, data.reason)
        return BlockResponse.from_block(block)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/buffers', response_model=list[BlockResponse], status_code=status.HTTP_201_CREATED)
def create_buffers(data: CreateBufferBlocksRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        blocks = block_service.create_buffer_blocks(
            db,
            vehicle_id=data.vehicle_id,
            booking_start=data.booking_start,
            booking_end=data.booking_end,
            booking_id=data.booking_id,
            buffer_minutes=data.buffer_minutes,
        )
        return [BlockResponse.from_block(block) for block in blocks]
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_block(block_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        block_service.delete_block(db, block_id)
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/bookings/{booking_id}/blocks', response_model=DeletedCountResponse)
def remove_booking_blocks(booking_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return DeletedCountResponse(deleted=block_service.delete_booking_blocks(db, booking_id))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
