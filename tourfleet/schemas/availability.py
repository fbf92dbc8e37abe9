"""Request and response models for the availability API."""

import re
from datetime import date, datetime, time
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, field_serializer, field_validator

from tourfleet.core import config
from tourfleet.models.availability_block import BLOCK_TYPE_MAINTENANCE

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')


def parse_iso_date(value):
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValueError('Date must use the YYYY-MM-DD format.')
    return date.fromisoformat(value.strip())


def parse_clock_time(value):
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValueError('Time must use the HH:MM format.')
    hours, minutes = value.strip().split(':')
    return time(int(hours), int(minutes))


def to_naive_local(value: datetime) -> datetime:
    # Stored columns are timestamp without time zone, in local time.
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


IsoDate = Annotated[date, BeforeValidator(parse_iso_date)]
ClockTime = Annotated[time, BeforeValidator(parse_clock_time)]
LocalDatetime = Annotated[datetime, AfterValidator(to_naive_local)]
DurationHours = Annotated[float, Field(ge=config.MIN_DURATION_HOURS, le=config.MAX_DURATION_HOURS)]
PartySize = Annotated[int, Field(ge=config.MIN_PARTY_SIZE, le=config.MAX_PARTY_SIZE)]
PositiveId = Annotated[int, Field(gt=0)]


# Query kinds for GET /availability, discriminated by ``action``.

class CheckQuery(BaseModel):
    model_config = ConfigDict(extra='ignore')

    action: Literal['check']
    date: IsoDate
    start_time: ClockTime
    duration_hours: DurationHours
    party_size: PartySize
    brand_id: PositiveId | None = None


class SlotsQuery(BaseModel):
    model_config = ConfigDict(extra='ignore')

    action: Literal['slots']
    date: IsoDate
    duration_hours: DurationHours
    party_size: PartySize
    brand_id: PositiveId | None = None


class DatesQuery(BaseModel):
    model_config = ConfigDict(extra='ignore')

    action: Literal['dates']
    year: Annotated[int, Field(ge=config.MIN_YEAR, le=config.MAX_YEAR)]
    month: Annotated[int, Field(ge=1, le=12)]
    party_size: PartySize
    brand_id: PositiveId | None = None


class CalendarQuery(BaseModel):
    model_config = ConfigDict(extra='ignore')

    action: Literal['calendar']
    start_date: IsoDate
    end_date: IsoDate
    vehicle_id: PositiveId | None = None


AvailabilityQuery = Annotated[
    Union[CheckQuery, SlotsQuery, DatesQuery, CalendarQuery],
    Field(discriminator='action'),
]


# Responses

class VehicleSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    capacity: int


class BlockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    vehicle_name: str | None = None
    block_date: date
    start_time: datetime
    end_time: datetime
    block_type: str
    booking_id: int | None = None
    brand_id: int | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_block(cls, block) -> 'BlockResponse':
        response = cls.model_validate(block)
        if block.vehicle is not None:
            response.vehicle_name = block.vehicle.name
        return response


class AvailabilityCheckResponse(BaseModel):
    available: bool
    vehicle: VehicleSummary | None = None
    available_vehicles: list[VehicleSummary] = Field(default_factory=list)
    conflicts: list[BlockResponse] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)


class TimeSlot(BaseModel):
    start: time
    end: time
    available: bool
    vehicle_id: int | None = None
    vehicle_name: str | None = None

    @field_serializer('start', 'end')
    def serialize_clock(self, value: time) -> str:
        return value.strftime('%H:%M')


class TimeSlotsResponse(BaseModel):
    time_slots: list[TimeSlot]
    available_count: int
    total_count: int


class AvailableDatesResponse(BaseModel):
    available_dates: list[date]


class CalendarResponse(BaseModel):
    blocks: list[BlockResponse]
    blocks_by_vehicle: dict[int, list[BlockResponse]]


# Block management requests

class CreateHoldRequest(BaseModel):
    vehicle_id: PositiveId
    start_time: LocalDatetime
    end_time: LocalDatetime
    brand_id: PositiveId | None = None
    notes: str | None = None


class ConvertHoldRequest(BaseModel):
    booking_id: PositiveId


class CreateAdminBlockRequest(BaseModel):
    vehicle_id: PositiveId
    start_time: LocalDatetime
    end_time: LocalDatetime
    block_type: Literal['maintenance', 'blackout'] = BLOCK_TYPE_MAINTENANCE
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A reason is required for maintenance and blackout blocks.')
        return normalized


class CreateBufferBlocksRequest(BaseModel):
    vehicle_id: PositiveId
    booking_id: PositiveId
    booking_start: LocalDatetime
    booking_end: LocalDatetime
    buffer_minutes: Annotated[int, Field(gt=0, le=240)] = config.BUFFER_MINUTES


class DeletedCountResponse(BaseModel):
    deleted: int
