from datetime import date, datetime, time

import pytest

from tourfleet.core.exceptions import AvailabilityValidationError
from tourfleet.services.availability_service import (
    FULLY_BOOKED_REASON,
    PAST_DATE_REASON,
    check_availability,
    get_available_dates_for_month,
    get_available_slots,
    get_blocks_in_range,
    intervals_overlap,
    iterate_tour_starts,
)

TOUR_DAY = date(2025, 6, 1)
NOW = datetime(2025, 5, 1, 9, 0)


def at(hour: int, minute: int = 0, day: date = TOUR_DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.mark.parametrize(
    ('start', 'end', 'expected'),
    [
        (at(9), at(11), True),
        (at(11), at(13), True),
        (at(8), at(16), True),
        (at(14), at(17), False),
        (at(8), at(10), False),
    ],
)
def test_intervals_overlap_uses_half_open_ranges(start: datetime, end: datetime, expected: bool) -> None:
    assert intervals_overlap(start, end, at(10), at(14)) is expected


def test_check_reports_conflict_when_request_overlaps_existing_block(availability_db, add_vehicle, add_block) -> None:
    vehicle = add_vehicle(capacity=10)
    block = add_block(vehicle, at(10), at(14))

    result = check_availability(availability_db, TOUR_DAY, time(9, 0), 2, 4, now=NOW)

    assert result.available is False
    assert result.vehicle is None
    assert [conflict.id for conflict in result.conflicts] == [block.id]
    assert result.conflicts[0].vehicle_name == vehicle.name
    assert result.reasons == [FULLY_BOOKED_REASON]


def test_check_treats_abutting_block_as_free(availability_db, add_vehicle, add_block) -> None:
    vehicle = add_vehicle(capacity=10)
    add_block(vehicle, at(10), at(14))

    after = check_availability(availability_db, TOUR_DAY, time(14, 0), 3, 4, now=NOW)
    before = check_availability(availability_db, TOUR_DAY, time(8, 0), 2, 4, now=NOW)

    assert after.available is True
    assert after.vehicle.id == vehicle.id
    assert after.conflicts == []
    assert before.available is True


def test_check_prefers_smallest_vehicle_that_fits(availability_db, add_vehicle) -> None:
    large = add_vehicle(name='Coach 40', capacity=40)
    small = add_vehicle(name='Sedan 6', capacity=6)
    add_vehicle(name='Sedan 3', capacity=3)

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 6, 5, now=NOW)

    assert result.available is True
    assert result.vehicle.id == small.id
    assert [vehicle.id for vehicle in result.available_vehicles] == [small.id, large.id]


def test_check_falls_back_to_next_vehicle_and_reports_conflicts(availability_db, add_vehicle, add_block) -> None:
    small = add_vehicle(name='Sedan 6', capacity=6)
    large = add_vehicle(name='Coach 40', capacity=40)
    block = add_block(small, at(11), at(15))

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 4, 4, now=NOW)

    assert result.available is True
    assert result.vehicle.id == large.id
    assert [conflict.id for conflict in result.conflicts] == [block.id]


def test_check_reports_missing_capacity(availability_db, add_vehicle) -> None:
    add_vehicle(capacity=6)

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 4, 12, now=NOW)

    assert result.available is False
    assert result.conflicts == []
    assert result.reasons == ['No vehicles available with capacity for 12 guests']


def test_check_ignores_inactive_vehicles(availability_db, add_vehicle) -> None:
    add_vehicle(capacity=10, status='maintenance')

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 4, 4, now=NOW)

    assert result.available is False


def test_check_filters_vehicles_by_brand(availability_db, add_vehicle) -> None:
    shared = add_vehicle(name='Shared Van', capacity=14)
    brand_only = add_vehicle(name='Brand Sedan', capacity=6, available_to_all_brands=False, brand_ids=[2])

    for_brand_two = check_availability(availability_db, TOUR_DAY, time(10, 0), 4, 4, brand_id=2, now=NOW)
    for_brand_three = check_availability(availability_db, TOUR_DAY, time(10, 0), 4, 4, brand_id=3, now=NOW)

    assert [vehicle.id for vehicle in for_brand_two.available_vehicles] == [brand_only.id, shared.id]
    assert [vehicle.id for vehicle in for_brand_three.available_vehicles] == [shared.id]


def test_check_rejects_tours_outside_operating_hours(availability_db, add_vehicle) -> None:
    add_vehicle()

    result = check_availability(availability_db, TOUR_DAY, time(20, 0), 3, 4, now=NOW)

    assert result.available is False
    assert result.reasons == ['Tours must be between 08:00 and 22:00']


def test_check_rejects_past_dates(availability_db, add_vehicle) -> None:
    add_vehicle()

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 3, 4, now=datetime(2025, 6, 2, 8, 0))

    assert result.available is False
    assert result.reasons == [PAST_DATE_REASON]


def test_check_honors_blackout_dates(availability_db, add_vehicle, add_blackout) -> None:
    add_vehicle()
    add_blackout(TOUR_DAY, reason='Private estate event')

    result = check_availability(availability_db, TOUR_DAY, time(10, 0), 3, 4, now=NOW)

    assert result.available is False
    assert result.reasons == ['Private estate event']


def test_check_ignores_expired_holds_but_not_live_ones(availability_db, add_vehicle, add_block) -> None:
    vehicle = add_vehicle()
    add_block(vehicle, at(10), at(12), block_type='hold', created_at=NOW.replace(hour=8, minute=30))

    expired_view = check_availability(availability_db, TOUR_DAY, time(10, 0), 2, 4, now=NOW)
    live_view = check_availability(
        availability_db, TOUR_DAY, time(10, 0), 2, 4, now=NOW.replace(hour=8, minute=40),
    )

    assert expired_view.available is True
    assert live_view.available is False


def test_check_is_idempotent(availability_db, add_vehicle, add_block) -> None:
    vehicle = add_vehicle()
    add_block(vehicle, at(12), at(13))

    first = check_availability(availability_db, TOUR_DAY, time(11, 0), 3, 4, now=NOW)
    second = check_availability(availability_db, TOUR_DAY, time(11, 0), 3, 4, now=NOW)

    assert first == second


def test_check_rejects_out_of_range_inputs(availability_db) -> None:
    with pytest.raises(AvailabilityValidationError) as exception_info:
        check_availability(availability_db, TOUR_DAY, time(10, 0), 13, 0, now=NOW)

    assert [error['field'] for error in exception_info.value.errors] == ['duration_hours', 'party_size']


def test_iterate_tour_starts_stops_at_latest_fitting_start() -> None:
    windows = iterate_tour_starts(TOUR_DAY, 12)

    assert windows == [(at(8), at(20)), (at(9), at(21)), (at(10), at(22))]


def test_slots_mark_overlapping_starts_unavailable(availability_db, add_vehicle, add_block) -> None:
    vehicle = add_vehicle()
    add_block(vehicle, at(10), at(14))

    slots = get_available_slots(availability_db, TOUR_DAY, 3, 4, now=NOW)

    assert [slot.start for slot in slots] == [time(hour, 0) for hour in range(8, 20)]
    assert [slot.start for slot in slots if slot.available] == [time(hour, 0) for hour in range(14, 20)]
    assert all(slot.vehicle_id == vehicle.id for slot in slots if slot.available)
    assert all(slot.vehicle_id is None for slot in slots if not slot.available)


def test_slots_are_never_available_without_capacity(availability_db, add_vehicle) -> None:
    add_vehicle(capacity=4)

    slots = get_available_slots(availability_db, TOUR_DAY, 2, 8, now=NOW)

    assert slots
    assert not any(slot.available for slot in slots)


def test_slots_on_blackout_date_are_unavailable(availability_db, add_vehicle, add_blackout) -> None:
    add_vehicle()
    add_blackout(TOUR_DAY)

    slots = get_available_slots(availability_db, TOUR_DAY, 2, 4, now=NOW)

    assert not any(slot.available for slot in slots)


def test_blocks_in_range_rejects_spans_over_limit(availability_db) -> None:
    with pytest.raises(AvailabilityValidationError) as exception_info:
        get_blocks_in_range(availability_db, date(2025, 6, 1), date(2025, 9, 1))

    assert exception_info.value.errors[0]['field'] == 'end_date'


def test_blocks_in_range_rejects_reversed_range(availability_db) -> None:
    with pytest.raises(AvailabilityValidationError):
        get_blocks_in_range(availability_db, date(2025, 6, 10), date(2025, 6, 1))


def test_blocks_in_range_filters_and_orders(availability_db, add_vehicle, add_block) -> None:
    van = add_vehicle(name='Van')
    coach = add_vehicle(name='Coach', capacity=30)
    second_day = add_block(van, at(9, day=date(2025, 6, 2)), at(11, day=date(2025, 6, 2)))
    late = add_block(coach, at(15), at(17))
    early = add_block(van, at(8), at(9))
    add_block(van, at(8, day=date(2025, 7, 15)), at(9, day=date(2025, 7, 15)))
    add_block(van, at(12), at(13), block_type='hold', created_at=datetime(2025, 5, 1, 8, 0))

    blocks = get_blocks_in_range(availability_db, date(2025, 6, 1), date(2025, 6, 30), now=NOW)
    van_blocks = get_blocks_in_range(availability_db, date(2025, 6, 1), date(2025, 6, 30), vehicle_id=van.id, now=NOW)

    assert [block.id for block in blocks] == [early.id, late.id, second_day.id]
    assert [block.id for block in van_blocks] == [early.id, second_day.id]


def test_dates_for_month_skip_lead_time_and_booked_days(
    availability_db,
    add_vehicle,
    add_block,
    add_blackout,
) -> None:
    vehicle = add_vehicle()
    add_block(vehicle, at(8, day=date(2025, 6, 20)), at(22, day=date(2025, 6, 20)))
    add_blackout(date(2025, 6, 25))

    available = get_available_dates_for_month(
        availability_db, 2025, 6, 4, now=datetime(2025, 6, 10, 12, 0),
    )

    expected = [
        date(2025, 6, day) for day in range(12, 31)
        if day not in (20, 25)
    ]
    assert available == expected


def test_dates_for_month_empty_without_capacity(availability_db, add_vehicle) -> None:
    add_vehicle(capacity=4)

    assert get_available_dates_for_month(availability_db, 2025, 6, 10, now=NOW) == []


def test_dates_for_month_rejects_invalid_month(availability_db) -> None:
    with pytest.raises(AvailabilityValidationError) as exception_info:
        get_available_dates_for_month(availability_db, 2025, 13, 4, now=NOW)

    assert exception_info.value.errors[0]['field'] == 'month'


@pytest.mark.parametrize('year', [1999, 2101])
def test_dates_for_month_rejects_out_of_range_year(availability_db, year: int) -> None:
    with pytest.raises(AvailabilityValidationError) as exception_info:
        get_available_dates_for_month(availability_db, year, 6, 4, now=NOW)

    assert exception_info.value.errors == [{'field': 'year', 'message': 'Year must be between 2000 and 2100.'}]
