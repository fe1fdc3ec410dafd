from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from rental_vouchers.core.settings import settings
from rental_vouchers.models.voucher import DiscountType
from rental_vouchers.services.money import format_amount
from rental_vouchers.services.time_windows import (
    duration_hours,
    elapsed_hours,
    iter_booking_hours,
    iter_hour_segments,
    overlap_hours,
    weekday_index,
)


MORNING_PROMO_START_HOUR = 23
MORNING_PROMO_END_HOUR = 10
DEFAULT_HOURLY_REDUCTION = 3.0
DEFAULT_HOURS_PER_FREE_HOUR = 6
LEGACY_MORNING_BOOKINGS_PERCENT = 20.0
LEGACY_WEEKDAY_TRIPS_PERCENT = 15.0

WEEKDAYS_MON_FRI: frozenset[int] = frozenset({1, 2, 3, 4, 5})
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

PERCENTAGE_FAMILY: frozenset[DiscountType] = frozenset({DiscountType.PERCENTAGE, DiscountType.WEEKDAY_TRIPS})
HOURLY_OVERLAP_TYPES: frozenset[DiscountType] = frozenset({DiscountType.PERCENTAGE, DiscountType.FIXED_AMOUNT})

PROMO_NAMES: dict[DiscountType, str] = {
    DiscountType.PERCENTAGE: "Percentage Discount",
    DiscountType.FIXED_AMOUNT: "Fixed Amount Discount",
    DiscountType.FREE_HOURS: "Free Hours",
    DiscountType.MORNING_BOOKINGS: "Morning Bookings",
    DiscountType.RENT_5_GET_1: "Rent 5 Get 1 Day",
    DiscountType.WEEKDAY_TRIPS: "Weekday Trips",
    DiscountType.HOURLY_PRICE_REDUCTION: "Morning Bookings Promo",
    DiscountType.DURATION_BASED_FREE_HOURS: "Rent 5 Get 1",
}

INVALID_TIME_OR_CAR = "Invalid booking time or car information"


@dataclass
class DiscountResult:
    valid: bool
    discount_amount: float = 0.0
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def reject(cls, message: str) -> "DiscountResult":
        return cls(valid=False, message=message)


def is_morning_promo_hour(hour: int) -> bool:
    return hour >= MORNING_PROMO_START_HOUR or hour < MORNING_PROMO_END_HOUR


def gates_days_inline(voucher: Any) -> bool:
    """Percentage-family vouchers with weekday restrictions check days and minimum amount themselves."""
    return _discount_type(voucher) in PERCENTAGE_FAMILY and bool(voucher.allowed_days_of_week)


def _discount_type(voucher: Any) -> DiscountType:
    return DiscountType(voucher.discount_type)


def _hourly_rate(car: Any) -> float:
    return float(getattr(car, "hourly_price", None) or 0) if car is not None else 0.0


def _days_message(allowed: set[int]) -> str:
    if allowed == WEEKDAYS_MON_FRI:
        return "This voucher is only valid for weekday bookings (Monday-Friday)"
    names = ", ".join(DAY_NAMES[d] for d in sorted(allowed) if 0 <= d <= 6)
    return f"This voucher is only valid for bookings on {names}"


def _percentage_of(
    voucher: Any,
    amount: float,
    percent: float,
    start: datetime | None,
    end: datetime | None,
) -> DiscountResult:
    allowed = {int(d) for d in (voucher.allowed_days_of_week or [])}
    if allowed:
        if start is not None and end is not None:
            if weekday_index(start) not in allowed or weekday_index(end) not in allowed:
                return DiscountResult.reject(_days_message(allowed))
        minimum = float(voucher.minimum_rental_amount or 0)
        if minimum and amount < minimum:
            return DiscountResult.reject(
                f"This voucher requires a minimum booking amount of {format_amount(minimum)}"
            )

    discount = min(amount * percent / 100, amount)
    return DiscountResult(valid=True, discount_amount=discount, details={"discount_percentage": percent})


def _percentage(voucher, amount, car, start, end) -> DiscountResult:
    return _percentage_of(voucher, amount, float(voucher.discount_value), start, end)


def _weekday_trips(voucher, amount, car, start, end) -> DiscountResult:
    return _percentage_of(voucher, amount, LEGACY_WEEKDAY_TRIPS_PERCENT, start, end)


def _morning_bookings(voucher, amount, car, start, end) -> DiscountResult:
    discount = amount * LEGACY_MORNING_BOOKINGS_PERCENT / 100
    return DiscountResult(
        valid=True,
        discount_amount=discount,
        details={"discount_percentage": LEGACY_MORNING_BOOKINGS_PERCENT},
    )


def _fixed_amount(voucher, amount, car, start, end) -> DiscountResult:
    return DiscountResult(valid=True, discount_amount=min(float(voucher.discount_value), amount))


def _free_hours(voucher, amount, car, start, end) -> DiscountResult:
    hourly = _hourly_rate(car)
    free_hours = float(voucher.free_hours_amount or voucher.discount_value or 0)
    if hourly <= 0:
        return DiscountResult.reject("This voucher requires a car with an hourly rate")
    if free_hours <= 0:
        return DiscountResult.reject("This voucher has no free hours configured")

    discount = min(free_hours * hourly, amount)
    details: dict[str, Any] = {"free_hours_deducted": free_hours, "savings": discount}
    if start is not None and end is not None:
        details["new_rental_duration"] = max(0.0, elapsed_hours(start, end) - free_hours)
    return DiscountResult(valid=True, discount_amount=discount, details=details)


def _rent_5_get_1(voucher, amount, car, start, end) -> DiscountResult:
    daily = float(getattr(car, "daily_price", None) or 0) if car is not None else 0.0
    if daily <= 0:
        return DiscountResult.reject("This voucher requires a car with a daily rate")
    return DiscountResult(valid=True, discount_amount=min(daily, amount), details={"free_days": 1})


def _hourly_price_reduction(voucher, amount, car, start, end) -> DiscountResult:
    if start is None or end is None or _hourly_rate(car) <= 0:
        return DiscountResult.reject(INVALID_TIME_OR_CAR)

    reduction = float(voucher.discount_value or DEFAULT_HOURLY_REDUCTION)
    eligible_hours = 0.0
    for hour, hours in iter_hour_segments(start, end):
        if is_morning_promo_hour(hour):
            eligible_hours += hours

    if eligible_hours <= 0:
        return DiscountResult.reject("No hours in this booking qualify for the morning promo discount")

    discount = min(reduction * eligible_hours, amount)
    return DiscountResult(valid=True, discount_amount=discount, details={"eligible_hours": eligible_hours})


def cheapest_hours(start: datetime, end: datetime, base_rate: float, hours_to_deduct: int) -> list[dict[str, Any]]:
    reduction = settings.morning_promo_hourly_reduction
    hours: list[dict[str, Any]] = []
    for local in iter_booking_hours(start, end):
        hour = local.hour
        rate = base_rate
        if is_morning_promo_hour(hour):
            rate = max(0.0, base_rate - reduction)
        hours.append(
            {
                "hour": f"{hour:02d}:00-{(hour + 1) % 24:02d}:00",
                "original_rate": base_rate,
                "discounted_rate": rate,
            }
        )
    hours.sort(key=lambda h: h["discounted_rate"])
    return hours[: max(0, hours_to_deduct)]


def _duration_based_free_hours(voucher, amount, car, start, end) -> DiscountResult:
    if start is None or end is None or car is None:
        return DiscountResult.reject(INVALID_TIME_OR_CAR)

    total_hours = elapsed_hours(start, end)
    minimum_hours = float(voucher.minimum_rental_hours or 0)
    if minimum_hours and total_hours < minimum_hours:
        shown = int(minimum_hours) if minimum_hours.is_integer() else minimum_hours
        return DiscountResult.reject(f"This promo requires a minimum booking of {shown} hours")

    ratio = voucher.free_hours_ratio or {}
    rent = int(ratio.get("rent") or 0)
    free = int(ratio.get("free") or 0)
    if rent > 0 and free > 0:
        free_hours = math.floor(total_hours / rent) * free
    else:
        free_hours = math.floor(total_hours / DEFAULT_HOURS_PER_FREE_HOUR)

    hourly = _hourly_rate(car)
    details: dict[str, Any] = {
        "free_hours": free_hours,
        "final_rental_hours": total_hours - free_hours,
    }
    if voucher.deduct_cheapest_hours and free_hours > 0:
        deducted = cheapest_hours(start, end, hourly, free_hours)
        refund = sum(h["discounted_rate"] for h in deducted)
        details["deducted_hours"] = deducted
    else:
        refund = free_hours * hourly

    discount = min(refund, amount)
    details["savings"] = discount
    return DiscountResult(valid=True, discount_amount=discount, details=details)


def _hourly_overlap(voucher, amount, car, start, end) -> DiscountResult:
    if start is None or end is None:
        return DiscountResult.reject("Booking time is required for this voucher")

    eligible_hours = math.floor(overlap_hours(start, end, voucher.allowed_time_slots))
    if eligible_hours < 1:
        return DiscountResult.reject("No hours in this booking fall within the voucher's eligible time slots")

    total_hours = max(1, duration_hours(start, end))
    effective_rate = amount / total_hours
    eligible_amount = min(effective_rate * eligible_hours, amount)

    value = float(voucher.discount_value)
    if _discount_type(voucher) == DiscountType.PERCENTAGE:
        discount = eligible_amount * value / 100
    else:
        discount = value * eligible_hours
    discount = min(discount, eligible_amount, amount)

    return DiscountResult(
        valid=True,
        discount_amount=discount,
        details={
            "eligible_hours": eligible_hours,
            "effective_hourly_rate": effective_rate,
            "eligible_amount": eligible_amount,
        },
    )


Strategy = Callable[[Any, float, Any, "datetime | None", "datetime | None"], DiscountResult]

STRATEGIES: dict[DiscountType, Strategy] = {
    DiscountType.PERCENTAGE: _percentage,
    DiscountType.FIXED_AMOUNT: _fixed_amount,
    DiscountType.FREE_HOURS: _free_hours,
    DiscountType.MORNING_BOOKINGS: _morning_bookings,
    DiscountType.RENT_5_GET_1: _rent_5_get_1,
    DiscountType.WEEKDAY_TRIPS: _weekday_trips,
    DiscountType.HOURLY_PRICE_REDUCTION: _hourly_price_reduction,
    DiscountType.DURATION_BASED_FREE_HOURS: _duration_based_free_hours,
}


def resolve_discount(
    voucher: Any,
    amount: float,
    car: Any = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> DiscountResult:
    """
    Compute the candidate discount for ``voucher`` on a booking of ``amount``.

    Dispatch is by ``discount_type``; the ``hourly_discount_enabled`` flag
    switches percentage and fixed-amount vouchers to the eligible-hours
    overlap mode. Amounts are left unrounded.
    """
    discount_type = _discount_type(voucher)
    if voucher.hourly_discount_enabled and discount_type in HOURLY_OVERLAP_TYPES:
        strategy = _hourly_overlap
    else:
        try:
            strategy = STRATEGIES[discount_type]
        except KeyError:
            raise ValueError(f"Unsupported discount type: {discount_type}")

    result = strategy(voucher, float(amount), car, start, end)
    if result.valid:
        result.discount_amount = max(0.0, min(result.discount_amount, float(amount)))
    return result
