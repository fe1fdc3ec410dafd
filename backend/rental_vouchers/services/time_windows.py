from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Iterator
from zoneinfo import ZoneInfo

from rental_vouchers.core.settings import settings


_ONE_MS = timedelta(milliseconds=1)
_MS_PER_HOUR = 3_600_000


def voucher_tz() -> ZoneInfo:
    return ZoneInfo(settings.voucher_timezone)


def localize(value: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Project an instant onto the voucher timezone. Naive values are wall-clock time in that zone."""
    tz = tz or voucher_tz()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def _to_utc(value: datetime) -> datetime:
    return localize(value).astimezone(timezone.utc)


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return (_to_utc(end) - _to_utc(start)) // _ONE_MS


def elapsed_hours(start: datetime, end: datetime) -> float:
    return max(0, _elapsed_ms(start, end)) / _MS_PER_HOUR


def duration_hours(start: datetime, end: datetime) -> int:
    ms = _elapsed_ms(start, end)
    if ms <= 0:
        return 0
    return math.ceil(ms / _MS_PER_HOUR)


def weekday_index(value: datetime) -> int:
    # 0 = Sunday ... 6 = Saturday
    return localize(value).isoweekday() % 7


def slot_bounds(slot: Any) -> tuple[int, int]:
    if isinstance(slot, dict):
        return int(slot.get("start_hour") or 0), int(slot.get("end_hour") or 0)
    return int(getattr(slot, "start_hour", 0) or 0), int(getattr(slot, "end_hour", 0) or 0)


def _local_days(start: datetime, end: datetime) -> Iterator[date]:
    day = localize(start).date()
    # end is exclusive, a booking ending at 00:00 does not touch that day
    last = localize(end - timedelta(microseconds=1)).date() if _to_utc(end) > _to_utc(start) else day
    while day <= last:
        yield day
        day += timedelta(days=1)


def overlap_hours(start: datetime, end: datetime, slots: Iterable[Any] | None) -> float:
    """
    Hours of the booking that fall inside the hour-of-day slots, summed over
    every local calendar day the booking touches. ``start_hour > end_hour``
    wraps past midnight; ``start_hour == end_hour`` is a disabled slot.
    """
    slot_list = [slot_bounds(s) for s in (slots or [])]
    start_utc = _to_utc(start)
    end_utc = _to_utc(end)
    if end_utc <= start_utc or not slot_list:
        return 0.0

    tz = voucher_tz()
    total_ms = 0
    # An overnight slot opened on the previous evening can cover the first hours.
    day = localize(start).date() - timedelta(days=1)
    last_day = localize(end).date()
    while day <= last_day:
        for start_hour, end_hour in slot_list:
            if start_hour == end_hour:
                continue
            window_start = datetime.combine(day, time(start_hour), tzinfo=tz).astimezone(timezone.utc)
            end_day = day + timedelta(days=1) if start_hour > end_hour else day
            window_end = datetime.combine(end_day, time(end_hour), tzinfo=tz).astimezone(timezone.utc)
            lo = max(start_utc, window_start)
            hi = min(end_utc, window_end)
            if hi > lo:
                total_ms += (hi - lo) // _ONE_MS
        day += timedelta(days=1)

    return total_ms / _MS_PER_HOUR


def within_slots(start: datetime, end: datetime, slots: Iterable[Any] | None) -> bool:
    slot_list = list(slots or [])
    if not slot_list:
        return True
    return overlap_hours(start, end, slot_list) >= 1


def within_days(start: datetime, end: datetime, allowed_days: Iterable[int] | None) -> bool:
    allowed = {int(d) for d in (allowed_days or [])}
    if not allowed:
        return True
    for day in _local_days(start, end):
        if day.isoweekday() % 7 not in allowed:
            return False
    return True


def iter_hour_segments(start: datetime, end: datetime) -> Iterator[tuple[int, float]]:
    """Yield ``(local_hour, hours)`` for each wall-clock hour the booking covers, fractional at the edges."""
    tz = voucher_tz()
    current = _to_utc(start)
    end_utc = _to_utc(end)
    while current < end_utc:
        local = current.astimezone(tz)
        to_boundary = timedelta(hours=1) - timedelta(
            minutes=local.minute, seconds=local.second, microseconds=local.microsecond
        )
        nxt = min(current + to_boundary, end_utc)
        yield local.hour, ((nxt - current) // _ONE_MS) / _MS_PER_HOUR
        current = nxt


def iter_booking_hours(start: datetime, end: datetime) -> Iterator[datetime]:
    """Yield the local start of each one-hour step of the booking, beginning at its start."""
    tz = voucher_tz()
    current = _to_utc(start)
    end_utc = _to_utc(end)
    while current < end_utc:
        yield current.astimezone(tz)
        current += timedelta(hours=1)
