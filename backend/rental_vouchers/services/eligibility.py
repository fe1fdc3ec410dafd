from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from rental_vouchers.core.exceptions import (
    VoucherError,
    VoucherInputError,
    VoucherNotFoundError,
    VoucherStateError,
)
from rental_vouchers.models.car import Car
from rental_vouchers.models.voucher import DiscountType, Voucher
from rental_vouchers.models.voucher_usage import VoucherDailyUsage, VoucherUsage
from rental_vouchers.services.discount_strategies import gates_days_inline, resolve_discount
from rental_vouchers.services.money import format_amount, round_money_fields
from rental_vouchers.services.time_windows import (
    duration_hours,
    localize,
    voucher_tz,
    within_days,
    within_slots,
)


logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 64


@dataclass
class VoucherVerdict:
    valid: bool
    message: str | None = None
    amount: float = 0.0
    discount_amount: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    voucher: Voucher | None = None
    error: type[VoucherError] = VoucherStateError

    @classmethod
    def invalid(
        cls,
        message: str,
        *,
        voucher: Voucher | None = None,
        error: type[VoucherError] = VoucherStateError,
    ) -> "VoucherVerdict":
        return cls(valid=False, message=message, voucher=voucher, error=error)

    @property
    def final_amount(self) -> float:
        return max(0.0, self.amount - self.discount_amount)

    def raise_for_failure(self) -> None:
        """Raise the verdict's error when it is not valid."""
        if not self.valid:
            raise self.error(self.message or "Voucher validation failed")

    def to_response(self) -> dict[str, Any]:
        if not self.valid:
            return {"valid": False, "message": self.message}
        payload: dict[str, Any] = {
            "valid": True,
            "message": "Voucher is valid",
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
        }
        payload.update(self.details)
        if self.voucher is not None:
            payload["voucher"] = voucher_summary(self.voucher)
        return round_money_fields(payload)


def voucher_summary(voucher: Voucher) -> dict[str, Any]:
    return {
        "id": voucher.id,
        "code": voucher.code,
        "discount_type": DiscountType(voucher.discount_type).value,
        "discount_value": voucher.discount_value,
        "funding_type": getattr(voucher.funding_type, "value", voucher.funding_type),
        "is_stackable": bool(voucher.is_stackable),
    }


def normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()


def validate_input(code: Any, amount: Any) -> tuple[str, float]:
    normalized = normalize_code(code)
    if not normalized or len(normalized) > MAX_CODE_LENGTH:
        raise VoucherInputError("Invalid voucher code format")
    if isinstance(amount, bool):
        raise VoucherInputError("Invalid booking amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise VoucherInputError("Invalid booking amount")
    if not math.isfinite(value) or value <= 0:
        raise VoucherInputError("Invalid booking amount")
    return normalized, value


def validate_window(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and localize(end) <= localize(start):
        raise VoucherInputError("Booking end time must be after start time")


def find_active_voucher(db: Session, code: str, for_update: bool = False) -> Voucher | None:
    q = db.query(Voucher).filter(Voucher.code == normalize_code(code), Voucher.is_active.is_(True))
    if for_update:
        q = q.with_for_update()
    return q.first()


def _models_message(models: list[str]) -> str:
    if len(models) > 2:
        listed = ", ".join(models[:-1]) + " and " + models[-1]
    else:
        listed = " and ".join(models)
    return f"This voucher is only valid for {listed} cars"


def _per_user_message(limit: int) -> str:
    if limit == 1:
        return "This voucher is limited to one use per user"
    return f"This voucher is limited to {limit} uses per user"


def usage_date_for(start: datetime) -> date:
    return localize(start).date()


def daily_hours_used(db: Session, voucher_id: int, user_id: str, usage_date: date) -> float:
    total = (
        db.query(func.coalesce(func.sum(VoucherDailyUsage.total_hours_used), 0.0))
        .filter(
            VoucherDailyUsage.voucher_id == voucher_id,
            VoucherDailyUsage.user_id == user_id,
            VoucherDailyUsage.usage_date == usage_date,
        )
        .scalar()
    )
    return float(total or 0)


def check_voucher(
    db: Session,
    voucher: Voucher,
    amount: float,
    car_id: int | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> VoucherVerdict:
    """
    Run every eligibility gate after the code lookup, then the discount
    resolver. The first failing gate decides the verdict. Read-only.
    """
    now = localize(now) if now is not None else datetime.now(voucher_tz())
    if now < localize(voucher.valid_from) or now > localize(voucher.valid_to):
        return VoucherVerdict.invalid("Voucher has expired or is not yet valid", voucher=voucher)

    if voucher.usage_limit and int(voucher.usage_count or 0) >= int(voucher.usage_limit):
        return VoucherVerdict.invalid("Voucher usage limit exceeded", voucher=voucher)

    car: Car | None = db.get(Car, car_id) if car_id is not None else None
    models = [str(m) for m in (voucher.allowed_car_models or []) if str(m).strip()]
    if models and car_id is not None:
        if car is None:
            return VoucherVerdict.invalid("Car not found", voucher=voucher, error=VoucherNotFoundError)
        allowed = {m.strip().lower() for m in models}
        if (car.car_model or "").strip().lower() not in allowed:
            return VoucherVerdict.invalid(_models_message(models), voucher=voucher)

    if voucher.max_uses_per_user and user_id:
        used = (
            db.query(func.count(VoucherUsage.id))
            .filter(VoucherUsage.voucher_id == voucher.id, VoucherUsage.user_id == user_id)
            .scalar()
        )
        if int(used or 0) >= int(voucher.max_uses_per_user):
            return VoucherVerdict.invalid(_per_user_message(int(voucher.max_uses_per_user)), voucher=voucher)

    days_inline = gates_days_inline(voucher)
    minimum = float(voucher.minimum_rental_amount or 0)
    if minimum and amount < minimum and not days_inline:
        return VoucherVerdict.invalid(
            f"Minimum booking amount of {format_amount(minimum)} required", voucher=voucher
        )

    maximum = voucher.maximum_rental_amount
    if maximum and amount > float(maximum):
        return VoucherVerdict.invalid(
            f"Maximum booking amount of {format_amount(maximum)} exceeded", voucher=voucher
        )

    if user_id:
        previous = (
            db.query(VoucherUsage.id)
            .filter(VoucherUsage.voucher_id == voucher.id, VoucherUsage.user_id == user_id)
            .first()
        )
        if previous is not None:
            return VoucherVerdict.invalid("You have already used this voucher", voucher=voucher)

    has_window = start is not None and end is not None
    discount_type = DiscountType(voucher.discount_type)
    if voucher.time_restriction_enabled and has_window and discount_type != DiscountType.HOURLY_PRICE_REDUCTION:
        if not within_slots(start, end, voucher.allowed_time_slots):
            return VoucherVerdict.invalid("Voucher is not valid for this time period", voucher=voucher)
        if not days_inline and not within_days(start, end, voucher.allowed_days_of_week):
            return VoucherVerdict.invalid("Voucher is not valid for this day of the week", voucher=voucher)

    if voucher.daily_usage_limit_enabled and voucher.daily_usage_limit and user_id and has_window:
        hours = duration_hours(start, end)
        limit = float(voucher.daily_usage_limit)
        if hours > limit:
            return VoucherVerdict.invalid("Booking duration exceeds voucher daily limit", voucher=voucher)
        used_today = daily_hours_used(db, voucher.id, user_id, usage_date_for(start))
        if used_today + hours > limit:
            return VoucherVerdict.invalid("Daily usage limit exceeded for this voucher", voucher=voucher)

    result = resolve_discount(voucher, amount, car=car, start=start, end=end)
    if not result.valid:
        return VoucherVerdict.invalid(result.message or "Voucher validation failed", voucher=voucher)

    return VoucherVerdict(
        valid=True,
        amount=amount,
        discount_amount=result.discount_amount,
        details=result.details,
        voucher=voucher,
    )


def validate_voucher(
    db: Session,
    code: Any,
    amount: Any,
    car_id: int | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> VoucherVerdict:
    """
    Decide whether ``code`` applies to a booking of ``amount`` and how much it
    takes off. Raises ``VoucherInputError`` for malformed input; every other
    failure comes back as an invalid verdict.
    """
    normalized, value = validate_input(code, amount)
    validate_window(start, end)

    voucher = find_active_voucher(db, normalized)
    if voucher is None:
        logger.info("voucher.validate.rejected code=%s reason=not_found", normalized)
        return VoucherVerdict.invalid("Invalid voucher code", error=VoucherNotFoundError)

    verdict = check_voucher(db, voucher, value, car_id=car_id, user_id=user_id, start=start, end=end, now=now)
    if verdict.valid:
        logger.info("voucher.validate.ok code=%s discount=%.2f", normalized, verdict.discount_amount)
    else:
        logger.info("voucher.validate.rejected code=%s reason=%s", normalized, verdict.message)
    return verdict
