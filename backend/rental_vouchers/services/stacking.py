from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Any, Iterable

from sqlalchemy.orm import Session

from rental_vouchers.core.exceptions import (
    VoucherError,
    VoucherInputError,
    VoucherNotFoundError,
    VoucherStackingError,
    VoucherStateError,
)
from rental_vouchers.core.settings import settings
from rental_vouchers.models.car import Car
from rental_vouchers.models.voucher import DiscountType, Voucher
from rental_vouchers.services.discount_strategies import PROMO_NAMES, resolve_discount
from rental_vouchers.services.eligibility import (
    check_voucher,
    normalize_code,
    validate_input,
    validate_voucher,
    validate_window,
)
from rental_vouchers.services.money import round_money_fields, safe_round_money


logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


@dataclass
class StackVerdict:
    valid: bool
    message: str | None = None
    amount: float = 0.0
    total_savings: float = 0.0
    promo_breakdown: list[dict[str, Any]] = field(default_factory=list)
    conflicting_vouchers: list[str] = field(default_factory=list)
    error: type[VoucherError] = VoucherStackingError

    @classmethod
    def invalid(cls, message: str, error: type[VoucherError] = VoucherStackingError, **kwargs: Any) -> "StackVerdict":
        return cls(valid=False, message=message, error=error, **kwargs)

    @property
    def final_amount(self) -> float:
        return max(0.0, self.amount - self.total_savings)

    @property
    def codes(self) -> list[str]:
        return [p["code"] for p in self.promo_breakdown]

    def raise_for_failure(self) -> None:
        if not self.valid:
            raise self.error(self.message or "Voucher combination is not valid")

    def to_response(self) -> dict[str, Any]:
        if not self.valid:
            payload: dict[str, Any] = {"valid": False, "message": self.message}
            if self.conflicting_vouchers:
                payload["conflicting_vouchers"] = list(self.conflicting_vouchers)
            return payload
        return {
            "valid": True,
            "total_savings": safe_round_money(self.total_savings),
            "final_amount": safe_round_money(self.final_amount),
            "promo_breakdown": [round_money_fields(p) for p in self.promo_breakdown],
        }


def promo_name(voucher: Voucher) -> str:
    return PROMO_NAMES.get(DiscountType(voucher.discount_type), "Unknown Promo")


def _breakdown_entry(voucher: Voucher, savings: float, details: dict[str, Any]) -> dict[str, Any]:
    return {
        "code": voucher.code,
        "promo_name": promo_name(voucher),
        "discount_type": DiscountType(voucher.discount_type).value,
        "savings": savings,
        "details": dict(details),
    }


def _normalize_codes(codes: Iterable[Any] | None) -> list[str]:
    normalized = [normalize_code(c) for c in (codes or [])]
    if not normalized or any(not c for c in normalized):
        raise VoucherInputError("Invalid voucher code format")
    return normalized


def _evaluate_stack(
    db: Session,
    vouchers: list[Voucher],
    amount: float,
    car_id: int | None,
    user_id: str | None,
    start: datetime | None,
    end: datetime | None,
    now: datetime | None,
) -> StackVerdict:
    car = db.get(Car, car_id) if car_id is not None else None
    remaining = amount
    total = 0.0
    breakdown: list[dict[str, Any]] = []

    for voucher in vouchers:
        verdict = check_voucher(db, voucher, amount, car_id=car_id, user_id=user_id, start=start, end=end, now=now)
        if not verdict.valid:
            return StackVerdict.invalid(verdict.message or "Voucher validation failed", error=verdict.error)

        result = resolve_discount(voucher, remaining, car=car, start=start, end=end)
        if not result.valid:
            return StackVerdict.invalid(result.message or "Voucher validation failed", error=VoucherStateError)

        savings = result.discount_amount
        if savings > remaining:
            return StackVerdict.invalid("Voucher combination would result in negative pricing")

        total += savings
        remaining -= savings
        breakdown.append(_breakdown_entry(voucher, savings, result.details))

    return StackVerdict(valid=True, amount=amount, total_savings=total, promo_breakdown=breakdown)


def validate_stack(
    db: Session,
    codes: Iterable[Any] | None,
    amount: Any,
    car_id: int | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> StackVerdict:
    """
    Validate a set of vouchers applied together to one booking.

    Each voucher must pass its own eligibility gates against the undiscounted
    amount; discounts are then taken in the supplied order, each from what the
    previous ones left.
    """
    normalized = _normalize_codes(codes)
    limit = settings.voucher_max_stack
    if len(normalized) > limit:
        return StackVerdict.invalid(f"Maximum of {limit} vouchers can be stacked per booking")
    if len(set(normalized)) != len(normalized):
        return StackVerdict.invalid("The same voucher cannot be stacked with itself")

    if len(normalized) == 1:
        verdict = validate_voucher(db, normalized[0], amount, car_id=car_id, user_id=user_id, start=start, end=end, now=now)
        if not verdict.valid:
            return StackVerdict.invalid(verdict.message or "Voucher validation failed", error=verdict.error)
        entry = _breakdown_entry(verdict.voucher, verdict.discount_amount, verdict.details)
        return StackVerdict(
            valid=True, amount=verdict.amount, total_savings=verdict.discount_amount, promo_breakdown=[entry]
        )

    _code, value = validate_input(normalized[0], amount)
    validate_window(start, end)

    found = {
        v.code: v
        for v in db.query(Voucher).filter(Voucher.code.in_(normalized), Voucher.is_active.is_(True)).all()
    }
    if not found:
        return StackVerdict.invalid("No valid vouchers found", error=VoucherNotFoundError)
    missing = [c for c in normalized if c not in found]
    if missing:
        return StackVerdict.invalid(f"Invalid voucher code: {missing[0]}", error=VoucherNotFoundError)

    vouchers = [found[c] for c in normalized]
    conflicting = [v.code for v in vouchers if not v.is_stackable]
    if conflicting:
        return StackVerdict.invalid(
            f"Some vouchers cannot be combined: {conflicting[0]}",
            conflicting_vouchers=conflicting[:1],
        )

    verdict = _evaluate_stack(db, vouchers, value, car_id, user_id, start, end, now)
    if verdict.valid:
        logger.info(
            "voucher.stack.ok codes=%s total_savings=%.2f", ",".join(normalized), verdict.total_savings
        )
    else:
        logger.info("voucher.stack.rejected codes=%s reason=%s", ",".join(normalized), verdict.message)
    return verdict


def find_best_combination(
    db: Session,
    codes: Iterable[Any] | None,
    amount: Any,
    car_id: int | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Rank every valid single voucher and stackable pair by total savings."""
    _code, value = validate_input("-", amount)
    validate_window(start, end)

    normalized: list[str] = []
    for code in codes or []:
        c = normalize_code(code)
        if c and c not in normalized:
            normalized.append(c)
    if not normalized:
        return {"best_combination": None, "alternative_combinations": []}

    found = {
        v.code: v
        for v in db.query(Voucher).filter(Voucher.code.in_(normalized), Voucher.is_active.is_(True)).all()
    }
    vouchers = [found[c] for c in normalized if c in found]

    candidates: list[StackVerdict] = []
    for voucher in vouchers:
        verdict = _evaluate_stack(db, [voucher], value, car_id, user_id, start, end, now)
        if verdict.valid:
            candidates.append(verdict)

    stackable = [v for v in vouchers if v.is_stackable]
    if settings.voucher_max_stack >= 2:
        for pair in combinations(stackable, 2):
            verdict = _evaluate_stack(db, list(pair), value, car_id, user_id, start, end, now)
            if verdict.valid:
                candidates.append(verdict)

    candidates.sort(key=lambda c: c.total_savings, reverse=True)

    def _describe(verdict: StackVerdict) -> dict[str, Any]:
        codes_ = verdict.codes
        if len(codes_) == 1:
            description = f"Single voucher: {codes_[0]}"
        else:
            description = f"Stackable combination: {' + '.join(codes_)}"
        return {
            "codes": codes_,
            "total_savings": safe_round_money(verdict.total_savings),
            "final_amount": safe_round_money(verdict.final_amount),
            "description": description,
        }

    ranked = [_describe(c) for c in candidates]
    logger.info("voucher.best_combination.ranked candidates=%s", len(ranked))
    return {
        "best_combination": ranked[0] if ranked else None,
        "alternative_combinations": ranked[1 : 1 + MAX_ALTERNATIVES],
    }
