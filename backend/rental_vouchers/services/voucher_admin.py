from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from rental_vouchers.core.exceptions import VoucherInputError, VoucherNotFoundError
from rental_vouchers.models.voucher import DiscountType, FundingType, Voucher
from rental_vouchers.schemas.voucher import VoucherCreate
from rental_vouchers.services.discount_strategies import HOURLY_OVERLAP_TYPES
from rental_vouchers.services.eligibility import MAX_CODE_LENGTH, normalize_code
from rental_vouchers.services.time_windows import localize
from rental_vouchers.services.usage_ledger import unit_of_work


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _check_payload(payload: VoucherCreate) -> str:
    code = normalize_code(payload.code)
    if not code or len(code) > MAX_CODE_LENGTH:
        raise VoucherInputError("Invalid voucher code format")
    if payload.discount_type == DiscountType.PERCENTAGE and payload.discount_value > 100:
        raise VoucherInputError("Percentage discount cannot exceed 100%")
    if localize(payload.valid_to) <= localize(payload.valid_from):
        raise VoucherInputError("valid_to must be after valid_from")
    if (
        payload.maximum_rental_amount is not None
        and payload.maximum_rental_amount < payload.minimum_rental_amount
    ):
        raise VoucherInputError("Maximum booking amount must not be below the minimum booking amount")
    if payload.hourly_discount_enabled and payload.discount_type not in HOURLY_OVERLAP_TYPES:
        raise VoucherInputError("Hourly discounts are only supported for percentage and fixed amount vouchers")
    if payload.daily_usage_limit_enabled and not payload.daily_usage_limit:
        raise VoucherInputError("daily_usage_limit is required when the daily usage limit is enabled")
    return code


def _assign(voucher: Voucher, payload: VoucherCreate, code: str) -> None:
    voucher.code = code
    voucher.discount_type = payload.discount_type
    voucher.discount_value = payload.discount_value
    voucher.funding_type = payload.funding_type
    voucher.minimum_rental_amount = payload.minimum_rental_amount or 0
    voucher.maximum_rental_amount = payload.maximum_rental_amount
    voucher.usage_limit = payload.usage_limit
    voucher.valid_from = localize(payload.valid_from)
    voucher.valid_to = localize(payload.valid_to)
    voucher.supplier_id = payload.supplier_id
    voucher.is_active = payload.is_active

    voucher.time_restriction_enabled = payload.time_restriction_enabled
    voucher.allowed_time_slots = [s.model_dump() for s in payload.allowed_time_slots]
    voucher.allowed_days_of_week = list(payload.allowed_days_of_week)
    voucher.daily_usage_limit_enabled = payload.daily_usage_limit_enabled
    voucher.daily_usage_limit = payload.daily_usage_limit

    voucher.allowed_car_models = list(payload.allowed_car_models)
    voucher.max_uses_per_user = payload.max_uses_per_user

    voucher.free_hours_amount = payload.free_hours_amount
    voucher.minimum_rental_hours = payload.minimum_rental_hours
    voucher.free_hours_ratio = payload.free_hours_ratio.model_dump() if payload.free_hours_ratio else None
    voucher.deduct_cheapest_hours = payload.deduct_cheapest_hours
    voucher.hourly_discount_enabled = payload.hourly_discount_enabled
    voucher.is_stackable = payload.is_stackable


def _code_taken(db: Session, code: str, exclude_id: int | None = None) -> bool:
    q = db.query(Voucher.id).filter(Voucher.code == code)
    if exclude_id is not None:
        q = q.filter(Voucher.id != exclude_id)
    return q.first() is not None


def create_voucher(db: Session, payload: VoucherCreate) -> Voucher:
    code = _check_payload(payload)
    with unit_of_work(db):
        if _code_taken(db, code):
            raise VoucherInputError("Voucher code already exists")
        voucher = Voucher(usage_count=0)
        _assign(voucher, payload, code)
        db.add(voucher)
        db.flush()
        voucher_id = voucher.id

    logger.info("voucher.admin.created voucher_id=%s code=%s type=%s", voucher_id, code, payload.discount_type.value)
    return get_voucher(db, voucher_id)


def update_voucher(db: Session, voucher_id: int, payload: VoucherCreate) -> Voucher:
    code = _check_payload(payload)
    with unit_of_work(db):
        voucher = db.query(Voucher).filter(Voucher.id == voucher_id).with_for_update().first()
        if voucher is None:
            raise VoucherNotFoundError("Voucher not found")
        if _code_taken(db, code, exclude_id=voucher_id):
            raise VoucherInputError("Voucher code already exists")
        _assign(voucher, payload, code)

    logger.info("voucher.admin.updated voucher_id=%s code=%s", voucher_id, code)
    return get_voucher(db, voucher_id)


def get_voucher(db: Session, voucher_id: int) -> Voucher:
    voucher = db.get(Voucher, voucher_id)
    if voucher is None:
        raise VoucherNotFoundError("Voucher not found")
    return voucher


def list_vouchers(
    db: Session,
    keyword: str | None = None,
    is_active: bool | None = None,
    supplier_id: str | None = None,
    funding_type: FundingType | None = None,
    page: int = 1,
    size: int = 10,
) -> dict[str, Any]:
    page = max(1, int(page or 1))
    size = max(1, min(int(size or 10), MAX_PAGE_SIZE))

    q = db.query(Voucher)
    kw = (keyword or "").strip()
    if kw:
        escaped = kw.upper().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        q = q.filter(Voucher.code.like(f"%{escaped}%", escape="\\"))
    if is_active is not None:
        q = q.filter(Voucher.is_active.is_(is_active))
    if supplier_id:
        q = q.filter(Voucher.supplier_id == supplier_id)
    if funding_type is not None:
        q = q.filter(Voucher.funding_type == funding_type)

    total = q.count()
    items = q.order_by(Voucher.created_at.desc(), Voucher.id.desc()).offset((page - 1) * size).limit(size).all()
    return {"items": items, "total": int(total), "page": page, "size": size}
