from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_vouchers.core.exceptions import (
    VoucherAuthorizationError,
    VoucherConsistencyError,
    VoucherError,
    VoucherNotFoundError,
    VoucherStateError,
)
from rental_vouchers.models.booking import Booking
from rental_vouchers.models.voucher import Voucher
from rental_vouchers.models.voucher_usage import VoucherDailyUsage, VoucherUsage
from rental_vouchers.services.eligibility import (
    check_voucher,
    find_active_voucher,
    usage_date_for,
    validate_input,
    voucher_summary,
)
from rental_vouchers.services.money import safe_round_money
from rental_vouchers.services.time_windows import duration_hours


logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Run a block of ledger writes as one transaction.

    Commits when the block finishes, rolls back on any error. Database errors
    surface as ``VoucherConsistencyError`` so callers retry the whole
    operation. A session that already holds unrelated pending writes is refused.
    """
    if db.new or db.dirty or db.deleted:
        raise VoucherConsistencyError("Session has pending changes, voucher operation refused")
    try:
        yield db
        db.commit()
    except VoucherError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("voucher.ledger.rollback")
        raise VoucherConsistencyError()
    except Exception:
        db.rollback()
        raise


def _lock_booking(db: Session, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
    if booking is None:
        raise VoucherNotFoundError("Booking not found")
    return booking


def _booking_payload(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "driver_id": booking.driver_id,
        "car_id": booking.car_id,
        "price": safe_round_money(booking.price),
        "original_price": booking.original_price,
        "voucher_id": booking.voucher_id,
        "voucher_discount": booking.voucher_discount,
    }


def _daily_row(db: Session, voucher_id: int, user_id: str, start: datetime) -> VoucherDailyUsage | None:
    return (
        db.query(VoucherDailyUsage)
        .filter(
            VoucherDailyUsage.voucher_id == voucher_id,
            VoucherDailyUsage.user_id == user_id,
            VoucherDailyUsage.usage_date == usage_date_for(start),
        )
        .with_for_update()
        .first()
    )


def apply_voucher(
    db: Session,
    voucher_code: Any,
    booking_id: int,
    acting_user_id: str,
    privileged: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Redeem ``voucher_code`` on a booking.

    The booking and voucher rows are locked, eligibility is re-checked for the
    booking's driver, and the booking update, usage row, usage counter and
    daily aggregate are written in a single transaction.
    """
    code, _ = validate_input(voucher_code, 1)

    with unit_of_work(db):
        booking = _lock_booking(db, booking_id)
        if booking.driver_id != acting_user_id and not privileged:
            raise VoucherAuthorizationError("Unauthorized: You can only apply vouchers to your own bookings")
        if booking.voucher_id is not None:
            raise VoucherStateError("Booking already has a voucher applied")

        voucher = find_active_voucher(db, code, for_update=True)
        if voucher is None:
            raise VoucherNotFoundError("Invalid voucher code")

        _, amount = validate_input(code, booking.price)
        verdict = check_voucher(
            db,
            voucher,
            amount,
            car_id=booking.car_id,
            user_id=booking.driver_id,
            start=booking.start_time,
            end=booking.end_time,
            now=now,
        )
        verdict.raise_for_failure()

        discount = safe_round_money(verdict.discount_amount)
        if discount <= 0:
            raise VoucherStateError("Voucher does not give a discount on this booking")

        booking.original_price = amount
        booking.voucher_id = voucher.id
        booking.voucher_discount = discount
        booking.price = safe_round_money(max(0.0, amount - discount))

        db.add(
            VoucherUsage(
                voucher_id=voucher.id,
                booking_id=booking.id,
                user_id=booking.driver_id,
                discount_applied=discount,
            )
        )

        counted = db.execute(
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                or_(Voucher.usage_limit.is_(None), Voucher.usage_count < Voucher.usage_limit),
            )
            .values(usage_count=Voucher.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount != 1:
            raise VoucherStateError("Voucher usage limit exceeded")

        if voucher.daily_usage_limit_enabled and voucher.daily_usage_limit:
            hours = duration_hours(booking.start_time, booking.end_time)
            row = _daily_row(db, voucher.id, booking.driver_id, booking.start_time)
            if row is None:
                db.add(
                    VoucherDailyUsage(
                        voucher_id=voucher.id,
                        user_id=booking.driver_id,
                        usage_date=usage_date_for(booking.start_time),
                        total_hours_used=hours,
                    )
                )
            else:
                row.total_hours_used = float(row.total_hours_used or 0) + hours

        db.flush()

    logger.info("voucher.apply.committed code=%s booking_id=%s discount=%s", code, booking_id, discount)
    return {
        "booking": _booking_payload(booking),
        "discount_amount": discount,
        "message": "Voucher applied successfully",
    }


def remove_voucher(db: Session, booking_id: int, acting_user_id: str, privileged: bool = False) -> dict[str, Any]:
    with unit_of_work(db):
        booking = _lock_booking(db, booking_id)
        if booking.driver_id != acting_user_id and not privileged:
            raise VoucherAuthorizationError("Unauthorized: You can only remove vouchers from your own bookings")
        if booking.voucher_id is None:
            raise VoucherStateError("No voucher applied to this booking")

        voucher_id = booking.voucher_id
        usage = db.query(VoucherUsage).filter(VoucherUsage.booking_id == booking.id).first()
        if usage is not None:
            row = _daily_row(db, voucher_id, usage.user_id, booking.start_time)
            if row is not None:
                hours = duration_hours(booking.start_time, booking.end_time)
                row.total_hours_used = max(0.0, float(row.total_hours_used or 0) - hours)
            db.delete(usage)

        db.execute(
            update(Voucher)
            .where(Voucher.id == voucher_id, Voucher.usage_count > 0)
            .values(usage_count=Voucher.usage_count - 1)
            .execution_options(synchronize_session=False)
        )

        if booking.original_price is not None:
            booking.price = booking.original_price
        booking.original_price = None
        booking.voucher_id = None
        booking.voucher_discount = None

        db.flush()

    logger.info("voucher.remove.committed booking_id=%s voucher_id=%s", booking_id, voucher_id)
    return {"booking": _booking_payload(booking), "message": "Voucher removed successfully"}


def delete_voucher(db: Session, voucher_id: int) -> None:
    with unit_of_work(db):
        voucher = db.query(Voucher).filter(Voucher.id == voucher_id).with_for_update().first()
        if voucher is None:
            raise VoucherNotFoundError("Voucher not found")
        used = db.query(VoucherUsage.id).filter(VoucherUsage.voucher_id == voucher_id).first()
        if used is not None:
            raise VoucherStateError("Cannot delete voucher that has been used")
        db.query(VoucherDailyUsage).filter(VoucherDailyUsage.voucher_id == voucher_id).delete(
            synchronize_session=False
        )
        db.delete(voucher)

    logger.info("voucher.delete.committed voucher_id=%s", voucher_id)


def voucher_usage_statistics(db: Session, voucher_id: int) -> dict[str, Any]:
    voucher = db.get(Voucher, voucher_id)
    if voucher is None:
        raise VoucherNotFoundError("Voucher not found")

    usages = (
        db.query(VoucherUsage)
        .filter(VoucherUsage.voucher_id == voucher_id)
        .order_by(VoucherUsage.used_at.desc(), VoucherUsage.id.desc())
        .all()
    )
    total_hours = (
        db.query(func.coalesce(func.sum(VoucherDailyUsage.total_hours_used), 0.0))
        .filter(VoucherDailyUsage.voucher_id == voucher_id)
        .scalar()
    )
    total_discount = sum(float(u.discount_applied or 0) for u in usages)
    remaining = None
    if voucher.usage_limit:
        remaining = max(0, int(voucher.usage_limit) - int(voucher.usage_count or 0))

    return {
        "voucher": voucher_summary(voucher),
        "usages": [
            {
                "id": u.id,
                "booking_id": u.booking_id,
                "user_id": u.user_id,
                "discount_applied": u.discount_applied,
                "used_at": u.used_at.isoformat() if u.used_at else None,
            }
            for u in usages
        ],
        "statistics": {
            "total_usages": len(usages),
            "total_discount_given": safe_round_money(total_discount),
            "remaining_usages": remaining,
            "total_hours_tracked": float(total_hours or 0),
        },
    }
