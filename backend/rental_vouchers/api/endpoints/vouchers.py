from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rental_vouchers.core.database import get_db
from rental_vouchers.core.security import CurrentUser, get_current_user, get_optional_user
from rental_vouchers.schemas.voucher import (
    ApplyVoucherRequest,
    BestCombinationRequest,
    ValidateStackableRequest,
    ValidateVoucherRequest,
)
from rental_vouchers.services.eligibility import validate_voucher
from rental_vouchers.services.stacking import find_best_combination, validate_stack
from rental_vouchers.services.usage_ledger import apply_voucher, remove_voucher


router = APIRouter()


def _resolve_user_id(body_user_id: str | None, user: CurrentUser | None) -> str | None:
    if user is not None:
        return user.id
    return (body_user_id or "").strip() or None


@router.post("/validate-voucher")
def validate_voucher_endpoint(
    body: ValidateVoucherRequest,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    verdict = validate_voucher(
        db,
        body.code,
        body.booking_amount,
        car_id=body.car_id,
        user_id=_resolve_user_id(body.user_id, user),
        start=body.booking_start_time,
        end=body.booking_end_time,
    )
    return verdict.to_response()


@router.post("/validate-stackable-vouchers")
def validate_stackable_endpoint(
    body: ValidateStackableRequest,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    verdict = validate_stack(
        db,
        body.voucher_codes,
        body.booking_amount,
        car_id=body.car_id,
        user_id=_resolve_user_id(body.user_id, user),
        start=body.booking_start_time,
        end=body.booking_end_time,
    )
    return verdict.to_response()


@router.post("/find-best-voucher-combination")
def find_best_combination_endpoint(
    body: BestCombinationRequest,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    return find_best_combination(
        db,
        body.available_voucher_codes,
        body.booking_amount,
        car_id=body.car_id,
        user_id=_resolve_user_id(body.user_id, user),
        start=body.booking_start_time,
        end=body.booking_end_time,
    )


@router.post("/apply-voucher")
def apply_voucher_endpoint(
    body: ApplyVoucherRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return apply_voucher(db, body.voucher_code, body.booking_id, user.id, privileged=user.is_admin)


@router.delete("/remove-voucher/{booking_id}")
def remove_voucher_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return remove_voucher(db, booking_id, user.id, privileged=user.is_admin)
