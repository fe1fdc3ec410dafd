from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rental_vouchers.core.database import get_db
from rental_vouchers.core.security import require_admin
from rental_vouchers.models.voucher import FundingType
from rental_vouchers.schemas.voucher import VoucherCreate, VoucherListResponse, VoucherResponse, VoucherUpdate
from rental_vouchers.services.usage_ledger import delete_voucher, voucher_usage_statistics
from rental_vouchers.services.voucher_admin import create_voucher, get_voucher, list_vouchers, update_voucher


router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/admin/vouchers", response_model=VoucherResponse)
def admin_create_voucher(body: VoucherCreate, db: Session = Depends(get_db)):
    return create_voucher(db, body)


@router.get("/admin/vouchers", response_model=VoucherListResponse)
def admin_list_vouchers(
    keyword: Optional[str] = None,
    is_active: Optional[bool] = None,
    supplier_id: Optional[str] = None,
    funding_type: Optional[FundingType] = None,
    page: int = 1,
    size: int = 10,
    db: Session = Depends(get_db),
):
    return list_vouchers(
        db,
        keyword=keyword,
        is_active=is_active,
        supplier_id=supplier_id,
        funding_type=funding_type,
        page=page,
        size=size,
    )


@router.get("/admin/vouchers/{voucher_id}", response_model=VoucherResponse)
def admin_get_voucher(voucher_id: int, db: Session = Depends(get_db)):
    return get_voucher(db, voucher_id)


@router.put("/admin/vouchers/{voucher_id}", response_model=VoucherResponse)
def admin_update_voucher(voucher_id: int, body: VoucherUpdate, db: Session = Depends(get_db)):
    return update_voucher(db, voucher_id, body)


@router.delete("/admin/vouchers/{voucher_id}")
def admin_delete_voucher(voucher_id: int, db: Session = Depends(get_db)) -> dict:
    delete_voucher(db, voucher_id)
    return {"ok": True}


@router.get("/admin/voucher-usage/{voucher_id}")
def admin_voucher_usage(voucher_id: int, db: Session = Depends(get_db)) -> dict:
    return voucher_usage_statistics(db, voucher_id)
