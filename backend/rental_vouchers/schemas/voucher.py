from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from rental_vouchers.models.voucher import DiscountType, FundingType


class TimeSlot(BaseModel):
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)


class FreeHoursRatio(BaseModel):
    rent: int = Field(gt=0)
    free: int = Field(gt=0)


class ValidateVoucherRequest(BaseModel):
    code: str
    booking_amount: float
    car_id: Optional[int] = None
    user_id: Optional[str] = None
    booking_start_time: Optional[datetime] = None
    booking_end_time: Optional[datetime] = None


class ValidateStackableRequest(BaseModel):
    voucher_codes: List[str]
    booking_amount: float
    car_id: Optional[int] = None
    user_id: Optional[str] = None
    booking_start_time: Optional[datetime] = None
    booking_end_time: Optional[datetime] = None


class BestCombinationRequest(BaseModel):
    available_voucher_codes: List[str]
    booking_amount: float
    car_id: Optional[int] = None
    user_id: Optional[str] = None
    booking_start_time: Optional[datetime] = None
    booking_end_time: Optional[datetime] = None


class ApplyVoucherRequest(BaseModel):
    voucher_code: str
    booking_id: int


class VoucherCreate(BaseModel):
    code: str
    discount_type: DiscountType
    discount_value: float = Field(gt=0)
    funding_type: FundingType = FundingType.PLATFORM
    minimum_rental_amount: float = Field(default=0, ge=0)
    maximum_rental_amount: Optional[float] = Field(default=None, gt=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: datetime
    valid_to: datetime
    supplier_id: Optional[str] = None
    is_active: bool = True

    time_restriction_enabled: bool = False
    allowed_time_slots: List[TimeSlot] = []
    allowed_days_of_week: List[int] = []
    daily_usage_limit_enabled: bool = False
    daily_usage_limit: Optional[int] = Field(default=None, ge=1)

    allowed_car_models: List[str] = []
    max_uses_per_user: Optional[int] = Field(default=None, ge=1)

    free_hours_amount: Optional[float] = Field(default=None, gt=0)
    minimum_rental_hours: Optional[float] = Field(default=None, ge=0)
    free_hours_ratio: Optional[FreeHoursRatio] = None
    deduct_cheapest_hours: bool = False
    hourly_discount_enabled: bool = False

    is_stackable: bool = False

    @field_validator("allowed_days_of_week")
    @classmethod
    def _check_days(cls, value: List[int]) -> List[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("allowed_days_of_week entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @field_validator("allowed_car_models")
    @classmethod
    def _strip_models(cls, value: List[str]) -> List[str]:
        return [m.strip() for m in value if m and m.strip()]


class VoucherUpdate(VoucherCreate):
    """Full replacement of a voucher's settings. ``usage_count`` is never written."""


class VoucherResponse(BaseModel):
    id: int
    code: str
    discount_type: DiscountType
    discount_value: float
    funding_type: FundingType
    minimum_rental_amount: Optional[float] = None
    maximum_rental_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    usage_count: int
    valid_from: datetime
    valid_to: datetime
    supplier_id: Optional[str] = None
    is_active: bool
    time_restriction_enabled: Optional[bool] = None
    allowed_time_slots: Optional[List[Dict[str, Any]]] = None
    allowed_days_of_week: Optional[List[int]] = None
    daily_usage_limit_enabled: Optional[bool] = None
    daily_usage_limit: Optional[int] = None
    allowed_car_models: Optional[List[str]] = None
    max_uses_per_user: Optional[int] = None
    free_hours_amount: Optional[float] = None
    minimum_rental_hours: Optional[float] = None
    free_hours_ratio: Optional[Dict[str, Any]] = None
    deduct_cheapest_hours: Optional[bool] = None
    hourly_discount_enabled: Optional[bool] = None
    is_stackable: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoucherListResponse(BaseModel):
    items: List[VoucherResponse]
    total: int
    page: int
    size: int
