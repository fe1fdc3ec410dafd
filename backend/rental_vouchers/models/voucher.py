import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, Float, Integer, JSON, String
from sqlalchemy.sql import func

from rental_vouchers.core.database import Base


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_HOURS = "free_hours"
    MORNING_BOOKINGS = "morning_bookings"
    RENT_5_GET_1 = "rent_5_get_1"
    WEEKDAY_TRIPS = "weekday_trips"
    HOURLY_PRICE_REDUCTION = "hourly_price_reduction"
    DURATION_BASED_FREE_HOURS = "duration_based_free_hours"


class FundingType(str, enum.Enum):
    PLATFORM = "platform"
    SUPPLIER = "supplier"
    CO_FUNDED = "co_funded"


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("usage_count >= 0", name="ck_vouchers_usage_count_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Float, nullable=False)
    funding_type = Column(Enum(FundingType), nullable=False, default=FundingType.PLATFORM)

    minimum_rental_amount = Column(Float, default=0)
    maximum_rental_amount = Column(Float, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_to = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    supplier_id = Column(String, index=True, nullable=True)

    # Time restrictions
    time_restriction_enabled = Column(Boolean, default=False)
    allowed_time_slots = Column(JSON, default=list)  # [{"start_hour": 0, "end_hour": 10}, ...]
    allowed_days_of_week = Column(JSON, default=list)  # 0 = Sunday
    daily_usage_limit_enabled = Column(Boolean, default=False)
    daily_usage_limit = Column(Integer, nullable=True)

    allowed_car_models = Column(JSON, default=list)
    max_uses_per_user = Column(Integer, nullable=True)

    # Strategy-specific
    free_hours_amount = Column(Float, nullable=True)
    minimum_rental_hours = Column(Float, nullable=True)
    free_hours_ratio = Column(JSON, nullable=True)  # {"rent": 5, "free": 1}
    deduct_cheapest_hours = Column(Boolean, default=False)
    hourly_discount_enabled = Column(Boolean, default=False)

    is_stackable = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
