from sqlalchemy import CheckConstraint, Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from rental_vouchers.core.database import Base


class VoucherUsage(Base):
    __tablename__ = "voucher_usages"
    __table_args__ = (
        # one usage row per user and voucher
        UniqueConstraint("voucher_id", "user_id", name="uq_voucher_usages_voucher_user"),
        CheckConstraint("discount_applied > 0", name="ck_voucher_usages_discount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), index=True, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    discount_applied = Column(Float, nullable=False)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class VoucherDailyUsage(Base):
    __tablename__ = "voucher_daily_usages"
    __table_args__ = (
        UniqueConstraint("voucher_id", "user_id", "usage_date", name="uq_voucher_daily_usages_voucher_user_date"),
        CheckConstraint("total_hours_used >= 0", name="ck_voucher_daily_usages_hours_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    usage_date = Column(Date, index=True, nullable=False)
    total_hours_used = Column(Float, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
