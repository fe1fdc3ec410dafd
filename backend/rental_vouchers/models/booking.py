from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.sql import func

from rental_vouchers.core.database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(String, index=True, nullable=False)
    supplier_id = Column(String, index=True, nullable=True)
    car_id = Column(Integer, ForeignKey("cars.id"), index=True, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    price = Column(Float, nullable=False)

    # Written only by the usage ledger
    original_price = Column(Float, nullable=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), index=True, nullable=True)
    voucher_discount = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
