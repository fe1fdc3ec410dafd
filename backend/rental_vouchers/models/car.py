from sqlalchemy import Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from rental_vouchers.core.database import Base


class Car(Base):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    car_model = Column(String, index=True, nullable=True)
    supplier_id = Column(String, index=True, nullable=True)
    hourly_price = Column(Float, nullable=True)
    daily_price = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
