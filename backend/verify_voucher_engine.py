from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rental_vouchers.core.database import Base
from rental_vouchers.models.booking import Booking
from rental_vouchers.models.car import Car
from rental_vouchers.models.voucher import DiscountType, Voucher
from rental_vouchers.models.voucher_usage import VoucherUsage
from rental_vouchers.services.eligibility import validate_voucher
from rental_vouchers.services.stacking import validate_stack
from rental_vouchers.services.usage_ledger import apply_voucher, remove_voucher


def _voucher(code: str, discount_type: DiscountType, value: float, **kwargs) -> Voucher:
    return Voucher(
        code=code,
        discount_type=discount_type,
        discount_value=value,
        valid_from=datetime(2020, 1, 1),
        valid_to=datetime(2099, 1, 1),
        is_active=True,
        usage_count=0,
        **kwargs,
    )


def main() -> None:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        car = Car(name="Perodua Bezza", car_model="Bezza", hourly_price=8, daily_price=120)
        db.add(car)
        db.add(_voucher("SAVE20", DiscountType.PERCENTAGE, 20, usage_limit=10))
        db.add(_voucher("TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True))
        db.add(_voucher("FIFTEEN", DiscountType.FIXED_AMOUNT, 15, is_stackable=True))
        db.add(_voucher("MORNING", DiscountType.HOURLY_PRICE_REDUCTION, 3))
        db.add(
            _voucher(
                "RENT5",
                DiscountType.DURATION_BASED_FREE_HOURS,
                1,
                free_hours_ratio={"rent": 5, "free": 1},
                minimum_rental_hours=6,
                deduct_cheapest_hours=True,
            )
        )
        db.commit()
        db.refresh(car)

        verdict = validate_voucher(db, "save20", 200)
        assert verdict.valid and verdict.to_response()["final_amount"] == 160.0, verdict

        morning = validate_voucher(
            db, "MORNING", 48, car_id=car.id, start=datetime(2025, 1, 1, 8), end=datetime(2025, 1, 1, 14)
        )
        assert morning.valid and abs(morning.discount_amount - 6.0) < 1e-9, morning

        rent5 = validate_voucher(
            db, "RENT5", 144, car_id=car.id, start=datetime(2025, 1, 1, 9), end=datetime(2025, 1, 2, 3)
        )
        assert rent5.valid and rent5.details["free_hours"] == 3, rent5
        assert rent5.details["final_rental_hours"] == 15, rent5

        stack = validate_stack(db, ["TEN", "FIFTEEN"], 200).to_response()
        assert stack["total_savings"] == 25.0 and stack["final_amount"] == 175.0, stack

        too_many = validate_stack(db, ["TEN", "FIFTEEN", "SAVE20"], 200)
        assert not too_many.valid, too_many

        booking = Booking(
            driver_id="driver-1",
            car_id=car.id,
            start_time=datetime(2025, 1, 1, 10),
            end_time=datetime(2025, 1, 1, 14),
            price=200,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)

        applied = apply_voucher(db, "SAVE20", booking.id, "driver-1")
        assert applied["booking"]["price"] == 160.0, applied
        assert db.query(VoucherUsage).count() == 1

        remove_voucher(db, booking.id, "driver-1")
        db.expire_all()
        assert db.get(Booking, booking.id).price == 200.0
        assert db.query(Voucher).filter(Voucher.code == "SAVE20").one().usage_count == 0
        assert db.query(VoucherUsage).count() == 0
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
