"""vouchers

Revision ID: 0001_vouchers
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_vouchers"
down_revision = None
branch_labels = None
depends_on = None


DISCOUNT_TYPES = (
    "PERCENTAGE",
    "FIXED_AMOUNT",
    "FREE_HOURS",
    "MORNING_BOOKINGS",
    "RENT_5_GET_1",
    "WEEKDAY_TRIPS",
    "HOURLY_PRICE_REDUCTION",
    "DURATION_BASED_FREE_HOURS",
)
FUNDING_TYPES = ("PLATFORM", "SUPPLIER", "CO_FUNDED")


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "cars" not in existing_tables:
        op.create_table(
            "cars",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("car_model", sa.String(), nullable=True),
            sa.Column("supplier_id", sa.String(), nullable=True),
            sa.Column("hourly_price", sa.Float(), nullable=True),
            sa.Column("daily_price", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("cars")
    if "ix_cars_id" not in idxs:
        op.create_index("ix_cars_id", "cars", ["id"])
    if "ix_cars_car_model" not in idxs:
        op.create_index("ix_cars_car_model", "cars", ["car_model"])
    if "ix_cars_supplier_id" not in idxs:
        op.create_index("ix_cars_supplier_id", "cars", ["supplier_id"])

    if "vouchers" not in existing_tables:
        op.create_table(
            "vouchers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("code", sa.String(), nullable=False),
            sa.Column("discount_type", sa.Enum(*DISCOUNT_TYPES, name="discounttype"), nullable=False),
            sa.Column("discount_value", sa.Float(), nullable=False),
            sa.Column("funding_type", sa.Enum(*FUNDING_TYPES, name="fundingtype"), nullable=False),
            sa.Column("minimum_rental_amount", sa.Float(), nullable=True),
            sa.Column("maximum_rental_amount", sa.Float(), nullable=True),
            sa.Column("usage_limit", sa.Integer(), nullable=True),
            sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
            sa.Column("valid_to", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("supplier_id", sa.String(), nullable=True),
            sa.Column("time_restriction_enabled", sa.Boolean(), nullable=True),
            sa.Column("allowed_time_slots", sa.JSON(), nullable=True),
            sa.Column("allowed_days_of_week", sa.JSON(), nullable=True),
            sa.Column("daily_usage_limit_enabled", sa.Boolean(), nullable=True),
            sa.Column("daily_usage_limit", sa.Integer(), nullable=True),
            sa.Column("allowed_car_models", sa.JSON(), nullable=True),
            sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
            sa.Column("free_hours_amount", sa.Float(), nullable=True),
            sa.Column("minimum_rental_hours", sa.Float(), nullable=True),
            sa.Column("free_hours_ratio", sa.JSON(), nullable=True),
            sa.Column("deduct_cheapest_hours", sa.Boolean(), nullable=True),
            sa.Column("hourly_discount_enabled", sa.Boolean(), nullable=True),
            sa.Column("is_stackable", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
            sa.CheckConstraint("usage_count >= 0", name="ck_vouchers_usage_count_non_negative"),
        )
    idxs = existing_indexes("vouchers")
    if "ix_vouchers_id" not in idxs:
        op.create_index("ix_vouchers_id", "vouchers", ["id"])
    if "ix_vouchers_code" not in idxs:
        op.create_index("ix_vouchers_code", "vouchers", ["code"], unique=True)
    if "ix_vouchers_is_active" not in idxs:
        op.create_index("ix_vouchers_is_active", "vouchers", ["is_active"])
    if "ix_vouchers_supplier_id" not in idxs:
        op.create_index("ix_vouchers_supplier_id", "vouchers", ["supplier_id"])

    if "bookings" not in existing_tables:
        op.create_table(
            "bookings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("driver_id", sa.String(), nullable=False),
            sa.Column("supplier_id", sa.String(), nullable=True),
            sa.Column("car_id", sa.Integer(), sa.ForeignKey("cars.id"), nullable=True),
            sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("price", sa.Float(), nullable=False),
            sa.Column("original_price", sa.Float(), nullable=True),
            sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=True),
            sa.Column("voucher_discount", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
    idxs = existing_indexes("bookings")
    if "ix_bookings_id" not in idxs:
        op.create_index("ix_bookings_id", "bookings", ["id"])
    if "ix_bookings_driver_id" not in idxs:
        op.create_index("ix_bookings_driver_id", "bookings", ["driver_id"])
    if "ix_bookings_supplier_id" not in idxs:
        op.create_index("ix_bookings_supplier_id", "bookings", ["supplier_id"])
    if "ix_bookings_car_id" not in idxs:
        op.create_index("ix_bookings_car_id", "bookings", ["car_id"])
    if "ix_bookings_voucher_id" not in idxs:
        op.create_index("ix_bookings_voucher_id", "bookings", ["voucher_id"])

    if "voucher_usages" not in existing_tables:
        op.create_table(
            "voucher_usages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=False),
            sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("discount_applied", sa.Float(), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("voucher_id", "user_id", name="uq_voucher_usages_voucher_user"),
            sa.CheckConstraint("discount_applied > 0", name="ck_voucher_usages_discount_positive"),
        )
    idxs = existing_indexes("voucher_usages")
    if "ix_voucher_usages_id" not in idxs:
        op.create_index("ix_voucher_usages_id", "voucher_usages", ["id"])
    if "ix_voucher_usages_voucher_id" not in idxs:
        op.create_index("ix_voucher_usages_voucher_id", "voucher_usages", ["voucher_id"])
    if "ix_voucher_usages_booking_id" not in idxs:
        op.create_index("ix_voucher_usages_booking_id", "voucher_usages", ["booking_id"], unique=True)
    if "ix_voucher_usages_user_id" not in idxs:
        op.create_index("ix_voucher_usages_user_id", "voucher_usages", ["user_id"])
    if "ix_voucher_usages_used_at" not in idxs:
        op.create_index("ix_voucher_usages_used_at", "voucher_usages", ["used_at"])

    if "voucher_daily_usages" not in existing_tables:
        op.create_table(
            "voucher_daily_usages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=False),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("usage_date", sa.Date(), nullable=False),
            sa.Column("total_hours_used", sa.Float(), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
            sa.UniqueConstraint("voucher_id", "user_id", "usage_date", name="uq_voucher_daily_usages_voucher_user_date"),
            sa.CheckConstraint("total_hours_used >= 0", name="ck_voucher_daily_usages_hours_non_negative"),
        )
    idxs = existing_indexes("voucher_daily_usages")
    if "ix_voucher_daily_usages_id" not in idxs:
        op.create_index("ix_voucher_daily_usages_id", "voucher_daily_usages", ["id"])
    if "ix_voucher_daily_usages_voucher_id" not in idxs:
        op.create_index("ix_voucher_daily_usages_voucher_id", "voucher_daily_usages", ["voucher_id"])
    if "ix_voucher_daily_usages_user_id" not in idxs:
        op.create_index("ix_voucher_daily_usages_user_id", "voucher_daily_usages", ["user_id"])
    if "ix_voucher_daily_usages_usage_date" not in idxs:
        op.create_index("ix_voucher_daily_usages_usage_date", "voucher_daily_usages", ["usage_date"])


def downgrade() -> None:
    op.drop_index("ix_voucher_daily_usages_usage_date", table_name="voucher_daily_usages")
    op.drop_index("ix_voucher_daily_usages_user_id", table_name="voucher_daily_usages")
    op.drop_index("ix_voucher_daily_usages_voucher_id", table_name="voucher_daily_usages")
    op.drop_index("ix_voucher_daily_usages_id", table_name="voucher_daily_usages")
    op.drop_table("voucher_daily_usages")

    op.drop_index("ix_voucher_usages_used_at", table_name="voucher_usages")
    op.drop_index("ix_voucher_usages_user_id", table_name="voucher_usages")
    op.drop_index("ix_voucher_usages_booking_id", table_name="voucher_usages")
    op.drop_index("ix_voucher_usages_voucher_id", table_name="voucher_usages")
    op.drop_index("ix_voucher_usages_id", table_name="voucher_usages")
    op.drop_table("voucher_usages")

    op.drop_index("ix_bookings_voucher_id", table_name="bookings")
    op.drop_index("ix_bookings_car_id", table_name="bookings")
    op.drop_index("ix_bookings_supplier_id", table_name="bookings")
    op.drop_index("ix_bookings_driver_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_vouchers_supplier_id", table_name="vouchers")
    op.drop_index("ix_vouchers_is_active", table_name="vouchers")
    op.drop_index("ix_vouchers_code", table_name="vouchers")
    op.drop_index("ix_vouchers_id", table_name="vouchers")
    op.drop_table("vouchers")
    sa.Enum(name="fundingtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="discounttype").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_cars_supplier_id", table_name="cars")
    op.drop_index("ix_cars_car_model", table_name="cars")
    op.drop_index("ix_cars_id", table_name="cars")
    op.drop_table("cars")
