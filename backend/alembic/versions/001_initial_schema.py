"""Initial schema: catalogue, departures, bookings, payments, promotions.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_staff", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_categories_id", "categories", ["id"])

    op.create_table(
        "tours",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_tours_id", "tours", ["id"])
    op.create_index("ix_tours_category_id", "tours", ["category_id"])

    op.create_table(
        "tour_instances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("seats_booked", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("seats_held", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("hold_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Open'")),
        sa.Column("price_base", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'VND'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 0", name="check_instance_capacity_non_negative"),
        sa.CheckConstraint("seats_booked >= 0", name="check_instance_booked_non_negative"),
        sa.CheckConstraint("seats_held >= 0", name="check_instance_held_non_negative"),
        # Hard ceiling on confirmed seats; pending holds are deliberately uncapped
        sa.CheckConstraint("seats_booked <= capacity", name="check_instance_booked_lte_capacity"),
        sa.CheckConstraint("status IN ('Open', 'SoldOut', 'Closed')", name="check_instance_status"),
    )
    op.create_index("ix_tour_instances_id", "tour_instances", ["id"])
    op.create_index("ix_tour_instances_tour_id", "tour_instances", ["tour_id"])
    op.create_index("ix_tour_instances_tour_start", "tour_instances", ["tour_id", "start_date"])

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'VND'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_services_id", "services", ["id"])

    op.create_table(
        "tour_services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("price_override", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("is_included", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("tour_id", "service_id", name="uq_tour_service"),
    )
    op.create_index("ix_tour_services_id", "tour_services", ["id"])
    op.create_index("ix_tour_services_tour_id", "tour_services", ["tour_id"])
    op.create_index("ix_tour_services_service_id", "tour_services", ["service_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("instance_id", sa.Integer(), sa.ForeignKey("tour_instances.id"), nullable=False),
        sa.Column("booking_ref", sa.String(50), nullable=False),
        sa.Column("seats", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("special_requests", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("seats > 0", name="check_booking_seats_positive"),
        sa.CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Completed', 'Cancelled', 'Rejected')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_instance_id", "bookings", ["instance_id"])
    op.create_index("ix_bookings_booking_ref", "bookings", ["booking_ref"], unique=True)
    # Auto-rejection walks the pending bookings of one departure oldest first
    op.create_index(
        "ix_bookings_instance_status_created", "bookings", ["instance_id", "status", "created_at"]
    )

    op.create_table(
        "booking_services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price_at_booking", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_booking_service_quantity_positive"),
    )
    op.create_index("ix_booking_services_id", "booking_services", ["id"])
    op.create_index("ix_booking_services_booking_id", "booking_services", ["booking_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=False, server_default=sa.text("'CreditCard'")),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("transaction_ref", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Completed'")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])

    op.create_table(
        "promotions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("promotion_type", sa.String(20), nullable=False, server_default=sa.text("'Automatic'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("allow_stack", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_global_uses", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
        sa.Column("min_total_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("min_seats", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "promotion_type IN ('Automatic', 'Coupon', 'FlashSale')", name="check_promotion_type"
        ),
        sa.CheckConstraint("usage_count >= 0", name="check_promotion_usage_non_negative"),
    )
    op.create_index("ix_promotions_id", "promotions", ["id"])
    op.create_index("ix_promotions_active_window", "promotions", ["is_active", "start_at", "end_at"])

    op.create_table(
        "promotion_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("promotion_id", sa.Integer(), sa.ForeignKey("promotions.id"), nullable=False),
        sa.Column("rule_type", sa.String(20), nullable=False),
        sa.Column("value", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(14, 2), nullable=True),
        sa.CheckConstraint(
            "rule_type IN ('Percent', 'Fixed', 'FreeSeat', 'BuyXGetY', 'FreeService')",
            name="check_promotion_rule_type",
        ),
    )
    op.create_index("ix_promotion_rules_id", "promotion_rules", ["id"])
    op.create_index("ix_promotion_rules_promotion_id", "promotion_rules", ["promotion_id"])

    op.create_table(
        "promotion_targets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("promotion_id", sa.Integer(), sa.ForeignKey("promotions.id"), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "target_type IN ('All', 'Tour', 'Instance', 'Category')",
            name="check_promotion_target_type",
        ),
    )
    op.create_index("ix_promotion_targets_id", "promotion_targets", ["id"])
    op.create_index("ix_promotion_targets_promotion_id", "promotion_targets", ["promotion_id"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("promotion_id", sa.Integer(), sa.ForeignKey("promotions.id"), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_coupons_id", "coupons", ["id"])
    op.create_index("ix_coupons_promotion_id", "coupons", ["promotion_id"])
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)

    op.create_table(
        "promotion_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("promotion_id", sa.Integer(), sa.ForeignKey("promotions.id"), nullable=False),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupons.id"), nullable=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("instance_id", sa.Integer(), sa.ForeignKey("tour_instances.id"), nullable=True),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Applied'")),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("booking_id", name="uq_redemption_booking"),
        sa.CheckConstraint(
            "status IN ('Applied', 'Confirmed', 'Voided')", name="check_redemption_status"
        ),
    )
    op.create_index("ix_promotion_redemptions_id", "promotion_redemptions", ["id"])
    op.create_index("ix_promotion_redemptions_promotion_id", "promotion_redemptions", ["promotion_id"])
    op.create_index("ix_promotion_redemptions_coupon_id", "promotion_redemptions", ["coupon_id"])
    op.create_index("ix_promotion_redemptions_user_id", "promotion_redemptions", ["user_id"])


def downgrade() -> None:
    for table in (
        "promotion_redemptions",
        "coupons",
        "promotion_targets",
        "promotion_rules",
        "promotions",
        "payments",
        "booking_services",
        "bookings",
        "tour_services",
        "services",
        "tour_instances",
        "tours",
        "categories",
        "users",
    ):
        op.drop_table(table)
