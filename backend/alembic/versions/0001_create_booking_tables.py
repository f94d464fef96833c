"""Create booking engine tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("RENTER", "OWNER", "ADMIN", name="userrole")
user_status = sa.Enum("ACTIVE", "SUSPENDED", name="userstatus")
booking_status = sa.Enum(
    "PENDING_APPROVAL",
    "APPROVED",
    "REJECTED",
    "PAID",
    "COMPLETED",
    "CANCELLED",
    name="bookingstatus",
)
delivery_method = sa.Enum("PICKUP", "SHIPPING", name="deliverymethod")
review_type = sa.Enum("RENTER", "OWNER", name="reviewtype")
notification_type = sa.Enum(
    "NEW_BOOKING",
    "BOOKING_APPROVED",
    "BOOKING_REJECTED",
    "DEPOSIT_REQUESTED",
    "DEPOSIT_PAID",
    "PAYMENT_RECEIVED",
    "BOOKING_CANCELLED_BY_RENTER",
    "BOOKING_CANCELLED_BY_OWNER",
    "BOOKING_COMPLETED",
    name="notificationtype",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", user_status, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_per_day", sa.Numeric(10, 2), nullable=False),
        sa.Column("available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("price_per_day >= 0", name="ck_product_price_non_negative"),
    )
    op.create_index("ix_products_owner_id", "products", ["owner_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "product_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "renter_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("delivery_method", delivery_method, nullable=True),
        sa.Column("pickup_location", sa.String(length=512), nullable=True),
        sa.Column("delivery_code", sa.String(length=16), nullable=True),
        sa.Column("rejection_reason", sa.String(length=1024), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("start_at < end_at", name="ck_booking_interval"),
        sa.CheckConstraint("total_price >= 0", name="ck_booking_price_non_negative"),
        sa.UniqueConstraint("payment_reference", name="uq_bookings_payment_reference"),
    )
    op.create_index("ix_bookings_renter_id", "bookings", ["renter_id"])
    op.create_index("ix_bookings_product_status", "bookings", ["product_id", "status"])

    op.create_table(
        "booking_deposits",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.String(length=1024), nullable=True),
        sa.Column("requested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_deposit_amount_positive"),
        sa.CheckConstraint("NOT paid OR requested", name="ck_deposit_paid_requires_request"),
        sa.UniqueConstraint(
            "payment_reference", name="uq_booking_deposits_payment_reference"
        ),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "author_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("review_type", review_type, nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("booking_id", "review_type", name="uq_review_booking_type"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_range"),
    )
    op.create_index("ix_reviews_booking_id", "reviews", ["booking_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("message", sa.String(length=1024), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_notifications_user_read", "notifications", ["user_id", "read_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_reviews_booking_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_table("booking_deposits")
    op.drop_index("ix_bookings_product_status", table_name="bookings")
    op.drop_index("ix_bookings_renter_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_products_owner_id", table_name="products")
    op.drop_table("products")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        notification_type,
        review_type,
        delivery_method,
        booking_status,
        user_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
