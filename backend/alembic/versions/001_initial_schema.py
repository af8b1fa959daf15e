"""Initial schema: accounts, listings (properties and tours), bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column(
            "account_status", sa.String(30), nullable=False,
            server_default=sa.text("'pending_verification'"),
        ),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin', 'host', 'user')", name="check_account_role"),
        sa.CheckConstraint(
            "account_status IN ('active', 'suspended', 'deleted', 'pending_verification')",
            name="check_account_status",
        ),
    )
    op.create_index("ix_accounts_id", "accounts", ["id"])
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    # Properties and tour packages share one table, discriminated by kind.
    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("image_urls", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("price_per_night", sa.Float(), nullable=True),
        sa.Column("amenities", sa.JSON(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("duration", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("kind IN ('property', 'tour')", name="check_listing_kind"),
        sa.CheckConstraint("price_per_night IS NULL OR price_per_night >= 0", name="check_listing_nightly_price"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="check_listing_price"),
    )
    op.create_index("ix_listings_id", "listings", ["id"])
    op.create_index("ix_listings_host_id", "listings", ["host_id"])
    op.create_index("ix_listings_city", "listings", ["city"])
    # Public feed: WHERE kind = ? AND status = 'available'
    op.create_index("ix_listings_kind_status", "listings", ["kind", "status"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=True),
        sa.Column("tour_package_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=True),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=False),
        sa.Column("guests", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_details", sa.String(500), nullable=True),
        sa.Column("payment_images", sa.JSON(), nullable=False),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(property_id IS NULL AND tour_package_id IS NOT NULL) OR "
            "(property_id IS NOT NULL AND tour_package_id IS NULL)",
            name="check_booking_single_listing",
        ),
        sa.CheckConstraint("check_out > check_in", name="check_booking_dates"),
        sa.CheckConstraint("guests >= 1 AND guests <= 20", name="check_booking_guests"),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_price"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_property_id", "bookings", ["property_id"])
    op.create_index("ix_bookings_tour_package_id", "bookings", ["tour_package_id"])
    # The availability check filters by listing, status and range on every
    # booking write; these keep it an index scan.
    op.create_index(
        "ix_bookings_property_range", "bookings", ["property_id", "status", "check_in", "check_out"]
    )
    op.create_index(
        "ix_bookings_tour_range", "bookings", ["tour_package_id", "status", "check_in", "check_out"]
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("listings")
    op.drop_table("accounts")
