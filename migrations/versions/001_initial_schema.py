"""Initial schema: driver profiles, driver presence and rides.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUSES = (
    "pending",
    "driver_assigned",
    "in_progress",
    "on_site",
    "completed",
    "cancelled",
)


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("rating", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("review_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── driver_presence ───────────────────────────────────────────────
    op.create_table(
        "driver_presence",
        sa.Column("driver_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("on_line", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parking_mode", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("busy", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_presence_visibility", "driver_presence", ["on_line", "parking_mode"]
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("passenger_id", sa.Integer, nullable=True),
        sa.Column("driver_id", sa.Integer, nullable=True),
        sa.Column("created_by_driver_id", sa.Integer, nullable=True),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("origin_name", sa.String(255), nullable=True),
        sa.Column("destination_name", sa.String(255), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("distance", sa.Float, nullable=True),
        sa.Column("price", sa.Float, nullable=True),
        sa.Column(
            "payment_type",
            sa.Enum("cash", "card", name="payment_type"),
            nullable=False,
            server_default="cash",
        ),
        sa.Column(
            "status",
            sa.Enum(*RIDE_STATUSES, name="ride_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_passenger", "rides", ["passenger_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])


def downgrade() -> None:
    op.drop_table("rides")
    op.drop_table("driver_presence")
    op.drop_table("drivers")
    op.execute("DROP TYPE IF EXISTS ride_status")
    op.execute("DROP TYPE IF EXISTS payment_type")
