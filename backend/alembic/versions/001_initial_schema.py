"""Initial schema: user_locations, reports, confirmations, notification_alerts.

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Must match theftwatch.core.geo.geography_point so the planner uses the GiST index.
GEOGRAPHY_EXPR = "CAST(ST_SetSRID(ST_MakePoint(longitude, latitude), 4326) AS geography(POINT,4326))"


def upgrade() -> None:
    is_postgres = op.get_bind().dialect.name == "postgresql"
    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "user_locations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("proof_ref", sa.String(512), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_token", sa.String(256), nullable=True),
        sa.Column("delivery_platform", sa.String(16), nullable=False, server_default="ios"),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location", sa.String(96), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_locations_user_id", "user_locations", ["user_id"], unique=True)
    op.create_index("ix_user_locations_lat_lon", "user_locations", ["latitude", "longitude"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="vehicle"),
        sa.Column("vehicle_no", sa.String(64), nullable=False),
        sa.Column("vehicle_type", sa.String(32), nullable=True),
        sa.Column("vehicle_color", sa.String(32), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("photo_ref", sa.String(512), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("location", sa.String(96), nullable=False),
        sa.Column("radius_m", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("alert_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expiry_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_reports_user_id", "reports", ["user_id"])
    op.create_index("ix_reports_expiry_at", "reports", ["expiry_at"])
    op.create_index("ix_reports_user_created", "reports", ["user_id", "created_at"])
    op.create_index("ix_reports_lat_lon", "reports", ["latitude", "longitude"])

    op.create_table(
        "confirmations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_confirmations_report_id", "confirmations", ["report_id"])
    op.create_unique_constraint("uq_confirmations_report_user", "confirmations", ["report_id", "user_id"])

    op.create_table(
        "notification_alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_user_id", sa.String(64), nullable=False),
        sa.Column("sender_user_id", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("alert_type", sa.String(32), nullable=False, server_default="theft_alert"),
        sa.Column("distance_meters", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="sent"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notification_alerts_report_id", "notification_alerts", ["report_id"])
    op.create_index("ix_notification_alerts_recipient_user_id", "notification_alerts", ["recipient_user_id"])
    op.create_index(
        "ix_notification_alerts_recipient_read_created",
        "notification_alerts",
        ["recipient_user_id", "read_at", "created_at"],
    )
    op.create_index("ix_notification_alerts_status_created", "notification_alerts", ["status", "created_at"])

    if is_postgres:
        op.execute(f"CREATE INDEX ix_user_locations_geog ON user_locations USING gist (({GEOGRAPHY_EXPR}))")
        op.execute(f"CREATE INDEX ix_reports_geog ON reports USING gist (({GEOGRAPHY_EXPR}))")


def downgrade() -> None:
    op.drop_table("notification_alerts")
    op.drop_table("confirmations")
    op.drop_table("reports")
    op.drop_table("user_locations")
