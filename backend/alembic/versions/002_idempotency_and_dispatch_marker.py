"""Exactly-once fan-out: idempotency_key + alerts_dispatched_at on reports, one alert per recipient.

Revision ID: 002
Revises: 001
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("reports") as batch:
        batch.add_column(sa.Column("idempotency_key", sa.String(128), nullable=True))
        batch.add_column(sa.Column("alerts_dispatched_at", sa.DateTime(timezone=True), nullable=True))
        batch.create_unique_constraint("uq_reports_user_idempotency_key", ["user_id", "idempotency_key"])

    # Legacy rows written before the status vocabulary was fixed
    op.execute("UPDATE reports SET status = 'active' WHERE status = 'pending'")

    with op.batch_alter_table("notification_alerts") as batch:
        batch.create_unique_constraint(
            "uq_notification_alerts_report_recipient", ["report_id", "recipient_user_id"]
        )


def downgrade() -> None:
    with op.batch_alter_table("notification_alerts") as batch:
        batch.drop_constraint("uq_notification_alerts_report_recipient", type_="unique")
    with op.batch_alter_table("reports") as batch:
        batch.drop_constraint("uq_reports_user_idempotency_key", type_="unique")
        batch.drop_column("alerts_dispatched_at")
        batch.drop_column("idempotency_key")
