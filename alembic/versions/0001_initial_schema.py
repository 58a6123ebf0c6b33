"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "persons",
        sa.Column("person_type", sa.String(16), primary_key=True),
        sa.Column("person_id", sa.String(16), primary_key=True),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("inmate_id", sa.String(), nullable=True),
        sa.Column("visit_purpose", sa.String(), nullable=True),
        sa.Column("has_timed_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_timed_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_visit_date", sa.Date(), nullable=True),
        sa.Column("total_visits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_visit_duration", sa.String(), nullable=True),
        sa.Column("custom_timer_start", sa.String(16), nullable=True),
        sa.Column("custom_timer_end", sa.String(16), nullable=True),
        sa.Column("custom_timer_duration", sa.String(16), nullable=True),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ban_reason", sa.String(), nullable=True),
        sa.Column("ban_duration", sa.String(16), nullable=True),
        sa.Column("ban_start_date", sa.DateTime(), nullable=True),
        sa.Column("ban_end_date", sa.DateTime(), nullable=True),
        sa.Column("calculated_duration", sa.String(), nullable=True),
        sa.Column("ban_notes", sa.Text(), nullable=True),
        sa.Column("violation_type", sa.String(), nullable=True),
        sa.Column("violation_details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "id_counters",
        sa.Column("name", sa.String(32), primary_key=True),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "visit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("person_id", sa.String(16), nullable=False),
        sa.Column("person_type", sa.String(16), nullable=False),
        sa.Column("person_name", sa.String(), nullable=True),
        sa.Column("inmate_id", sa.String(), nullable=True),
        sa.Column("purpose", sa.String(), nullable=True),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("time_in", sa.String(16), nullable=False),
        sa.Column("time_out", sa.String(16), nullable=True),
        sa.Column("visit_duration", sa.String(16), nullable=True),
        sa.Column("timer_start", sa.DateTime(), nullable=False),
        sa.Column("timer_end", sa.DateTime(), nullable=False),
        sa.Column("is_timer_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_custom_timer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("custom_start_time", sa.String(16), nullable=True),
        sa.Column("custom_end_time", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="in-progress"),
        sa.Column("checked_out_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_visit_logs_id", "visit_logs", ["id"])
    op.create_index("ix_visit_logs_person_id", "visit_logs", ["person_id"])
    op.create_index("ix_visit_logs_visit_date", "visit_logs", ["visit_date"])
    op.create_index(
        "uq_visit_logs_one_active_per_person",
        "visit_logs",
        ["person_id", "person_type"],
        unique=True,
        postgresql_where=sa.text("status = 'in-progress'"),
        sqlite_where=sa.text("status = 'in-progress'"),
    )

    op.create_table(
        "ban_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("person_id", sa.String(16), nullable=False),
        sa.Column("person_type", sa.String(16), nullable=False),
        sa.Column("person_name", sa.String(), nullable=False),
        sa.Column("ban_reason", sa.String(), nullable=False),
        sa.Column("ban_duration", sa.String(16), nullable=False),
        sa.Column("ban_start_date", sa.DateTime(), nullable=True),
        sa.Column("ban_end_date", sa.DateTime(), nullable=True),
        sa.Column("calculated_duration", sa.String(), nullable=True),
        sa.Column("ban_notes", sa.Text(), nullable=True),
        sa.Column("banned_by", sa.String(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("removed_at", sa.DateTime(), nullable=True),
        sa.Column("removed_by", sa.String(), nullable=True),
        sa.Column("removal_reason", sa.String(), nullable=True),
    )
    op.create_index("ix_ban_history_id", "ban_history", ["id"])
    op.create_index("ix_ban_history_person_id", "ban_history", ["person_id"])
    op.create_index("ix_ban_history_status", "ban_history", ["status"])

    op.create_table(
        "violation_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("person_id", sa.String(16), nullable=False),
        sa.Column("person_type", sa.String(16), nullable=False),
        sa.Column("person_name", sa.String(), nullable=False),
        sa.Column("violation_type", sa.String(), nullable=False),
        sa.Column("violation_details", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.String(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("removed_at", sa.DateTime(), nullable=True),
        sa.Column("removed_by", sa.String(), nullable=True),
        sa.Column("removal_reason", sa.String(), nullable=True),
    )
    op.create_index("ix_violation_history_id", "violation_history", ["id"])
    op.create_index("ix_violation_history_person_id", "violation_history", ["person_id"])
    op.create_index("ix_violation_history_status", "violation_history", ["status"])


def downgrade():
    op.drop_table("violation_history")
    op.drop_table("ban_history")
    op.drop_index("uq_visit_logs_one_active_per_person", table_name="visit_logs")
    op.drop_table("visit_logs")
    op.drop_table("id_counters")
    op.drop_table("persons")
