"""Initial EventDesk schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column(
            "admin", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organizer_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=255), nullable=True),
        sa.Column("code_of_conduct", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("country", sa.String(length=120), nullable=True),
        sa.Column("organizer_name", sa.String(length=120), nullable=True),
        sa.Column("organizer_email", sa.String(length=255), nullable=True),
        sa.Column("number_of_tickets", sa.Integer(), nullable=True),
        sa.Column("ticket_funded", sa.Boolean(), nullable=False),
        sa.Column("accommodation_funded", sa.Boolean(), nullable=False),
        sa.Column("travel_funded", sa.Boolean(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("deadline", sa.Date(), nullable=False),
        sa.Column("application_process", sa.String(length=32), nullable=False),
        sa.Column("application_link", sa.String(length=255), nullable=True),
        sa.Column("data_protection_confirmation", sa.Boolean(), nullable=False),
        sa.Column(
            "approved", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["organizer_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_events_approved_end_date", "events", ["approved", "end_date"]
    )
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])


def downgrade() -> None:
    op.drop_index("ix_events_organizer_id", table_name="events")
    op.drop_index("ix_events_approved_end_date", table_name="events")
    op.drop_table("events")
    op.drop_table("users")
