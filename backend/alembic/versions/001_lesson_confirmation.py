# backend/alembic/versions/001_lesson_confirmation.py
"""Lesson confirmation schema - accounts, lessons, credit ledger and outbox

Revision ID: 001_lesson_confirmation
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates every table the confirmation workflow touches:
users/learners/subjects (read-only here), lessons with their confirmation
columns, the credit ledger used for decline refunds, and the event outbox
plus notification delivery log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_lesson_confirmation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _payload_type() -> sa.types.TypeEngine:
    return postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    """Create lesson confirmation tables."""
    print("Creating lesson confirmation tables...")

    op.create_table(
        "users",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "learners",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("parent_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_learners_id", "learners", ["id"])
    op.create_index("ix_learners_parent_id", "learners", ["parent_id"])

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_subjects_id", "subjects", ["id"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("learner_id", sa.String(26), sa.ForeignKey("learners.id"), nullable=False),
        sa.Column("subject_id", sa.String(26), sa.ForeignKey("subjects.id"), nullable=True),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("credits_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="booked"),
        sa.Column("confirmation_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "confirmation_requested_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("teacher_acknowledgment_message", sa.Text(), nullable=True),
        sa.Column("decline_reason", sa.Text(), nullable=True),
        sa.Column("suggested_alternative_times", sa.JSON(), nullable=True),
        sa.Column("auto_acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('booked', 'cancelled', 'completed')", name="ck_lessons_status"
        ),
        sa.CheckConstraint(
            "confirmation_status IN ('pending', 'acknowledged', 'declined', 'auto_acknowledged')",
            name="ck_lessons_confirmation_status",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="ck_lessons_duration_positive"),
        sa.CheckConstraint(
            "acknowledged_at IS NULL OR declined_at IS NULL",
            name="ck_lessons_single_resolution",
        ),
    )
    op.create_index("ix_lessons_id", "lessons", ["id"])
    op.create_index("ix_lessons_teacher_id", "lessons", ["teacher_id"])
    op.create_index("ix_lessons_learner_id", "lessons", ["learner_id"])
    op.create_index("ix_lessons_scheduled_time", "lessons", ["scheduled_time"])
    op.create_index("ix_lessons_status", "lessons", ["status"])
    op.create_index("ix_lessons_confirmation_status", "lessons", ["confirmation_status"])
    # Partial index keeps the hourly sweep cheap as resolved lessons accumulate
    op.create_index(
        "ix_lessons_pending_confirmation",
        "lessons",
        ["confirmation_status", "status", "confirmation_requested_at"],
        postgresql_where=sa.text("confirmation_status = 'pending'"),
    )

    op.create_table(
        "user_credits",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("credits_remaining", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
        sa.CheckConstraint("credits_remaining >= 0", name="ck_user_credits_non_negative"),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("lesson_id", sa.String(26), sa.ForeignKey("lessons.id"), nullable=True),
        sa.Column("transaction_type", sa.String(20), nullable=False, server_default="refund"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(10, 2), nullable=False),
        sa.Column("reference_note", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_credit_transactions_idempotency_key"),
    )
    op.create_index(
        "ix_credit_transactions_user_created_at",
        "credit_transactions",
        ["user_id", "created_at"],
    )

    op.create_table(
        "event_outbox",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("payload", _payload_type(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),
    )
    op.create_index("ix_event_outbox_event_type", "event_outbox", ["event_type"])
    op.create_index("ix_event_outbox_aggregate_id", "event_outbox", ["aggregate_id"])
    op.create_index("ix_event_outbox_status", "event_outbox", ["status"])
    op.create_index("ix_event_outbox_next_attempt_at", "event_outbox", ["next_attempt_at"])

    op.create_table(
        "notification_delivery",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=True),
        sa.Column("payload", _payload_type(), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_notification_delivery_idempotency"),
    )
    op.create_index("ix_notification_delivery_event_type", "notification_delivery", ["event_type"])

    print("Lesson confirmation tables created")


def downgrade() -> None:
    """Drop lesson confirmation tables."""
    print("Dropping lesson confirmation tables...")

    op.drop_index("ix_notification_delivery_event_type", table_name="notification_delivery")
    op.drop_table("notification_delivery")

    op.drop_index("ix_event_outbox_next_attempt_at", table_name="event_outbox")
    op.drop_index("ix_event_outbox_status", table_name="event_outbox")
    op.drop_index("ix_event_outbox_aggregate_id", table_name="event_outbox")
    op.drop_index("ix_event_outbox_event_type", table_name="event_outbox")
    op.drop_table("event_outbox")

    op.drop_index("ix_credit_transactions_user_created_at", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("user_credits")

    op.drop_index("ix_lessons_pending_confirmation", table_name="lessons")
    op.drop_index("ix_lessons_confirmation_status", table_name="lessons")
    op.drop_index("ix_lessons_status", table_name="lessons")
    op.drop_index("ix_lessons_scheduled_time", table_name="lessons")
    op.drop_index("ix_lessons_learner_id", table_name="lessons")
    op.drop_index("ix_lessons_teacher_id", table_name="lessons")
    op.drop_index("ix_lessons_id", table_name="lessons")
    op.drop_table("lessons")

    op.drop_index("ix_subjects_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_learners_parent_id", table_name="learners")
    op.drop_index("ix_learners_id", table_name="learners")
    op.drop_table("learners")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")

    print("Lesson confirmation tables dropped")
