"""Create child profiles, points ledgers, redemptions, reward offers, and usage events."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


REDEMPTION_STATUSES = ("REQUESTED", "APPROVED", "REJECTED", "ACCEPTED", "FULFILLED", "CANCELLED")
REWARD_OFFER_STATUSES = ("OFFERED", "ACCEPTED", "REJECTED", "FULFILLED", "EXPIRED")


def upgrade() -> None:
    op.create_table(
        "child_profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("child_uid", sa.String(), nullable=True),
        sa.Column("family_id", sa.String(), nullable=True),
        sa.Column("nick_name", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_child_profiles_child_uid", "child_profiles", ["child_uid"], unique=True)
    op.create_index("ix_child_profiles_family_id", "child_profiles", ["family_id"])

    op.create_table(
        "points_ledger",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("source_key", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("subject_id", "source_key", name="uq_points_ledger_subject_source_key"),
    )
    op.create_index("ix_points_ledger_subject_id", "points_ledger", ["subject_id"])
    op.create_index("ix_points_ledger_created_at", "points_ledger", ["created_at"])

    op.create_table(
        "child_points_ledger",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("evidence_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_child_points_ledger_subject_id", "child_points_ledger", ["subject_id"])
    op.create_index("ix_child_points_ledger_created_at", "child_points_ledger", ["created_at"])

    op.create_table(
        "points_redemption_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("family_id", sa.String(), nullable=True),
        sa.Column("requested_points", sa.Integer(), nullable=False),
        sa.Column("rate_per_point", sa.Numeric(12, 6), nullable=False),
        sa.Column("currency_cents", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*REDEMPTION_STATUSES, name="points_redemption_status"),
            nullable=False,
            server_default="REQUESTED",
        ),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.String(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_points_redemption_requests_subject_id", "points_redemption_requests", ["subject_id"])

    op.create_table(
        "rewards_catalog",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("family_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_rewards_catalog_family_id", "rewards_catalog", ["family_id"])

    op.create_table(
        "reward_offers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column(
            "reward_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("rewards_catalog.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("points_cost", sa.Integer(), nullable=True),
        sa.Column("points_cost_override", sa.Integer(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*REWARD_OFFER_STATUSES, name="reward_offer_status"),
            nullable=False,
            server_default="OFFERED",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reward_offers_subject_id", "reward_offers", ["subject_id"])

    op.create_table(
        "usage_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("action_kind", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_usage_events_subject_action_created",
        "usage_events",
        ["subject_id", "action_kind", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_usage_events_subject_action_created", table_name="usage_events")
    op.drop_table("usage_events")
    op.drop_index("ix_reward_offers_subject_id", table_name="reward_offers")
    op.drop_table("reward_offers")
    op.drop_index("ix_rewards_catalog_family_id", table_name="rewards_catalog")
    op.drop_table("rewards_catalog")
    op.drop_index("ix_points_redemption_requests_subject_id", table_name="points_redemption_requests")
    op.drop_table("points_redemption_requests")
    op.drop_index("ix_child_points_ledger_created_at", table_name="child_points_ledger")
    op.drop_index("ix_child_points_ledger_subject_id", table_name="child_points_ledger")
    op.drop_table("child_points_ledger")
    op.drop_index("ix_points_ledger_created_at", table_name="points_ledger")
    op.drop_index("ix_points_ledger_subject_id", table_name="points_ledger")
    op.drop_table("points_ledger")
    op.drop_index("ix_child_profiles_family_id", table_name="child_profiles")
    op.drop_index("ix_child_profiles_child_uid", table_name="child_profiles")
    op.drop_table("child_profiles")

    bind = op.get_bind()
    sa.Enum(name="reward_offer_status").drop(bind, checkfirst=True)
    sa.Enum(name="points_redemption_status").drop(bind, checkfirst=True)
