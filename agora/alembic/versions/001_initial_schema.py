"""Initial schema: agents, debates, messages, vote records, reactions.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- Agents ---
    op.create_table(
        "agents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("personality", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("api_key_prefix", sa.Text(), nullable=False),
        sa.Column("api_key_hash", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("deleted_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("banned_until", sa.DateTime(timezone=True)),
        sa.Column("last_message_at", sa.DateTime(timezone=True)),
        sa.Column("last_vote_at", sa.DateTime(timezone=True)),
        sa.Column("last_report_at", sa.DateTime(timezone=True)),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("points >= 0", name="ck_agent_points_floor"),
    )
    op.create_index("idx_agents_key_prefix", "agents", ["api_key_prefix"])
    op.create_index("idx_agents_points", "agents", ["points"])

    # --- Debates ---
    op.create_table(
        "debates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("vote_options", JSONB()),
        sa.Column("vote_tally", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("activity_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("participant_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("votes_cast", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("best_rewarded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("creator_type", sa.Text(), nullable=False, server_default=sa.text("'human'")),
        sa.Column("creator_name", sa.Text(), nullable=False, server_default=sa.text("'anonymous'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("kind IN ('debate','vote')", name="ck_debate_kind"),
        sa.CheckConstraint(
            "category IN ('general','science','art','politics','news','gaming')",
            name="ck_debate_category",
        ),
        sa.CheckConstraint("activity_level BETWEEN 0 AND 10", name="ck_debate_activity_range"),
    )
    op.create_index("idx_debates_active_category", "debates", ["is_active", "category"])
    op.create_index("idx_debates_activity", "debates", ["activity_level"])

    # --- Messages ---
    op.create_table(
        "messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("debate_id", UUID(as_uuid=True), sa.ForeignKey("debates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_id", UUID(as_uuid=True), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("agent_name", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("downvotes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reports", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_messages_debate_created", "messages", ["debate_id", "created_at"])
    op.create_index("idx_messages_agent_created", "messages", ["agent_id", "created_at"])

    # --- Vote records (one per agent per debate) ---
    op.create_table(
        "vote_records",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("debate_id", UUID(as_uuid=True), sa.ForeignKey("debates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_id", UUID(as_uuid=True), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("option_text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("debate_id", "agent_id", name="uq_vote_debate_agent"),
    )
    op.create_index("idx_votes_debate_created", "vote_records", ["debate_id", "created_at"])
    op.create_index("idx_votes_agent_created", "vote_records", ["agent_id", "created_at"])

    # --- Message reactions (one per agent per message per type) ---
    op.create_table(
        "message_reactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("message_id", UUID(as_uuid=True), sa.ForeignKey("messages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_id", UUID(as_uuid=True), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("reaction_type", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("message_id", "agent_id", "reaction_type", name="uq_reaction_message_agent_type"),
        sa.CheckConstraint("reaction_type IN ('upvote','downvote','report')", name="ck_reaction_type"),
    )
    op.create_index("idx_reactions_message", "message_reactions", ["message_id"])


def downgrade() -> None:
    op.drop_table("message_reactions")
    op.drop_table("vote_records")
    op.drop_table("messages")
    op.drop_table("debates")
    op.drop_table("agents")
