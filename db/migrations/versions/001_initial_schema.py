"""Initial schema: leads, pipeline, conversations, campaigns, users.

Also installs the row-change NOTIFY triggers the change feed listens to.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

NOTIFY_CHANNEL = "table_changes"
WATCHED_TABLES = (
    "leads",
    "conversations",
    "messages",
    "pipeline_stages",
    "tag_campaigns",
    "tag_campaign_messages",
)


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        for name in names
    ]


def upgrade() -> None:
    # ─── Users ───────────────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.Text, nullable=False),
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("phone_number", sa.Text, nullable=True),
        sa.Column("twilio_phone_number", sa.Text, nullable=True),
        sa.Column("designation", sa.Text, nullable=True),
        sa.Column("avatar_url", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("receive_sms_notifications", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps("created_at", "updated_at"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('admin', 'user')", name="ck_user_role"),
        sa.UniqueConstraint("user_id", name="uq_user_roles_user"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_roles_user", ondelete="CASCADE"),
    )

    op.create_table(
        "user_preferences",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("visible_columns", sa.JSON, nullable=False),
        sa.Column("filters", sa.JSON, nullable=False),
        *_timestamps("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_preferences_user", ondelete="CASCADE"),
    )

    # ─── Leads and pipeline ──────────────────────────────────────────────────

    op.create_table(
        "pipeline_stages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("color", sa.Text, nullable=False, server_default="#64748b"),
        sa.Column("order_position", sa.Integer, nullable=False),
        *_timestamps("created_at"),
    )

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("first_name", sa.Text, nullable=False),
        sa.Column("last_name", sa.Text, nullable=False),
        sa.Column("phone", sa.Text, nullable=False),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("city", sa.Text, nullable=True),
        sa.Column("state", sa.Text, nullable=True),
        sa.Column("zip", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("lead_source", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="new"),
        sa.Column("pipeline_stage_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint(
            "lead_source IS NULL OR lead_source IN ('manual_entry', 'csv_upload')",
            name="ck_lead_source",
        ),
        sa.UniqueConstraint("phone", name="uq_leads_phone"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_lead_user", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], name="fk_lead_owner", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["pipeline_stage_id"], ["pipeline_stages.id"], name="fk_lead_stage"),
    )
    op.create_index("ix_leads_owner_id", "leads", ["owner_id"])
    op.create_index("ix_leads_pipeline_stage_id", "leads", ["pipeline_stage_id"])

    # ─── Conversations ───────────────────────────────────────────────────────

    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("channel", sa.Text, nullable=False, server_default="sms"),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("requires_human_handoff", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("handoff_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_controlled", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("ai_message_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unread_count", sa.Integer, nullable=False, server_default="0"),
        *_timestamps("last_message_at", "created_at", "updated_at"),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], name="fk_conversation_lead", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_conversation_user", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], name="fk_conversation_assignee", ondelete="SET NULL"),
    )
    op.create_index("ix_conversations_lead_id", "conversations", ["lead_id"])

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("direction", sa.Text, nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("sender", sa.Text, nullable=False, server_default=""),
        sa.Column("recipient", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.Text, nullable=False, server_default="queued"),
        sa.Column("delivery_status", sa.Text, nullable=True),
        sa.Column("error_code", sa.Text, nullable=True),
        sa.Column("twilio_sid", sa.Text, nullable=True),
        sa.Column("is_ai_generated", sa.Boolean, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        *_timestamps("created_at"),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_message_direction"),
        sa.ForeignKeyConstraint(
            ["conversation_id"], ["conversations.id"], name="fk_message_conversation", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])

    # ─── Tag campaigns ───────────────────────────────────────────────────────

    op.create_table(
        "tag_campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tag", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("target_pipeline_stage_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_campaign_user", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["target_pipeline_stage_id"], ["pipeline_stages.id"], name="fk_campaign_target_stage"
        ),
    )
    op.create_index("ix_tag_campaigns_tag", "tag_campaigns", ["tag"])

    op.create_table(
        "tag_campaign_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("day_number", sa.Integer, nullable=False),
        sa.Column("sequence_order", sa.Integer, nullable=False),
        sa.Column("message_template", sa.Text, nullable=False),
        *_timestamps("created_at"),
        sa.UniqueConstraint("campaign_id", "sequence_order", name="uq_campaign_message_order"),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["tag_campaigns.id"], name="fk_campaign_message_campaign", ondelete="CASCADE"
        ),
    )

    op.create_table(
        "campaign_enrollments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("current_message_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("is_paused", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_completed", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("status IN ('active', 'paused', 'completed')", name="ck_enrollment_status"),
        sa.UniqueConstraint("lead_id", "campaign_id", name="uq_enrollment_lead_campaign"),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], name="fk_enrollment_lead", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["tag_campaigns.id"], name="fk_enrollment_campaign", ondelete="CASCADE"
        ),
    )

    # ─── Change feed ─────────────────────────────────────────────────────────

    op.execute(
        f"""
        CREATE OR REPLACE FUNCTION notify_table_change() RETURNS trigger AS $$
        BEGIN
            PERFORM pg_notify(
                '{NOTIFY_CHANNEL}',
                json_build_object(
                    'table', TG_TABLE_NAME,
                    'event', TG_OP,
                    'record', CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE row_to_json(NEW) END,
                    'old_record', CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE row_to_json(OLD) END
                )::text
            );
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    for table in WATCHED_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_notify_change "
            f"AFTER INSERT OR UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION notify_table_change()"
        )


def downgrade() -> None:
    for table in WATCHED_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_notify_change ON {table}")
    op.execute("DROP FUNCTION IF EXISTS notify_table_change()")

    # Drop in reverse dependency order
    op.drop_table("campaign_enrollments")
    op.drop_table("tag_campaign_messages")
    op.drop_index("ix_tag_campaigns_tag", table_name="tag_campaigns")
    op.drop_table("tag_campaigns")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_lead_id", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_leads_pipeline_stage_id", table_name="leads")
    op.drop_index("ix_leads_owner_id", table_name="leads")
    op.drop_table("leads")
    op.drop_table("pipeline_stages")
    op.drop_table("user_preferences")
    op.drop_table("user_roles")
    op.drop_table("users")
