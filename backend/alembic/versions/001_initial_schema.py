"""Initial schema

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

Creates every VoiceConnect table:

    users, connections, contact_reveals, posts, post_likes,
    comments, comment_likes, notifications

Types are the portable sa.Uuid / sa.JSON so the same migration runs on
PostgreSQL (native UUID, JSON) and SQLite (CHAR(32), TEXT). All defaults
are applied by the ORM, so no server_default is declared.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _audio_columns():
    return [
        sa.Column("storage_type", sa.String(20), nullable=False),
        sa.Column("file_id", sa.String(255), nullable=False),
        sa.Column("audio_url", sa.String(500), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("audio_format", sa.String(20), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("transcription", sa.Text(), nullable=True),
    ]


def _user_fk(name: str, primary_key: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        primary_key=primary_key,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(50), nullable=True),
        sa.Column("bio", sa.String(500), nullable=True),
        sa.Column("avatar", sa.String(500), nullable=True),
        sa.Column("private_contact", sa.String(255), nullable=True),
        sa.Column("contact_revealed", sa.Boolean(), nullable=False),
        sa.Column("storage_preference", sa.String(20), nullable=False),
        sa.Column("google_drive_token", sa.JSON(), nullable=True),
        sa.Column("auto_accept_connections", sa.Boolean(), nullable=False),
        sa.Column("contact_reveal_policy", sa.String(20), nullable=False),
        sa.Column("notify_new_connection", sa.Boolean(), nullable=False),
        sa.Column("notify_contact_request", sa.Boolean(), nullable=False),
        sa.Column("notify_new_post", sa.Boolean(), nullable=False),
        sa.Column("connection_count", sa.Integer(), nullable=False),
        sa.Column("post_count", sa.Integer(), nullable=False),
        sa.Column("audio_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "connections",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("requester_id"),
        _user_fk("recipient_id"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.String(200), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("requester_id", "recipient_id", name="uq_connections_pair"),
        sa.CheckConstraint("requester_id <> recipient_id", name="ck_connections_not_self"),
    )
    op.create_index(
        "idx_connections_recipient_status", "connections", ["recipient_id", "status"]
    )
    op.create_index(
        "idx_connections_requester_status", "connections", ["requester_id", "status"]
    )

    op.create_table(
        "contact_reveals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("requester_id"),
        _user_fk("recipient_id"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.String(200), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("requester_id <> recipient_id", name="ck_contact_reveals_not_self"),
    )
    op.create_index(
        "idx_contact_reveals_recipient_status", "contact_reveals", ["recipient_id", "status"]
    )
    op.create_index("idx_contact_reveals_requester", "contact_reveals", ["requester_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("author_id"),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("language", sa.String(10), nullable=False),
        sa.Column("privacy", sa.String(20), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("comment_count", sa.Integer(), nullable=False),
        sa.Column("share_count", sa.Integer(), nullable=False),
        sa.Column("listen_count", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audio_columns(),
        *_timestamps(),
    )
    op.create_index("idx_posts_created_at", "posts", ["created_at"])
    op.create_index("idx_posts_author_created", "posts", ["author_id", "created_at"])

    op.create_table(
        "post_likes",
        sa.Column(
            "post_id",
            sa.Uuid(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _user_fk("user_id", primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "post_id",
            sa.Uuid(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("author_id"),
        sa.Column(
            "parent_comment_id",
            sa.Uuid(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audio_columns(),
        *_timestamps(),
    )
    op.create_index(
        "idx_comments_post_parent_created",
        "comments",
        ["post_id", "parent_comment_id", "created_at"],
    )
    op.create_index("idx_comments_author_created", "comments", ["author_id", "created_at"])

    op.create_table(
        "comment_likes",
        sa.Column(
            "comment_id",
            sa.Uuid(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _user_fk("user_id", primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_notifications_user_created", "notifications", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("comment_likes")
    op.drop_table("comments")
    op.drop_table("post_likes")
    op.drop_table("posts")
    op.drop_table("contact_reveals")
    op.drop_table("connections")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
