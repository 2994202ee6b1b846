from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

# Mirror of the hosted tables. The hosted backend owns the schema; these
# mappings only describe the columns the dashboard reads and writes.

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(Text, unique=True)
    tier: Mapped[str] = mapped_column(Text, default="free")
    current_plan: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("plans.id", ondelete="SET NULL"), nullable=True
    )
    subscription_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    openai_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    heygen_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Influencer(Base):
    __tablename__ = "influencers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(Text)
    template_id: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Content(Base):
    __tablename__ = "content"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    influencer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("influencers.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(Text)
    script: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, default="generating")
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('queued', 'generating', 'completed', 'failed')",
            name="ck_content_status",
        ),
    )


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_name: Mapped[str] = mapped_column(Text)
    price: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    # Quota fields arrive as bare numbers, numeric strings or JSON text.
    avatars: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_cloning: Mapped[str | None] = mapped_column(Text, nullable=True)
    automations: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_creation: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_editing: Mapped[str | None] = mapped_column(Text, nullable=True)


class UserUsage(Base):
    __tablename__ = "user_usage"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    avatars_created: Mapped[int] = mapped_column(Integer, default=0)
    videos_created: Mapped[int] = mapped_column(Integer, default=0)
    ai_clone_created: Mapped[int] = mapped_column(Integer, default=0)
    minutes_used: Mapped[int] = mapped_column(Integer, default=0)
    automation: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_editing: Mapped[bool] = mapped_column(Boolean, default=False)


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"))
    conversation: Mapped[list] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(Text, default="open")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "status in ('open', 'in_progress', 'resolved')",
            name="ck_support_ticket_status",
        ),
    )


class InfluencerWebhook(Base):
    __tablename__ = "webhook_influencer"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    influencer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("influencers.id", ondelete="CASCADE")
    )
    name: Mapped[str] = mapped_column(Text)
    url: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


TABLES: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (User, Influencer, Content, Plan, UserUsage, SupportTicket, InfluencerWebhook)
}
