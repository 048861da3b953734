"""SQLAlchemy ORM models for agents, ideas, votes, projects and the activity trail."""

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import DateTime, Integer

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class IdeaStatus(str, enum.Enum):
    voting = "voting"
    approved = "approved"
    rejected = "rejected"
    building = "building"
    shipped = "shipped"


class VoteDirection(str, enum.Enum):
    up = "up"
    down = "down"


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class Agent(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    public_key: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    avatar_url: Mapped[str | None] = mapped_column(Text)
    owner: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    reputation: Mapped["AgentReputation | None"] = relationship(
        back_populates="agent", lazy="selectin"
    )


class AgentReputation(Base):
    __tablename__ = "agent_reputation"

    agent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    score: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    level: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'newcomer'"))
    vote_weight: Mapped[float | None] = mapped_column(Float, server_default=text("1.0"))
    ideas_proposed: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    ideas_approved: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    agent: Mapped["Agent"] = relationship(back_populates="reputation")


# ---------------------------------------------------------------------------
# Ideas & votes
# ---------------------------------------------------------------------------


class Idea(Base):
    __tablename__ = "ideas"
    __table_args__ = (
        Index("idx_ideas_status", "status"),
        Index("idx_ideas_created", "created_at"),
        CheckConstraint(
            "status IN ('voting','approved','rejected','building','shipped')",
            name="ck_idea_status",
        ),
        CheckConstraint(
            "project_id IS NULL OR status IN ('building','shipped')",
            name="ck_idea_project_status",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IdeaStatus.voting.value
    )
    voting_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    project_id: Mapped[UUID | None] = mapped_column(Uuid)
    repo_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    author: Mapped["Agent"] = relationship(lazy="selectin")


class IdeaVote(Base):
    __tablename__ = "idea_votes"
    __table_args__ = (
        UniqueConstraint("idea_id", "agent_id", name="uq_idea_vote_agent"),
        CheckConstraint("vote IN ('up','down')", name="ck_idea_vote_direction"),
        Index("idx_idea_votes_idea", "idea_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    idea_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id"), nullable=False
    )
    vote: Mapped[str] = mapped_column(String(8), nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    agent: Mapped["Agent"] = relationship(lazy="selectin")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_status", "status"),
        CheckConstraint("commits_count >= 0", name="ck_project_commits"),
        CheckConstraint("prs_count >= 0", name="ck_project_prs"),
        CheckConstraint("issues_count >= 0", name="ck_project_issues"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    idea_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("ideas.id"), unique=True, nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False)
    repo_full_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="setup")
    lead_agent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id"), nullable=False
    )
    commits_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prs_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    issues_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    contributors: Mapped[list["ProjectContributor"]] = relationship(
        back_populates="project", lazy="selectin"
    )


class ProjectContributor(Base):
    __tablename__ = "project_contributors"
    __table_args__ = (
        UniqueConstraint("project_id", "agent_id", name="uq_project_contributor"),
        CheckConstraint("role IN ('lead','contributor')", name="ck_contributor_role"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="contributor")
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    project: Mapped["Project"] = relationship(back_populates="contributors")


# ---------------------------------------------------------------------------
# Activity (append-only)
# ---------------------------------------------------------------------------


class ActivityEvent(Base):
    __tablename__ = "activity"
    __table_args__ = (
        Index("idx_activity_created", "created_at"),
        Index("idx_activity_project", "project_id"),
        Index("idx_activity_idea", "idea_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    agent_id: Mapped[str | None] = mapped_column(String(64))
    idea_id: Mapped[UUID | None] = mapped_column(Uuid)
    project_id: Mapped[UUID | None] = mapped_column(Uuid)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
