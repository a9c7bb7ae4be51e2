"""
SQLAlchemy ORM Models for EPG Service

This module defines the database models for persisted guide snapshots.
"""
from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Snapshot(Base):
    """One current guide snapshot per provider"""
    __tablename__ = "snapshots"

    provider_id: Mapped[str] = mapped_column(String, primary_key=True)
    snapshot_id: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<Snapshot(provider_id={self.provider_id}, snapshot_id={self.snapshot_id})>"


class SnapshotChannel(Base):
    """Guide channel with its display names"""
    __tablename__ = "snapshot_channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("snapshots.provider_id", ondelete="CASCADE"),
        nullable=False
    )
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    display_names: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("idx_snapshot_channels_provider", "provider_id"),
    )

    def __repr__(self) -> str:
        return f"<SnapshotChannel(provider_id={self.provider_id}, channel_id={self.channel_id})>"


class SnapshotProgram(Base):
    """Program row; times are ISO8601 UTC strings"""
    __tablename__ = "snapshot_programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("snapshots.provider_id", ondelete="CASCADE"),
        nullable=False
    )
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    start_time: Mapped[str] = mapped_column(String, nullable=False)
    stop_time: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_snapshot_programs_provider_time", "provider_id", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<SnapshotProgram(title={self.title}, channel={self.channel_id})>"
