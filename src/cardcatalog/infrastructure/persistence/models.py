"""SQLAlchemy ORM models for the catalog store."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Timestamps come back naive. ALWAYS run
# DB datetimes through this before comparing with datetime.now(UTC) (cooldown check!) or you
# get "can't compare offset-naive and offset-aware datetimes".
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, this is THE catalog table, one row per path. Table/column names ("library",
# "mbid", "duration") are kept from the first schema so existing databases migrate in place.
# sqlite_autoincrement makes SQLite behave like a sequence: ids of pruned rows are NEVER
# handed out again (plain INTEGER PRIMARY KEY would reuse the max id after a delete, and
# the search index still holds documents keyed by id!).
class CatalogEntryModel(Base):
    """SQLAlchemy model for CatalogEntry."""

    __tablename__ = "library"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mbid: Mapped[str | None] = mapped_column(String(36), nullable=True)
    mbid_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    artist: Mapped[str | None] = mapped_column(String, nullable=True)
    album: Mapped[str | None] = mapped_column(String, nullable=True)
    track: Mapped[str | None] = mapped_column(String, nullable=True)
    track_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    path: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # The entry OWNS its checkpoint: deleting the entry deletes the checkpoint
    # (ON DELETE CASCADE in the DB, delete-orphan in the ORM).
    checkpoint: Mapped["ResolutionCheckpointModel | None"] = relationship(
        back_populates="entry",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        sa.UniqueConstraint("path", name="uq_library_path"),
        Index("library_mbid", "mbid"),
        CheckConstraint("track_number >= 0", name="ck_library_track_number_non_negative"),
        CheckConstraint("duration >= 0", name="ck_library_duration_non_negative"),
        {"sqlite_autoincrement": True},
    )


# Hey future me, at most ONE checkpoint per entry (unique library_id). It records when we last
# ASKED AcoustID about the file - match or not. The first schema had a nullable, non-unique
# library_id; migration 0004 tightened it to NOT NULL + UNIQUE + ON DELETE CASCADE.
class ResolutionCheckpointModel(Base):
    """SQLAlchemy model for ResolutionCheckpoint."""

    __tablename__ = "acoustid_last_check"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    library_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("library.id", ondelete="CASCADE", name="fk_acoustid_last_check_library_id"),
        nullable=False,
    )
    last_check: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    entry: Mapped[CatalogEntryModel] = relationship(back_populates="checkpoint")

    __table_args__ = (
        sa.UniqueConstraint("library_id", name="uq_acoustid_last_check_library_id"),
    )
