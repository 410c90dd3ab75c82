from datetime import datetime, timezone

from sqlalchemy import (
    ARRAY,
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import SOURCE_NAMES

# Postgres stores string lists natively; the SQLite test database gets JSON.
StringList = ARRAY(String).with_variant(JSON(), "sqlite")

QUALITY_GATE = text("overall_score IS NOT NULL AND coverage >= 0.70")


class Base(DeclarativeBase):
    pass


class Movie(Base):
    __tablename__ = "movies"

    imdb_id: Mapped[str] = mapped_column(String, primary_key=True)
    tmdb_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    year: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    poster: Mapped[str | None] = mapped_column(String, nullable=True)
    overview: Mapped[str | None] = mapped_column(String, nullable=True)
    runtime: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    rating: Mapped[str | None] = mapped_column(String, nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(StringList, nullable=True)
    director: Mapped[str | None] = mapped_column(String, nullable=True)
    directors: Mapped[list[str] | None] = mapped_column(StringList, nullable=True)
    writers: Mapped[list[str] | None] = mapped_column(StringList, nullable=True)
    cinematographer: Mapped[str | None] = mapped_column(String, nullable=True)
    composer: Mapped[str | None] = mapped_column(String, nullable=True)
    cast_members: Mapped[list[str] | None] = mapped_column(StringList, nullable=True)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    coverage: Mapped[float | None] = mapped_column(Float, nullable=True)
    disagreement: Mapped[float | None] = mapped_column(Float, nullable=True)
    sources_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    is_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    score_version: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    last_fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    scores: Mapped[list["Score"]] = relationship(
        back_populates="movie",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_movies_year", "year"),
        Index("idx_movies_genres_gin", "genres", postgresql_using="gin"),
        Index("idx_movies_last_fetched", "last_fetched_at"),
        Index("idx_movies_score_version", "score_version"),
        Index(
            "idx_movies_tmdb_id",
            "tmdb_id",
            unique=True,
            postgresql_where=text("tmdb_id IS NOT NULL"),
            sqlite_where=text("tmdb_id IS NOT NULL"),
        ),
        # Ranked-list queries only ever read rows that pass the quality gate.
        Index("idx_movies_top", "overall_score", postgresql_where=QUALITY_GATE, sqlite_where=QUALITY_GATE),
        Index("idx_movies_divisive", "disagreement", postgresql_where=QUALITY_GATE, sqlite_where=QUALITY_GATE),
    )


class Score(Base):
    __tablename__ = "scores"

    imdb_id: Mapped[str] = mapped_column(
        String, ForeignKey("movies.imdb_id", ondelete="CASCADE"), primary_key=True, index=True
    )
    source: Mapped[str] = mapped_column(String, primary_key=True)
    label: Mapped[str] = mapped_column(String, nullable=False)
    normalized: Mapped[float | None] = mapped_column(Float, nullable=True)
    raw_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    raw_scale: Mapped[str | None] = mapped_column(String, nullable=True)
    count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    url: Mapped[str | None] = mapped_column(String, nullable=True)
    error: Mapped[str | None] = mapped_column(String, nullable=True)
    from_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    badge: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    movie: Mapped["Movie"] = relationship(back_populates="scores")

    __table_args__ = (
        CheckConstraint(
            "source IN (" + ", ".join(f"'{name}'" for name in SOURCE_NAMES) + ")",
            name="source_check",
        ),
    )
