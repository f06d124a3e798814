"""SQLAlchemy ORM table models for the demo blog dataset.

The seed command and the integration tests load fixtures into these tables.

Identifier shapes covered:
- AuthorRow: integer autoincrement key (assigned by the database on flush)
- PostRow: string key with a client-side UUID v7 default, self-referencing
- TagRow: integer key, usually forced by fixtures
- PostTagRow: composite key (post_id, tag_id)
"""

import re
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.session import Base
from src.models.common import new_string_id, utc_now

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


class AuthorRow(Base):
    __tablename__ = "authors"

    author_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    def __str__(self) -> str:
        return self.email


class PostRow(Base):
    """Blog post. ``slug`` is read-only; fixtures assign it via ``set_slug``."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_string_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, default="")
    _slug: Mapped[str | None] = mapped_column("slug", String(255), nullable=True)
    author_id: Mapped[int | None] = mapped_column(
        ForeignKey("authors.author_id"), nullable=True,
    )
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("posts.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )

    author: Mapped[AuthorRow | None] = relationship()
    parent: Mapped["PostRow | None"] = relationship(remote_side=[id])

    @property
    def slug(self) -> str | None:
        return self._slug

    def set_slug(self, value: str) -> None:
        self._slug = _SLUG_STRIP_RE.sub("-", value.lower()).strip("-")


class TagRow(Base):
    __tablename__ = "tags"

    tag_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class PostTagRow(Base):
    """Association row with a composite identifier."""

    __tablename__ = "post_tags"

    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.tag_id"), primary_key=True)
