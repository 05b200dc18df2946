import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, MappedAsDataclass, mapped_column


def generate_id() -> str:
    """Generate a string primary key."""
    return uuid_pkg.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class StringIdMixin(MappedAsDataclass):
    """Mixin that adds a generated string primary key.

    Dataroom and document identifiers are opaque strings shared with the
    web layer, so they are not integers. The id is excluded from the generated
    ``__init__`` and filled from ``generate_id``.
    """

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default_factory=generate_id,
        init=False,
    )


class TimestampMixin(MappedAsDataclass):
    """Mixin for adding created_at and updated_at timestamp columns.

    Both timestamps are timezone-aware UTC values and are excluded from
    dataclass initialization.

    Attributes:
        created_at: Timestamp when the record was created.
        updated_at: Timestamp when the record was last updated.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default_factory=utcnow,
        nullable=False,
        init=False,
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default_factory=utcnow,
        onupdate=utcnow,
        nullable=True,
        init=False,
    )
