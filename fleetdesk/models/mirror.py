"""
Local mirror tables.

MirrorCollection holds one row per entity type: the full serialized
collection, overwritten wholesale on every successful remote read and on
every offline mutation.

PendingOperation is the append-only log of mutations performed while the
remote could not be reached. Nothing replays it yet (see
fleetdesk.store.reconciler).
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from fleetdesk.models.base import Base


class MirrorCollection(Base):
    """Serialized collection for one entity type."""

    __tablename__ = 'mirror_collections'

    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment='Mirror key of the entity type'
    )

    payload: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment='List of records as JSON objects'
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        comment='Last overwrite'
    )

    def __repr__(self) -> str:
        return f'<MirrorCollection {self.key} ({len(self.payload or [])} records)>'


class PendingOperation(Base):
    """A mutation made against the mirror only."""

    __tablename__ = 'pending_operations'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    entity: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment='Entity type name'
    )

    operation: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='create / update / delete'
    )

    record_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    payload: Mapped[Optional[Any]] = mapped_column(
        JSON,
        nullable=True,
        comment='Record (create) or patch (update)'
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    __table_args__ = (
        Index('ix_pending_operations_entity', 'entity', 'created_at'),
    )

    def __repr__(self) -> str:
        return f'<PendingOperation {self.operation} {self.entity} {self.record_id}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'entity': self.entity,
            'operation': self.operation,
            'record_id': self.record_id,
            'payload': self.payload,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
