from __future__ import annotations

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin


class Store(Base, IdMixin, AuditMetaMixin):
    """Store directory row. Owned by store administration; this core only looks stores up."""

    __tablename__ = "stores"

    store_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    store_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class AuditEvent(Base, IdMixin, StoreScopedMixin, AuditMetaMixin):
    __tablename__ = "audit_events"

    actor_id: Mapped[str] = mapped_column(String(200), index=True)

    action: Mapped[str] = mapped_column(String(200), index=True)
    entity_type: Mapped[str] = mapped_column(String(100), index=True)
    entity_id: Mapped[str] = mapped_column(String(200), index=True)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    request_id: Mapped[str] = mapped_column(String(64), index=True)

    __table_args__ = (
        Index("ix_audit_events_store_entity", "store_id", "entity_type", "entity_id"),
    )
