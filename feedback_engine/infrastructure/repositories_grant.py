# feedback_engine/infrastructure/repositories_grant.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .logging import log_database_operation as log_op
from .models import AccessGrantORM
from .repositories_base import BaseRepository as GenericBaseRepository


class GrantRepo(GenericBaseRepository[AccessGrantORM]):
    """
    Access grants keyed by their opaque code.

    Status transitions are written as conditional UPDATEs guarded on
    ``status = 'pending'`` so two concurrent writers can never both move the
    same grant out of pending.
    """

    model = AccessGrantORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("grant.get")
    def get(self, id_: Any) -> AccessGrantORM | None:
        return super().get(id_)

    @log_op("grant.create")
    def create(self, **fields: Any) -> AccessGrantORM:
        try:
            return super().create(**fields)
        except SQLAlchemyError as e:
            self._handle_error(e, "grant.create")

    @log_op("grant.expire_pending_for")
    def expire_pending_for(self, subject_id: int, template_id: int) -> int:
        """Expire every pending grant for (subject, template). Returns how many were expired."""
        stmt = (
            update(AccessGrantORM)
            .where(
                AccessGrantORM.subject_id == subject_id,
                AccessGrantORM.template_id == template_id,
                AccessGrantORM.status == "pending",
            )
            .values(status="expired", expired_at=datetime.utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        try:
            return self.s.execute(stmt).rowcount or 0
        except SQLAlchemyError as e:
            self._handle_error(e, "grant.expire_pending_for")

    def _transition(self, code: str, status: str, stamp_column: str) -> bool:
        stmt = (
            update(AccessGrantORM)
            .where(AccessGrantORM.code == code, AccessGrantORM.status == "pending")
            .values({"status": status, stamp_column: datetime.utcnow()})
            .execution_options(synchronize_session="evaluate")
        )
        return (self.s.execute(stmt).rowcount or 0) == 1

    @log_op("grant.consume_if_pending")
    def consume_if_pending(self, code: str) -> bool:
        """Atomically flip pending -> consumed. False means someone else got there first."""
        try:
            return self._transition(code, "consumed", "consumed_at")
        except SQLAlchemyError as e:
            self._handle_error(e, "grant.consume_if_pending")

    @log_op("grant.expire_if_pending")
    def expire_if_pending(self, code: str) -> bool:
        try:
            return self._transition(code, "expired", "expired_at")
        except SQLAlchemyError as e:
            self._handle_error(e, "grant.expire_if_pending")

    @log_op("grant.has_grant")
    def has_grant(self, subject_id: int, template_id: int, *, pending_only: bool = False) -> bool:
        filters = [
            AccessGrantORM.subject_id == subject_id,
            AccessGrantORM.template_id == template_id,
        ]
        if pending_only:
            filters.append(AccessGrantORM.status == "pending")
        return self.exists(*filters)
