"""Subject context projection: read-only display fields for form headers."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session

from ..domain.models import SubjectContext
from .repositories_subject import SubjectRepo, to_subject_context


class SubjectDirectory(Protocol):
    def get_context(self, subject_id: int) -> SubjectContext: ...


class SqlSubjectDirectory:
    """Reads the ``subjects`` projection table. Raises SubjectNotFoundError for unknown ids."""

    def __init__(self, session: Session):
        self.repo = SubjectRepo(session)

    def get_context(self, subject_id: int) -> SubjectContext:
        return to_subject_context(self.repo.get_by_id_required(subject_id))
