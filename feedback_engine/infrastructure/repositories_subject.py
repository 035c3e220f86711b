# feedback_engine/infrastructure/repositories_subject.py
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..domain.models import SubjectContext
from .exceptions import SubjectNotFoundError
from .logging import log_database_operation as log_op
from .models import SubjectORM
from .repositories_base import BaseRepository as GenericBaseRepository


def to_subject_context(row: SubjectORM) -> SubjectContext:
    return SubjectContext(
        subject_id=row.id,
        student_name=row.student_name,
        company_name=row.company_name,
        company_address=row.company_address,
        supervisor_name=row.supervisor_name,
        supervisor_email=row.supervisor_email,
        program_name=row.program_name,
        department_name=row.department_name,
        semester=row.semester,
        year_level=row.year_level,
        total_ojt_hours=row.total_ojt_hours,
        start_date=row.start_date,
        end_date=row.end_date,
    )


class SubjectRepo(GenericBaseRepository[SubjectORM]):
    model = SubjectORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("subject.get_required")
    def get_by_id_required(self, id_: Any) -> SubjectORM:
        obj = self.get(id_)
        if obj is None:
            raise SubjectNotFoundError(id_)
        return obj

    @log_op("subject.create")
    def create(self, **fields: Any) -> SubjectORM:
        return super().create(**fields)

    @log_op("subject.list_all")
    def list_all(self) -> list[SubjectORM]:
        return self.s.query(SubjectORM).order_by(SubjectORM.student_name, SubjectORM.id).all()
