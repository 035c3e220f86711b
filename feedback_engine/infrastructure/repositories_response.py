# feedback_engine/infrastructure/repositories_response.py
from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..domain.models import Answer, ResponseRecord, TemplateKind
from .exceptions import AlreadySubmittedError
from .logging import log_database_operation as log_op
from .models import ResponseAnswerORM, ResponseORM, SubjectORM
from .repositories_base import BaseRepository as GenericBaseRepository


def to_response_record(row: ResponseORM, question_texts: dict[int, str] | None = None) -> ResponseRecord:
    kind = TemplateKind(row.kind)
    answers = tuple(
        Answer(a.question_id, a.rating if a.rating is not None else a.choice)
        for a in row.answers
    )
    return ResponseRecord(
        id=row.id,
        grant_code=row.grant_code,
        subject_id=row.subject_id,
        template_id=row.template_id,
        kind=kind,
        bound_version=row.bound_version,
        answers=answers,
        signature_ref=row.signature_ref,
        submitted_at=row.submitted_at,
        comments=row.comments,
        other_comments=row.other_comments,
        total_points=row.total_points,
        question_texts=question_texts or {},
    )


class ResponseRepo(GenericBaseRepository[ResponseORM]):
    """Append-only store of submitted responses and their answers."""

    model = ResponseORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("response.insert")
    def insert(
        self,
        *,
        grant_code: str,
        subject_id: int,
        template_id: int,
        kind: TemplateKind,
        bound_version: int,
        answers: Sequence[Answer],
        signature_ref: str,
        comments: str | None = None,
        other_comments: str | None = None,
        total_points: int | None = None,
    ) -> ResponseORM:
        row = ResponseORM(
            grant_code=grant_code,
            subject_id=subject_id,
            template_id=template_id,
            kind=kind.value,
            bound_version=bound_version,
            signature_ref=signature_ref,
            comments=comments,
            other_comments=other_comments,
            total_points=total_points,
        )
        for position, answer in enumerate(answers):
            if kind.is_rating:
                row.answers.append(
                    ResponseAnswerORM(question_id=answer.question_id, position=position, rating=int(answer.value))
                )
            else:
                row.answers.append(
                    ResponseAnswerORM(question_id=answer.question_id, position=position, choice=str(answer.value))
                )
        try:
            self.s.add(row)
            self.s.flush()
            return row
        except SQLIntegrityError as e:
            # responses.grant_code is unique: a second row for the same grant lost the race
            if "grant_code" in str(e).lower() or "unique" in str(e).lower():
                raise AlreadySubmittedError(grant_code) from e
            self._handle_error(e, "response.insert")
        except SQLAlchemyError as e:
            self._handle_error(e, "response.insert")

    def _with_answers(self):
        return self.s.query(ResponseORM).options(selectinload(ResponseORM.answers))

    @log_op("response.get_with_answers")
    def get_with_answers(self, response_id: int) -> ResponseORM | None:
        return self._with_answers().filter(ResponseORM.id == response_id).one_or_none()

    @log_op("response.latest_for")
    def latest_for(self, subject_id: int, template_id: int) -> ResponseORM | None:
        return (
            self._with_answers()
            .filter(ResponseORM.subject_id == subject_id, ResponseORM.template_id == template_id)
            .order_by(ResponseORM.submitted_at.desc(), ResponseORM.id.desc())
            .limit(1)
            .one_or_none()
        )

    @log_op("response.list_for_kind")
    def list_for_kind(
        self,
        kind: TemplateKind,
        *,
        template_id: int | None = None,
        subject_ids: Sequence[int] | None = None,
    ) -> list[ResponseORM]:
        q = self._with_answers().filter(ResponseORM.kind == kind.value)
        if template_id is not None:
            q = q.filter(ResponseORM.template_id == template_id)
        if subject_ids is not None:
            q = q.filter(ResponseORM.subject_id.in_(list(subject_ids)))
        return list(q.order_by(ResponseORM.submitted_at.desc(), ResponseORM.id.desc()).all())

    @log_op("response.unanswered_subjects")
    def unanswered_subjects(self, template_id: int) -> list[SubjectORM]:
        """Subjects with no response against ``template_id``."""
        answered = exists(
            select(ResponseORM.id).where(
                ResponseORM.subject_id == SubjectORM.id, ResponseORM.template_id == template_id
            )
        )
        return (
            self.s.query(SubjectORM)
            .filter(~answered)
            .order_by(SubjectORM.student_name, SubjectORM.id)
            .all()
        )
