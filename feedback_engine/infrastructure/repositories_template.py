# feedback_engine/infrastructure/repositories_template.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..domain.models import (
    Category,
    Question,
    TemplateDraft,
    TemplateKind,
    TemplateSnapshot,
)
from .exceptions import TemplateNotFoundError, TemplateVersionNotFoundError
from .logging import log_database_operation as log_op
from .models import (
    CategoryORM,
    QuestionORM,
    TemplateORM,
    TemplateVersionORM,
    VersionCategoryORM,
    VersionQuestionORM,
)
from .repositories_base import BaseRepository as GenericBaseRepository


class TemplateRepo(GenericBaseRepository[TemplateORM]):
    """
    Repository for templates and their immutable versions.

    Version content lives in link tables (`version_categories`,
    `version_questions`) that point at immutable category and question rows,
    so a version is written once and never updated afterwards.
    """

    model = TemplateORM

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------- Templates -------------------

    @log_op("template.get_required")
    def get_required(self, template_id: int, *, for_update: bool = False) -> TemplateORM:
        stmt = select(TemplateORM).where(TemplateORM.id == template_id)
        if for_update:
            stmt = stmt.with_for_update()
        obj = self.s.execute(stmt).scalar_one_or_none()
        if obj is None:
            raise TemplateNotFoundError(template_id=template_id)
        return obj

    @log_op("template.active_for_kind")
    def active_for_kind(self, kind: TemplateKind) -> TemplateORM | None:
        return (
            self.s.query(TemplateORM)
            .filter(TemplateORM.kind == kind.value, TemplateORM.is_active.is_(True))
            .order_by(TemplateORM.created_at.desc(), TemplateORM.id.desc())
            .limit(1)
            .one_or_none()
        )

    @log_op("template.list")
    def list_templates(self, kind: TemplateKind | None = None) -> list[TemplateORM]:
        q = self.s.query(TemplateORM)
        if kind is not None:
            q = q.filter(TemplateORM.kind == kind.value)
        return list(q.order_by(TemplateORM.kind, TemplateORM.id).all())

    @log_op("template.set_active")
    def set_active(self, template: TemplateORM, is_active: bool) -> TemplateORM:
        if is_active:
            # one active template per kind
            (
                self.s.query(TemplateORM)
                .filter(
                    TemplateORM.kind == template.kind,
                    TemplateORM.id != template.id,
                    TemplateORM.is_active.is_(True),
                )
                .update({TemplateORM.is_active: False}, synchronize_session="fetch")
            )
        template.is_active = is_active
        template.updated_at = datetime.utcnow()
        self.s.flush()
        return template

    # ------------------- Versions -------------------

    @log_op("template.load_snapshot")
    def load_snapshot(self, template: TemplateORM, version: int) -> TemplateSnapshot:
        tv = (
            self.s.query(TemplateVersionORM)
            .options(
                selectinload(TemplateVersionORM.category_links).joinedload(
                    VersionCategoryORM.category
                ),
                selectinload(TemplateVersionORM.question_links).joinedload(
                    VersionQuestionORM.question
                ),
            )
            .filter(
                TemplateVersionORM.template_id == template.id,
                TemplateVersionORM.version == version,
            )
            .one_or_none()
        )
        if tv is None:
            raise TemplateVersionNotFoundError(template.id, version)
        return self._to_snapshot(template, tv)

    @staticmethod
    def _to_snapshot(template: TemplateORM, tv: TemplateVersionORM) -> TemplateSnapshot:
        kind = TemplateKind(template.kind)
        links = sorted(tv.question_links, key=lambda link: link.position)
        if kind.is_rating:
            by_category: dict[int, list[Question]] = {}
            for link in links:
                if link.category_id is None:
                    continue
                by_category.setdefault(link.category_id, []).append(
                    Question(id=link.question.id, text=link.question.text)
                )
            categories = tuple(
                Category(
                    id=cl.category.id,
                    name=cl.category.name,
                    display_order=cl.display_order,
                    questions=tuple(by_category.get(cl.category_id, ())),
                )
                for cl in sorted(tv.category_links, key=lambda cl: cl.display_order)
            )
            questions: tuple[Question, ...] = ()
        else:
            categories = ()
            questions = tuple(Question(id=link.question.id, text=link.question.text) for link in links)

        return TemplateSnapshot(
            template_id=template.id,
            kind=kind,
            name=template.name,
            version=tv.version,
            created_at=tv.created_at,
            categories=categories,
            questions=questions,
        )

    @log_op("template.insert_version")
    def insert_version(
        self,
        template: TemplateORM,
        version: int,
        draft: TemplateDraft,
        created_by: str | None = None,
    ) -> TemplateVersionORM:
        """
        Write `draft` as `version` of `template` and make it current.

        Draft entities with an id are linked as-is; entities without one get a
        fresh immutable row first.
        """
        try:
            tv = TemplateVersionORM(template_id=template.id, version=version, created_by=created_by)
            self.s.add(tv)
            self.s.flush()

            position = 0
            for dc in sorted(draft.categories, key=lambda c: c.display_order):
                if dc.id is None:
                    category = CategoryORM(name=dc.name)
                    self.s.add(category)
                    self.s.flush()
                    dc.id = category.id
                self.s.add(
                    VersionCategoryORM(
                        version_id=tv.id, category_id=dc.id, display_order=dc.display_order
                    )
                )
                for dq in dc.questions:
                    self._link_question(tv.id, dq, dc.id, position)
                    position += 1

            for dq in draft.questions:
                self._link_question(tv.id, dq, None, position)
                position += 1

            template.current_version = version
            template.updated_at = datetime.utcnow()
            self.s.flush()
            return tv
        except SQLAlchemyError as e:
            self._handle_error(e, "template.insert_version")

    def _link_question(
        self, version_id: int, dq, category_id: int | None, position: int
    ) -> None:
        if dq.id is None:
            question = QuestionORM(text=dq.text)
            self.s.add(question)
            self.s.flush()
            dq.id = question.id
        self.s.add(
            VersionQuestionORM(
                version_id=version_id,
                question_id=dq.id,
                category_id=category_id,
                position=position,
            )
        )

    @log_op("template.list_versions")
    def list_versions(self, template_id: int) -> list[int]:
        rows = (
            self.s.query(TemplateVersionORM.version)
            .filter(TemplateVersionORM.template_id == template_id)
            .order_by(TemplateVersionORM.version)
            .all()
        )
        return [row.version for row in rows]

    @log_op("template.question_texts")
    def question_texts(self, question_ids: list[int]) -> dict[int, str]:
        if not question_ids:
            return {}
        rows = self.s.query(QuestionORM.id, QuestionORM.text).filter(
            QuestionORM.id.in_(question_ids)
        )
        return {row.id: row.text for row in rows}


__all__ = ["TemplateRepo"]
