from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from feedback_engine.domain.models import (
    GrantView,
    ResponseRecord,
    SubjectContext,
    TemplateSnapshot,
)


class Question(BaseModel):
    id: int
    text: str


class Category(BaseModel):
    id: int
    name: str
    display_order: int
    questions: list[Question] = []


class TemplateSnapshotModel(BaseModel):
    template_id: int
    kind: str
    name: str
    version: int
    created_at: datetime
    categories: list[Category] = []
    questions: list[Question] = []

    @classmethod
    def from_snapshot(cls, snapshot: TemplateSnapshot) -> TemplateSnapshotModel:
        return cls(
            template_id=snapshot.template_id,
            kind=snapshot.kind.value,
            name=snapshot.name,
            version=snapshot.version,
            created_at=snapshot.created_at,
            categories=[
                Category(
                    id=c.id,
                    name=c.name,
                    display_order=c.display_order,
                    questions=[Question(id=q.id, text=q.text) for q in c.questions],
                )
                for c in snapshot.categories
            ],
            questions=[Question(id=q.id, text=q.text) for q in snapshot.questions],
        )


class TemplateSummary(BaseModel):
    id: int
    kind: str
    name: str
    is_active: bool
    current_version: int
    created_at: datetime
    updated_at: datetime


class TemplateCreateRequest(BaseModel):
    kind: str
    name: Optional[str] = None


class TemplateUpdateRequest(BaseModel):
    is_active: bool


class CategoryCreateRequest(BaseModel):
    name: str
    display_order: int = Field(..., ge=0)


class CategoryRenameRequest(BaseModel):
    name: str


class CategoryOrderRequest(BaseModel):
    category_ids: list[int]


class QuestionsSetRequest(BaseModel):
    category_id: Optional[int] = None
    questions: list[str]


class SubjectContextModel(BaseModel):
    subject_id: int
    student_name: str
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    supervisor_name: Optional[str] = None
    supervisor_email: Optional[str] = None
    program_name: Optional[str] = None
    department_name: Optional[str] = None
    semester: Optional[str] = None
    year_level: Optional[str] = None
    total_ojt_hours: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_context(cls, subject: SubjectContext) -> SubjectContextModel:
        return cls(
            subject_id=subject.subject_id,
            student_name=subject.student_name,
            company_name=subject.company_name,
            company_address=subject.company_address,
            supervisor_name=subject.supervisor_name,
            supervisor_email=subject.supervisor_email,
            program_name=subject.program_name,
            department_name=subject.department_name,
            semester=subject.semester,
            year_level=subject.year_level,
            total_ojt_hours=subject.total_ojt_hours,
            start_date=subject.start_date,
            end_date=subject.end_date,
        )


class GrantIssueRequest(BaseModel):
    respondent_role: str = "supervisor"
    recipient: Optional[str] = None


class GrantIssued(BaseModel):
    code: str
    subject_id: int
    template_id: int
    bound_version: int
    respondent_role: str
    status: str
    issued_at: datetime
    link: str


class GrantStatusModel(BaseModel):
    code: str
    status: str
    consumed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None


class GrantViewModel(BaseModel):
    code: str
    subject_id: int
    template_id: int
    bound_version: int
    respondent_role: str
    issued_at: datetime
    template: TemplateSnapshotModel
    subject: SubjectContextModel

    @classmethod
    def from_view(cls, view: GrantView) -> GrantViewModel:
        return cls(
            code=view.code,
            subject_id=view.subject_id,
            template_id=view.template_id,
            bound_version=view.bound_version,
            respondent_role=view.respondent_role,
            issued_at=view.issued_at,
            template=TemplateSnapshotModel.from_snapshot(view.snapshot),
            subject=SubjectContextModel.from_context(view.subject),
        )


class SignatureUploaded(BaseModel):
    ref: str
    url: str


class SubmissionRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)
    comments: Optional[str] = None
    other_comments: Optional[str] = None
    signature_ref: Optional[str] = None


class AnswerModel(BaseModel):
    question_id: int
    question: Optional[str] = None
    value: Union[int, str]


class ResponseModel(BaseModel):
    id: int
    grant_code: str
    subject_id: int
    template_id: int
    kind: str
    bound_version: int
    answers: list[AnswerModel]
    comments: Optional[str] = None
    other_comments: Optional[str] = None
    signature_ref: str
    signature_url: Optional[str] = None
    total_points: Optional[int] = None
    aggregate: Optional[int] = None
    submitted_at: datetime

    @classmethod
    def from_record(
        cls,
        record: ResponseRecord,
        aggregate: Optional[int] = None,
        signature_url: Optional[str] = None,
    ) -> ResponseModel:
        return cls(
            id=record.id,
            grant_code=record.grant_code,
            subject_id=record.subject_id,
            template_id=record.template_id,
            kind=record.kind.value,
            bound_version=record.bound_version,
            answers=[
                AnswerModel(
                    question_id=a.question_id,
                    question=record.question_texts.get(a.question_id),
                    value=a.value,
                )
                for a in record.answers
            ],
            comments=record.comments,
            other_comments=record.other_comments,
            signature_ref=record.signature_ref,
            signature_url=signature_url,
            total_points=record.total_points,
            aggregate=aggregate,
            submitted_at=record.submitted_at,
        )


class ErrorDetail(BaseModel):
    code: str
    message: str
    question_ids: list[int] = []
