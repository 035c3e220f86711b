from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

TEMPLATE_KINDS = ("appraisal", "supervisor-feedback", "student-feedback")
GRANT_STATUSES = ("pending", "consumed", "expired")


class Base(DeclarativeBase):
    pass


class TemplateORM(Base):
    __tablename__ = "templates"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    current_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "kind IN ('appraisal', 'supervisor-feedback', 'student-feedback')",
            name="ck_template_kind",
        ),
        CheckConstraint("current_version >= 1", name="ck_template_current_version"),
    )

    versions: Mapped[list[TemplateVersionORM]] = relationship(
        back_populates="template", cascade="all, delete", order_by="TemplateVersionORM.version"
    )


class TemplateVersionORM(Base):
    """One immutable revision of a template. Rows are only ever inserted."""

    __tablename__ = "template_versions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("template_id", "version", name="uq_template_version"),
        CheckConstraint("version >= 1", name="ck_template_version_positive"),
    )

    template: Mapped[TemplateORM] = relationship(back_populates="versions")
    category_links: Mapped[list[VersionCategoryORM]] = relationship(
        back_populates="template_version",
        cascade="all, delete",
        order_by="VersionCategoryORM.display_order",
    )
    question_links: Mapped[list[VersionQuestionORM]] = relationship(
        back_populates="template_version",
        cascade="all, delete",
        order_by="VersionQuestionORM.position",
    )


class CategoryORM(Base):
    """A named category. Immutable: a rename inserts a new row."""

    __tablename__ = "categories"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )


class QuestionORM(Base):
    """A question text. Immutable: editing the text inserts a new row."""

    __tablename__ = "questions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )


class VersionCategoryORM(Base):
    __tablename__ = "version_categories"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    version_id: Mapped[int] = mapped_column(
        ForeignKey("template_versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("version_id", "category_id", name="uq_version_category"),
        UniqueConstraint("version_id", "display_order", name="uq_version_display_order"),
    )

    template_version: Mapped[TemplateVersionORM] = relationship(back_populates="category_links")
    category: Mapped[CategoryORM] = relationship()


class VersionQuestionORM(Base):
    __tablename__ = "version_questions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    version_id: Mapped[int] = mapped_column(
        ForeignKey("template_versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="RESTRICT"), nullable=False
    )
    # NULL for flat (fixed-choice) templates
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("version_id", "question_id", name="uq_version_question"),)

    template_version: Mapped[TemplateVersionORM] = relationship(back_populates="question_links")
    question: Mapped[QuestionORM] = relationship()


class SubjectORM(Base):
    """Read-only projection of an OJT placement, owned by the portal."""

    __tablename__ = "subjects"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    supervisor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supervisor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    program_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    semester: Mapped[str | None] = mapped_column(String(64), nullable=True)
    year_level: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_ojt_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class AccessGrantORM(Base):
    __tablename__ = "access_grants"
    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id: Mapped[int] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bound_version: Mapped[int] = mapped_column(Integer, nullable=False)
    respondent_role: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    issued_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'consumed', 'expired')", name="ck_grant_status"
        ),
    )

    template: Mapped[TemplateORM] = relationship()
    subject: Mapped[SubjectORM] = relationship()


class ResponseORM(Base):
    """A submitted form. Append-only: rows are never updated."""

    __tablename__ = "responses"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    grant_code: Mapped[str] = mapped_column(
        ForeignKey("access_grants.code", ondelete="RESTRICT"), nullable=False, unique=True
    )
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id: Mapped[int] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    bound_version: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    other_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature_ref: Mapped[str] = mapped_column(String(512), nullable=False)
    total_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False, index=True
    )

    answers: Mapped[list[ResponseAnswerORM]] = relationship(
        back_populates="response", cascade="all, delete", order_by="ResponseAnswerORM.position"
    )


class ResponseAnswerORM(Base):
    __tablename__ = "response_answers"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    response_id: Mapped[int] = mapped_column(
        ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="RESTRICT"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    choice: Mapped[str | None] = mapped_column(String(2), nullable=True)

    __table_args__ = (
        UniqueConstraint("response_id", "question_id", name="uq_response_question"),
        CheckConstraint(
            "(rating IS NULL OR (rating BETWEEN 1 AND 5)) "
            "AND (choice IS NULL OR choice IN ('SA', 'A', 'N', 'D', 'SD')) "
            "AND (rating IS NULL OR choice IS NULL)",
            name="ck_answer_value",
        ),
    )

    response: Mapped[ResponseORM] = relationship(back_populates="answers")
    question: Mapped[QuestionORM] = relationship()
