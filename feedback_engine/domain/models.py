from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class TemplateKind(str, Enum):
    APPRAISAL = "appraisal"
    SUPERVISOR_FEEDBACK = "supervisor-feedback"
    STUDENT_FEEDBACK = "student-feedback"

    @property
    def is_rating(self) -> bool:
        """Rating templates have categories of 1–5 questions; the others are flat SA..SD forms."""
        return self is TemplateKind.APPRAISAL

    @property
    def form_path(self) -> str:
        """Frontend route the respondent link points at."""
        return "appraisal" if self is TemplateKind.APPRAISAL else "feedback"


class GrantStatus(str, Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    EXPIRED = "expired"


CHOICES: tuple[str, ...] = ("SA", "A", "N", "D", "SD")
RATING_MIN = 1
RATING_MAX = 5


@dataclass(slots=True, frozen=True)
class Question:
    id: int
    text: str


@dataclass(slots=True, frozen=True)
class Category:
    id: int
    name: str
    display_order: int
    questions: tuple[Question, ...] = ()


@dataclass(slots=True, frozen=True)
class TemplateSnapshot:
    """
    Fully materialised, read-only view of one template version.

    Rating templates carry ``categories`` (in display order) and leave
    ``questions`` empty; flat templates do the opposite.
    """

    template_id: int
    kind: TemplateKind
    name: str
    version: int
    created_at: datetime
    categories: tuple[Category, ...] = ()
    questions: tuple[Question, ...] = ()

    def iter_questions(self) -> tuple[Question, ...]:
        """Every question in render order."""
        if self.kind.is_rating:
            return tuple(q for c in self.categories for q in c.questions)
        return self.questions

    @property
    def question_ids(self) -> tuple[int, ...]:
        return tuple(q.id for q in self.iter_questions())

    def category(self, category_id: int) -> Category | None:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass(slots=True, frozen=True)
class SubjectContext:
    """Display fields for form headers and printouts. Supplied by the portal."""

    subject_id: int
    student_name: str
    company_name: str | None = None
    company_address: str | None = None
    supervisor_name: str | None = None
    supervisor_email: str | None = None
    program_name: str | None = None
    department_name: str | None = None
    semester: str | None = None
    year_level: str | None = None
    total_ojt_hours: float | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(slots=True, frozen=True)
class GrantView:
    code: str
    subject_id: int
    template_id: int
    bound_version: int
    respondent_role: str
    issued_at: datetime
    snapshot: TemplateSnapshot
    subject: SubjectContext


@dataclass(slots=True)
class AccessGrant:
    code: str
    subject_id: int
    template_id: int
    bound_version: int
    respondent_role: str
    status: GrantStatus
    issued_at: datetime
    recipient: str | None = None
    consumed_at: datetime | None = None
    expired_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Answer:
    question_id: int
    value: int | str


@dataclass(slots=True, frozen=True)
class ResponseRecord:
    """A committed response. Answers are in the bound snapshot's render order."""

    id: int
    grant_code: str
    subject_id: int
    template_id: int
    kind: TemplateKind
    bound_version: int
    answers: tuple[Answer, ...]
    signature_ref: str
    submitted_at: datetime
    comments: str | None = None
    other_comments: str | None = None
    total_points: int | None = None
    question_texts: dict[int, str] = field(default_factory=dict)

    def answers_map(self) -> dict[int, int | str]:
        return {a.question_id: a.value for a in self.answers}


@dataclass(slots=True)
class DraftQuestion:
    text: str
    id: int | None = None  # None means "insert a new question row"


@dataclass(slots=True)
class DraftCategory:
    name: str
    display_order: int
    questions: list[DraftQuestion] = field(default_factory=list)
    id: int | None = None  # None means "insert a new category row"


@dataclass(slots=True)
class TemplateDraft:
    """
    Mutable copy of a snapshot that an edit is applied to before it is
    written out as the next version. Untouched entities keep their ids.
    """

    categories: list[DraftCategory] = field(default_factory=list)
    questions: list[DraftQuestion] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: TemplateSnapshot) -> TemplateDraft:
        return cls(
            categories=[
                DraftCategory(
                    id=c.id,
                    name=c.name,
                    display_order=c.display_order,
                    questions=[DraftQuestion(id=q.id, text=q.text) for q in c.questions],
                )
                for c in snapshot.categories
            ],
            questions=[DraftQuestion(id=q.id, text=q.text) for q in snapshot.questions],
        )

    def find_category(self, category_id: int) -> DraftCategory | None:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None
