from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from ..application import templates as template_service
from ..domain.models import TemplateKind, TemplateSnapshot
from ..infrastructure.logging import get_logger
from ..infrastructure.repositories import SubjectRepo

logger = get_logger(__name__)

DEMO_APPRAISAL: dict[str, list[str]] = {
    "Work Attitude": [
        "Shows enthusiasm and interest in assigned work",
        "Accepts and acts on constructive criticism",
        "Is punctual and observes working hours",
    ],
    "Communication": [
        "Clarity",
        "Responsiveness",
    ],
    "Technical Competence": [
        "Applies classroom knowledge to actual work",
        "Completes tasks accurately and on time",
    ],
}

DEMO_SUPERVISOR_FEEDBACK: list[str] = [
    "The trainee was adequately prepared by the school for the placement",
    "The coordinator kept in touch with the company during the placement",
    "The company would accept trainees from the program again",
]

DEMO_STUDENT_FEEDBACK: list[str] = [
    "My tasks were related to my program of study",
    "My supervisor gave clear instructions and regular feedback",
    "The company provided a safe working environment",
    "I would recommend this company to other students",
]

DEMO_SUBJECTS: list[dict[str, object]] = [
    {
        "student_name": "Maria Santos",
        "company_name": "Northwind Systems",
        "company_address": "12 Harbor Road",
        "supervisor_name": "J. Reyes",
        "supervisor_email": "j.reyes@northwind.example",
        "program_name": "BS Information Technology",
        "department_name": "College of Computing",
        "semester": "2nd",
        "year_level": "4th",
        "total_ojt_hours": 486.0,
        "start_date": date(2025, 1, 13),
        "end_date": date(2025, 4, 25),
    },
    {
        "student_name": "Paolo Cruz",
        "company_name": "Bayview Logistics",
        "supervisor_name": "A. Lim",
        "supervisor_email": "a.lim@bayview.example",
        "program_name": "BS Computer Science",
        "department_name": "College of Computing",
        "semester": "2nd",
        "year_level": "4th",
        "total_ojt_hours": 300.0,
        "start_date": date(2025, 2, 3),
        "end_date": date(2025, 4, 30),
    },
]


def seed_demo_templates(session: Session, actor: str | None = "seed") -> list[TemplateSnapshot]:
    """Create one active template of each kind with demo content. Returns their latest snapshots."""
    snapshots = []

    snap = template_service.create_template(session, TemplateKind.APPRAISAL, "OJT Appraisal", actor)
    for order, (name, questions) in enumerate(DEMO_APPRAISAL.items()):
        snap = template_service.add_category(session, snap.template_id, name, order, actor=actor)
        category = next(c for c in snap.categories if c.display_order == order)
        snap = template_service.set_questions(session, snap.template_id, category.id, questions, actor=actor)
    snapshots.append(snap)

    for kind, name, questions in (
        (TemplateKind.SUPERVISOR_FEEDBACK, "Supervisor Feedback", DEMO_SUPERVISOR_FEEDBACK),
        (TemplateKind.STUDENT_FEEDBACK, "Student Feedback", DEMO_STUDENT_FEEDBACK),
    ):
        snap = template_service.create_template(session, kind, name, actor)
        snap = template_service.set_questions(session, snap.template_id, None, questions, actor=actor)
        snapshots.append(snap)

    return snapshots


def seed_demo_subjects(session: Session) -> list[int]:
    repo = SubjectRepo(session)
    return [repo.create(**fields).id for fields in DEMO_SUBJECTS]


def seed_demo_data(session: Session) -> dict[str, object]:
    """Seed templates and subjects. The caller commits."""
    snapshots = seed_demo_templates(session)
    subject_ids = seed_demo_subjects(session)
    logger.info(f"Seeded {len(snapshots)} templates and {len(subject_ids)} subjects")
    return {
        "templates": {s.kind.value: (s.template_id, s.version) for s in snapshots},
        "subject_ids": subject_ids,
    }
