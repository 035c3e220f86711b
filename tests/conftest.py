from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_ENVIRONMENT", "testing")

from collections.abc import Iterator, Sequence  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from feedback_engine.application import templates as template_service  # noqa: E402
from feedback_engine.domain.models import TemplateKind, TemplateSnapshot  # noqa: E402
from feedback_engine.infrastructure.config import StorageConfig  # noqa: E402
from feedback_engine.infrastructure.models import Base, SubjectORM  # noqa: E402
from feedback_engine.infrastructure.notifications import RecordingNotifier  # noqa: E402
from feedback_engine.infrastructure.storage import LocalBlobStore  # noqa: E402
from feedback_engine.web.dependencies import get_db_session  # noqa: E402
from feedback_engine.web.main import create_application  # noqa: E402

EDITOR_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}


@pytest.fixture()
def engine():
    # one shared connection so every session (and the TestClient thread) sees the same database
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def SessionLocal(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@pytest.fixture()
def session(SessionLocal) -> Iterator[Session]:
    s = SessionLocal()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture()
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(
        StorageConfig(blob_dir=str(tmp_path / "blobs"), public_base_url="http://testserver/blobs")
    )


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def client(SessionLocal, blob_store, notifier) -> Iterator[TestClient]:
    app = create_application()

    def override_get_db_session():
        s = SessionLocal()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.state.blob_store = blob_store
    app.state.notifier = notifier
    with TestClient(app) as test_client:
        yield test_client


def _code_sequence(prefix: str = "CODE") -> Iterator[str]:
    for n in count(1):
        yield f"{prefix}{n:04d}"


@pytest.fixture()
def codes():
    """Deterministic code factory for grant tests."""
    seq = _code_sequence()
    return lambda: next(seq)


def make_subject(session: Session, subject_id: int | None = None, name: str = "Maria Santos") -> int:
    subject = SubjectORM(
        id=subject_id,
        student_name=name,
        company_name="Northwind Systems",
        supervisor_name="J. Reyes",
        supervisor_email="j.reyes@northwind.example",
    )
    session.add(subject)
    session.flush()
    return subject.id


def make_rating_template(
    session: Session, categories: dict[str, Sequence[str]], name: str = "OJT Appraisal"
) -> TemplateSnapshot:
    """Appraisal template whose latest version holds exactly ``categories``."""
    snap = template_service.create_template(session, TemplateKind.APPRAISAL, name)
    for order, (category_name, questions) in enumerate(categories.items()):
        snap = template_service.add_category(session, snap.template_id, category_name, order)
        category = next(c for c in snap.categories if c.display_order == order)
        snap = template_service.set_questions(session, snap.template_id, category.id, list(questions))
    return snap


def make_flat_template(
    session: Session,
    questions: Sequence[str],
    kind: TemplateKind = TemplateKind.SUPERVISOR_FEEDBACK,
) -> TemplateSnapshot:
    snap = template_service.create_template(session, kind)
    return template_service.set_questions(session, snap.template_id, None, list(questions))
