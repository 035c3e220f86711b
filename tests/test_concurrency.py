from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import make_rating_template, make_subject

from feedback_engine.application import grants as grant_service
from feedback_engine.application import ledger
from feedback_engine.infrastructure.config import DatabaseConfig
from feedback_engine.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    initialise_database,
)
from feedback_engine.infrastructure.exceptions import AlreadySubmittedError
from feedback_engine.infrastructure.models import AccessGrantORM, ResponseORM
from feedback_engine.infrastructure.uow import UnitOfWork

WORKERS = 8


@pytest.fixture()
def file_db(tmp_path):
    config = DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "race.db"), busy_timeout_seconds=30)
    engine = create_database_engine(config)
    initialise_database(engine)
    yield create_session_factory(engine)
    engine.dispose()


def test_concurrent_submissions_record_exactly_one_response(file_db):
    uow = UnitOfWork(file_db)
    with uow.begin() as s:
        snap = make_rating_template(s, {"Communication": ["Clarity", "Responsiveness"]})
        subject_id = make_subject(s, 42)
        grant_service.issue_grant(s, subject_id, snap.template_id, "supervisor", code_factory=lambda: "RACE01")
    answers = {q.id: 4 for q in snap.iter_questions()}

    barrier = threading.Barrier(WORKERS)

    def submit(n: int) -> str:
        barrier.wait()
        try:
            with uow.begin() as s:
                ledger.submit_response(s, "RACE01", answers, signature_ref=f"sig://{n}")
            return "ok"
        except AlreadySubmittedError:
            return "already_submitted"

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = list(pool.map(submit, range(WORKERS)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_submitted") == WORKERS - 1

    with file_db() as s:
        assert s.query(ResponseORM).filter_by(grant_code="RACE01").count() == 1
        assert s.get(AccessGrantORM, "RACE01").status == "consumed"
