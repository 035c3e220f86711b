"""
Submission Ledger: the append-only record of submitted forms.

``submit_response`` is the one place where a grant is consumed. The consume
step and the response insert run in the caller's transaction; the caller
commits once both have succeeded and rolls back otherwise, so a consumed
grant without a response (or the reverse) is never committed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.orm import Session

from ..domain.models import ResponseRecord, SubjectContext, TemplateKind, TemplateSnapshot
from ..domain.schemas import SubmissionInput, validate_input
from ..domain.services import compute_aggregate, sum_ratings, validate_submission
from ..infrastructure.exceptions import (
    AlreadySubmittedError,
    GrantAlreadyConsumedError,
    NotFoundError,
    ValidationError,
)
from ..infrastructure.logging import get_logger, log_operation, mask_code, set_context
from ..infrastructure.models import ResponseORM
from ..infrastructure.repositories import (
    ResponseRepo,
    TemplateRepo,
    to_response_record,
    to_subject_context,
)
from ..infrastructure.subjects import SubjectDirectory
from .grants import consume_grant, resolve_grant
from .templates import get_active_template

logger = get_logger(__name__)

__all__ = [
    "submit_response",
    "compute_aggregate",
    "get_latest_response",
    "get_latest_response_for_kind",
    "get_response_detail",
    "list_responses",
    "list_unanswered_subjects",
]


def _texts_from_snapshot(snapshot: TemplateSnapshot) -> dict[int, str]:
    return {q.id: q.text for q in snapshot.iter_questions()}


@log_operation("submit_response")
def submit_response(
    session: Session,
    code: str,
    answers: Mapping[Any, Any],
    *,
    comments: str | None = None,
    other_comments: str | None = None,
    signature_ref: str | None = None,
    subjects: SubjectDirectory | None = None,
) -> ResponseRecord:
    """
    Validate and record a respondent's answers against a grant.

    Steps: resolve the grant, sanitise the free-text fields, validate the
    answers against the bound snapshot, consume the grant, insert the
    response. Nothing is committed here.

    Raises:
        InvalidCodeError / GrantExpiredError: the code cannot be used
        AlreadySubmittedError: the grant was consumed, possibly by a
            concurrent submission that won the race
        AnswerValidationError: the answers do not fit the bound version
        ValidationError: a comment is longer than the configured limit
    """
    try:
        view = resolve_grant(session, code, subjects=subjects)
    except GrantAlreadyConsumedError as e:
        raise AlreadySubmittedError(code) from e

    set_context(subject_id=view.subject_id, template_id=view.template_id)

    validation_result = validate_input(
        SubmissionInput,
        {"comments": comments, "other_comments": other_comments, "signature_ref": signature_ref},
    )
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        logger.warning(f"Submission validation failed: {error_msg}")
        raise ValidationError("submission", error_msg)
    data = validation_result.data or {}

    ordered = validate_submission(view.snapshot, answers, data.get("signature_ref"))

    try:
        consume_grant(session, code)
    except GrantAlreadyConsumedError as e:
        logger.info(f"Grant {mask_code(code)} consumed by another submission")
        raise AlreadySubmittedError(code) from e

    kind = view.snapshot.kind
    row = ResponseRepo(session).insert(
        grant_code=code,
        subject_id=view.subject_id,
        template_id=view.template_id,
        kind=kind,
        bound_version=view.bound_version,
        answers=ordered,
        signature_ref=data["signature_ref"],
        comments=data.get("comments"),
        other_comments=data.get("other_comments"),
        total_points=sum_ratings(ordered) if kind.is_rating else None,
    )
    logger.info(
        f"Recorded response {row.id} for grant {mask_code(code)} "
        f"(template {view.template_id} v{view.bound_version})"
    )
    return to_response_record(row, _texts_from_snapshot(view.snapshot))


def _records(session: Session, rows: Sequence[ResponseORM]) -> list[ResponseRecord]:
    question_ids = sorted({a.question_id for row in rows for a in row.answers})
    texts = TemplateRepo(session).question_texts(question_ids)
    return [to_response_record(row, texts) for row in rows]


@log_operation("get_latest_response")
def get_latest_response(session: Session, subject_id: int, template_id: int) -> ResponseRecord | None:
    """Most recently submitted response for (subject, template), or None."""
    row = ResponseRepo(session).latest_for(subject_id, template_id)
    if row is None:
        return None
    return _records(session, [row])[0]


@log_operation("get_latest_response_for_kind")
def get_latest_response_for_kind(
    session: Session, subject_id: int, kind: TemplateKind | str
) -> ResponseRecord | None:
    template = get_active_template(session, kind)
    return get_latest_response(session, subject_id, template.id)


@log_operation("get_response_detail")
def get_response_detail(session: Session, response_id: int) -> ResponseRecord:
    row = ResponseRepo(session).get_with_answers(response_id)
    if row is None:
        raise NotFoundError(
            f"Response with ID {response_id} not found", details={"response_id": response_id}
        )
    return _records(session, [row])[0]


@log_operation("list_responses")
def list_responses(
    session: Session,
    kind: TemplateKind | str,
    subject_ids: Sequence[int] | None = None,
    template_id: int | None = None,
) -> list[ResponseRecord]:
    """All responses of ``kind``, newest first."""
    rows = ResponseRepo(session).list_for_kind(
        TemplateKind(kind), template_id=template_id, subject_ids=subject_ids
    )
    return _records(session, rows)


@log_operation("list_unanswered_subjects")
def list_unanswered_subjects(session: Session, kind: TemplateKind | str) -> list[SubjectContext]:
    """Subjects that have no response against the active template of ``kind``."""
    template = get_active_template(session, kind)
    return [to_subject_context(row) for row in ResponseRepo(session).unanswered_subjects(template.id)]
