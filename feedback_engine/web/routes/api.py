from __future__ import annotations

import io
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedback_engine.application import grants as grant_service
from feedback_engine.application import ledger
from feedback_engine.application import templates as template_service
from feedback_engine.domain.models import TemplateKind
from feedback_engine.infrastructure.exceptions import (
    AlreadySubmittedError,
    AnswerValidationError,
    DatabaseError,
    FeedbackEngineError,
    GrantAlreadyConsumedError,
    GrantExpiredError,
    InvalidCategoryError,
    InvalidCodeError,
    InvalidOrderError,
    InvalidQuestionError,
    MissingAnswersError,
    MissingSignatureError,
    NotFoundError,
    PermissionError,
    StorageError,
    UnexpectedAnswersError,
    ValidationError,
    handle_database_error,
    log_error_details,
)
from feedback_engine.infrastructure.storage import REF_PREFIX, BlobStore
from feedback_engine.utils.exports import make_json_export_payload, make_xlsx_export_bytes
from feedback_engine.web.dependencies import (
    Actor,
    get_actor,
    get_blob_store,
    get_db_session,
    get_notifier,
    require_editor,
)
from feedback_engine.web.schemas import (
    CategoryCreateRequest,
    CategoryOrderRequest,
    CategoryRenameRequest,
    ErrorDetail,
    GrantIssued,
    GrantIssueRequest,
    GrantStatusModel,
    GrantViewModel,
    QuestionsSetRequest,
    ResponseModel,
    SignatureUploaded,
    SubjectContextModel,
    SubmissionRequest,
    TemplateCreateRequest,
    TemplateSnapshotModel,
    TemplateSummary,
    TemplateUpdateRequest,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

# first match wins, so subclasses come before their bases
_ERROR_MAP: list[tuple[type[FeedbackEngineError], int, str]] = [
    (AlreadySubmittedError, status.HTTP_409_CONFLICT, "already_submitted"),
    (GrantAlreadyConsumedError, status.HTTP_409_CONFLICT, "already_consumed"),
    (GrantExpiredError, status.HTTP_410_GONE, "expired"),
    (InvalidCodeError, status.HTTP_404_NOT_FOUND, "invalid_code"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (MissingAnswersError, status.HTTP_422_UNPROCESSABLE_ENTITY, "missing_answers"),
    (UnexpectedAnswersError, status.HTTP_422_UNPROCESSABLE_ENTITY, "unexpected_answers"),
    (MissingSignatureError, status.HTTP_422_UNPROCESSABLE_ENTITY, "missing_signature"),
    (AnswerValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_answer_value"),
    (InvalidOrderError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_order"),
    (InvalidQuestionError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_question"),
    (InvalidCategoryError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_category"),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_input"),
    (StorageError, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_upload"),
    (PermissionError, status.HTTP_403_FORBIDDEN, "forbidden"),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR, "database_error"),
]


def _http_error(exc: FeedbackEngineError) -> HTTPException:
    status_code, code = status.HTTP_400_BAD_REQUEST, "error"
    for error_type, mapped_status, mapped_code in _ERROR_MAP:
        if isinstance(exc, error_type):
            status_code, code = mapped_status, mapped_code
            break
    detail = ErrorDetail(
        code=code,
        message=exc.user_message,
        question_ids=list(getattr(exc, "question_ids", None) or []),
    )
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"Request failed: {log_error_details(exc)}")
    return HTTPException(status_code=status_code, detail=detail.model_dump())


def _commit(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        # e.g. sqlite "database is locked" or a MySQL deadlock
        raise handle_database_error(e, operation) from e


def _signature_url(store: BlobStore, ref: str) -> Optional[str]:
    if ref.startswith(REF_PREFIX):
        return store.resolve(ref)
    return None


def _response_model(record, store: BlobStore) -> ResponseModel:
    return ResponseModel.from_record(
        record,
        aggregate=ledger.compute_aggregate(record),
        signature_url=_signature_url(store, record.signature_ref),
    )


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Template Store
# ---------------------------------------------------------------------------


@router.get("/templates", response_model=list[TemplateSummary])
def list_templates(
    kind: Optional[TemplateKind] = Query(default=None),
    db: Session = Depends(get_db_session),
) -> list[TemplateSummary]:
    rows = template_service.list_templates(db, kind)
    return [
        TemplateSummary(
            id=row.id,
            kind=row.kind,
            name=row.name,
            is_active=row.is_active,
            current_version=row.current_version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        for row in rows
    ]


@router.post("/templates", response_model=TemplateSnapshotModel, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreateRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    try:
        snapshot = template_service.create_template(db, payload.kind, payload.name, created_by=actor.id)
        _commit(db, "template.create")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    return TemplateSnapshotModel.from_snapshot(snapshot)


@router.patch("/templates/{template_id}", response_model=TemplateSummary)
def update_template(
    template_id: int,
    payload: TemplateUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSummary:
    try:
        row = template_service.set_active(db, template_id, payload.is_active)
        _commit(db, "template.update")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    return TemplateSummary(
        id=row.id,
        kind=row.kind,
        name=row.name,
        is_active=row.is_active,
        current_version=row.current_version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


@router.get("/template/{kind}/latest", response_model=TemplateSnapshotModel)
def get_latest_template(kind: TemplateKind, db: Session = Depends(get_db_session)) -> TemplateSnapshotModel:
    try:
        snapshot = template_service.get_active(db, kind)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return TemplateSnapshotModel.from_snapshot(snapshot)


@router.get("/template/{kind}/versions/{version}", response_model=TemplateSnapshotModel)
def get_template_version(
    kind: TemplateKind,
    version: int,
    db: Session = Depends(get_db_session),
) -> TemplateSnapshotModel:
    try:
        template = template_service.get_active_template(db, kind)
        snapshot = template_service.get_version(db, template.id, version)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return TemplateSnapshotModel.from_snapshot(snapshot)


# ---------------------------------------------------------------------------
# Template Editor
# ---------------------------------------------------------------------------


def _edit(db: Session, kind: TemplateKind, operation, *args, actor: Actor) -> TemplateSnapshotModel:
    try:
        template = template_service.get_active_template(db, kind)
        snapshot = operation(db, template.id, *args, actor=actor.id)
        _commit(db, "template.edit")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    return TemplateSnapshotModel.from_snapshot(snapshot)


@router.post("/template/{kind}/categories", response_model=TemplateSnapshotModel)
def add_category(
    kind: TemplateKind,
    payload: CategoryCreateRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    return _edit(db, kind, template_service.add_category, payload.name, payload.display_order, actor=actor)


@router.patch("/template/{kind}/categories/{category_id}", response_model=TemplateSnapshotModel)
def rename_category(
    kind: TemplateKind,
    category_id: int,
    payload: CategoryRenameRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    return _edit(db, kind, template_service.rename_category, category_id, payload.name, actor=actor)


@router.delete("/template/{kind}/categories/{category_id}", response_model=TemplateSnapshotModel)
def remove_category(
    kind: TemplateKind,
    category_id: int,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    return _edit(db, kind, template_service.remove_category, category_id, actor=actor)


@router.put("/template/{kind}/categories/order", response_model=TemplateSnapshotModel)
def reorder_categories(
    kind: TemplateKind,
    payload: CategoryOrderRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    return _edit(db, kind, template_service.reorder_categories, payload.category_ids, actor=actor)


@router.post("/template/{kind}/questions", response_model=TemplateSnapshotModel)
def set_questions(
    kind: TemplateKind,
    payload: QuestionsSetRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> TemplateSnapshotModel:
    return _edit(
        db, kind, template_service.set_questions, payload.category_id, payload.questions, actor=actor
    )


# ---------------------------------------------------------------------------
# Access grants
# ---------------------------------------------------------------------------


@router.post(
    "/grant/{subject_id}/{kind}", response_model=GrantIssued, status_code=status.HTTP_201_CREATED
)
def issue_grant(
    subject_id: int,
    kind: TemplateKind,
    payload: Optional[GrantIssueRequest] = None,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
    notifier=Depends(get_notifier),
) -> GrantIssued:
    payload = payload or GrantIssueRequest()
    try:
        template = template_service.get_active_template(db, kind)
        grant = grant_service.issue_grant(
            db,
            subject_id,
            template.id,
            payload.respondent_role,
            recipient=payload.recipient,
            issued_by=actor.id,
        )
        _commit(db, "grant.issue")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    try:
        grant_service.notify_grant(grant, kind, notifier)
    except Exception as exc:
        # the grant is committed and its link is in the response body
        details = log_error_details(exc, {"subject_id": subject_id, "kind": kind.value})
        logger.error(f"Access link dispatch failed: {details}")
    return GrantIssued(
        code=grant.code,
        subject_id=grant.subject_id,
        template_id=grant.template_id,
        bound_version=grant.bound_version,
        respondent_role=grant.respondent_role,
        status=grant.status.value,
        issued_at=grant.issued_at,
        link=grant_service.build_access_link(kind, grant.code),
    )


@router.get("/grant/{code}", response_model=GrantViewModel)
def resolve_grant(code: str, db: Session = Depends(get_db_session)) -> GrantViewModel:
    try:
        view = grant_service.resolve_grant(db, code)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return GrantViewModel.from_view(view)


@router.post("/grant/{code}/expire", response_model=GrantStatusModel)
def expire_grant(
    code: str,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> GrantStatusModel:
    try:
        grant = grant_service.expire_grant(db, code)
        _commit(db, "grant.expire")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    return GrantStatusModel(
        code=grant.code,
        status=grant.status.value,
        consumed_at=grant.consumed_at,
        expired_at=grant.expired_at,
    )


@router.post("/grant/{code}/signature", response_model=SignatureUploaded, status_code=status.HTTP_201_CREATED)
async def upload_signature(
    code: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
) -> SignatureUploaded:
    try:
        grant_service.resolve_grant(db, code)
        data = await file.read()
        ref = store.store(data, content_type=file.content_type)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return SignatureUploaded(ref=ref, url=store.resolve(ref))


@router.post("/grant/{code}/response", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
def submit_response(
    code: str,
    payload: SubmissionRequest,
    db: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseModel:
    try:
        record = ledger.submit_response(
            db,
            code,
            payload.answers,
            comments=payload.comments,
            other_comments=payload.other_comments,
            signature_ref=payload.signature_ref,
        )
        _commit(db, "response.submit")
    except FeedbackEngineError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    return _response_model(record, store)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@router.get("/response/{subject_id}/{kind}/latest", response_model=ResponseModel)
def get_latest_response(
    subject_id: int,
    kind: TemplateKind,
    db: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseModel:
    try:
        record = ledger.get_latest_response_for_kind(db, subject_id, kind)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ErrorDetail(code="not_found", message="No response has been submitted yet.").model_dump(),
        )
    return _response_model(record, store)


@router.get("/response/{response_id}", response_model=ResponseModel)
def get_response_detail(
    response_id: int,
    db: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(require_editor),
) -> ResponseModel:
    try:
        record = ledger.get_response_detail(db, response_id)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return _response_model(record, store)


@router.get("/responses/{kind}", response_model=list[ResponseModel])
def list_responses(
    kind: TemplateKind,
    subject_id: Optional[list[int]] = Query(default=None),
    db: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
    actor: Actor = Depends(require_editor),
) -> list[ResponseModel]:
    records = ledger.list_responses(db, kind, subject_ids=subject_id)
    return [_response_model(record, store) for record in records]


@router.get("/responses/{kind}/unanswered", response_model=list[SubjectContextModel])
def list_unanswered(
    kind: TemplateKind,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> list[SubjectContextModel]:
    try:
        subjects = ledger.list_unanswered_subjects(db, kind)
    except FeedbackEngineError as exc:
        raise _http_error(exc) from exc
    return [SubjectContextModel.from_context(s) for s in subjects]


@router.get("/responses/{kind}/export.json")
def export_responses_json(
    kind: TemplateKind,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> JSONResponse:
    records = ledger.list_responses(db, kind)
    payload = json.loads(make_json_export_payload(kind.value, records))
    return JSONResponse(content=payload)


@router.get("/responses/{kind}/export.xlsx")
def export_responses_xlsx(
    kind: TemplateKind,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(require_editor),
) -> StreamingResponse:
    records = ledger.list_responses(db, kind)
    xlsx_bytes = make_xlsx_export_bytes(kind.value, records)
    filename = f"{kind.value}_responses.xlsx"
    stream = io.BytesIO(xlsx_bytes)
    stream.seek(0)
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )
