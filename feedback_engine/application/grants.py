"""
Access Grant Service.

A grant is a single-use code that lets one respondent fill in one template
version for one subject. Grants move ``pending -> consumed`` (on submission)
or ``pending -> expired`` (on reissue or explicit expiry); both end states are
terminal.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.models import AccessGrant, GrantStatus, GrantView, TemplateKind
from ..domain.schemas import GrantIssueInput, validate_input
from ..infrastructure.config import get_settings
from ..infrastructure.exceptions import (
    GrantAlreadyConsumedError,
    GrantExpiredError,
    InvalidCodeError,
    ValidationError,
)
from ..infrastructure.logging import get_logger, log_operation, mask_code, set_context
from ..infrastructure.models import AccessGrantORM
from ..infrastructure.notifications import Notifier
from ..infrastructure.repositories import GrantRepo, SubjectRepo, TemplateRepo
from ..infrastructure.subjects import SqlSubjectDirectory, SubjectDirectory

logger = get_logger(__name__)

CodeFactory = Callable[[], str]

MAX_CODE_ATTEMPTS = 5


def generate_access_code(nbytes: int | None = None) -> str:
    """Random hex code, ``2 * nbytes`` characters long."""
    return secrets.token_hex(nbytes or get_settings().security.access_code_bytes)


def build_access_link(kind: TemplateKind | str, code: str, frontend_url: str | None = None) -> str:
    """
    Respondent link for a grant.

    Example:
        >>> build_access_link(TemplateKind.APPRAISAL, "ab12cd34ef56", "https://ojt.example.edu")
        'https://ojt.example.edu/appraisal?code=ab12cd34ef56'
    """
    base = (frontend_url or get_settings().app.frontend_url).rstrip("/")
    return f"{base}/{TemplateKind(kind).form_path}?code={code}"


def to_access_grant(row: AccessGrantORM) -> AccessGrant:
    return AccessGrant(
        code=row.code,
        subject_id=row.subject_id,
        template_id=row.template_id,
        bound_version=row.bound_version,
        respondent_role=row.respondent_role,
        status=GrantStatus(row.status),
        issued_at=row.issued_at,
        recipient=row.recipient,
        consumed_at=row.consumed_at,
        expired_at=row.expired_at,
    )


def current_status(session: Session, code: str) -> GrantStatus | None:
    """Status as stored right now, bypassing anything cached in the session."""
    status = session.execute(
        select(AccessGrantORM.status).where(AccessGrantORM.code == code)
    ).scalar_one_or_none()
    return GrantStatus(status) if status is not None else None


def raise_for_status(code: str, status: GrantStatus | None) -> None:
    if status is None:
        raise InvalidCodeError(code)
    if status is GrantStatus.CONSUMED:
        raise GrantAlreadyConsumedError(code)
    if status is GrantStatus.EXPIRED:
        raise GrantExpiredError(code)


@log_operation("issue_grant")
def issue_grant(
    session: Session,
    subject_id: int,
    template_id: int,
    respondent_role: str,
    *,
    recipient: str | None = None,
    issued_by: str | None = None,
    code_factory: CodeFactory | None = None,
) -> AccessGrant:
    """
    Issue a pending grant bound to the template's latest version.

    Any other pending grant for the same (subject, template) is expired in the
    same transaction, so at most one code is usable at a time. Nothing is
    sent here; call ``notify_grant`` once the transaction has committed.

    Returns:
        The new grant; its ``code`` is what the respondent receives.
    """
    validation_result = validate_input(
        GrantIssueInput,
        {
            "subject_id": subject_id,
            "template_id": template_id,
            "respondent_role": respondent_role,
            "recipient": recipient,
        },
    )
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        logger.warning(f"Grant validation failed: {error_msg}")
        raise ValidationError("grant_data", error_msg)
    data = validation_result.data or {}

    set_context(subject_id=subject_id, template_id=template_id)

    SubjectRepo(session).get_by_id_required(subject_id)
    # row lock serialises concurrent reissues for the same template
    template = TemplateRepo(session).get_required(template_id, for_update=True)
    bound_version = template.current_version

    grants = GrantRepo(session)
    expired = grants.expire_pending_for(subject_id, template_id)
    if expired:
        logger.info(f"Expired {expired} pending grant(s) for subject {subject_id}")

    factory = code_factory or generate_access_code
    for _ in range(MAX_CODE_ATTEMPTS):
        code = factory()
        if grants.get(code) is None:
            break
    else:
        raise ValidationError("code", "Could not generate an unused access code")

    row = grants.create(
        code=code,
        subject_id=subject_id,
        template_id=template_id,
        bound_version=bound_version,
        respondent_role=data["respondent_role"],
        recipient=data.get("recipient"),
        status=GrantStatus.PENDING.value,
        issued_by=issued_by,
    )
    logger.info(
        f"Issued grant {mask_code(code)} for subject {subject_id} on template "
        f"{template_id} v{bound_version}"
    )

    return to_access_grant(row)


def notify_grant(grant: AccessGrant, kind: TemplateKind | str, notifier: Notifier) -> str | None:
    """
    Send the access link for a committed grant to its recipient.

    Returns the link that was sent, or None when the grant has no recipient.
    """
    if not grant.recipient:
        return None
    link = build_access_link(kind, grant.code)
    notifier.send_access_link(grant.recipient, grant.code, link)
    return link


@log_operation("resolve_grant")
def resolve_grant(
    session: Session, code: str, *, subjects: SubjectDirectory | None = None
) -> GrantView:
    """
    Look up a pending grant and materialise what the respondent needs to see.

    Raises:
        InvalidCodeError: no grant has this code
        GrantAlreadyConsumedError: the grant was already used
        GrantExpiredError: the grant was reissued or expired
    """
    if not code:
        raise InvalidCodeError(code)
    set_context(grant_code=mask_code(code))

    row = GrantRepo(session).get(code)
    if row is None:
        raise InvalidCodeError(code)
    raise_for_status(code, GrantStatus(row.status))

    repo = TemplateRepo(session)
    snapshot = repo.load_snapshot(repo.get_required(row.template_id), row.bound_version)
    subject = (subjects or SqlSubjectDirectory(session)).get_context(row.subject_id)

    return GrantView(
        code=row.code,
        subject_id=row.subject_id,
        template_id=row.template_id,
        bound_version=row.bound_version,
        respondent_role=row.respondent_role,
        issued_at=row.issued_at,
        snapshot=snapshot,
        subject=subject,
    )


@log_operation("consume_grant")
def consume_grant(session: Session, code: str) -> None:
    """
    Move a grant from pending to consumed.

    Only the Submission Ledger calls this, inside the transaction that writes
    the response. The update is conditional on the grant still being pending.
    """
    set_context(grant_code=mask_code(code))
    if not GrantRepo(session).consume_if_pending(code):
        raise_for_status(code, current_status(session, code))
        # pending but not updated: the row changed under us
        raise GrantAlreadyConsumedError(code)


@log_operation("expire_grant")
def expire_grant(session: Session, code: str) -> AccessGrant:
    """Expire a pending grant. Expiring an already expired grant is a no-op."""
    set_context(grant_code=mask_code(code))
    grants = GrantRepo(session)
    if not grants.expire_if_pending(code):
        status = current_status(session, code)
        if status is not GrantStatus.EXPIRED:
            raise_for_status(code, status)
    row = grants.get(code)
    session.refresh(row)
    return to_access_grant(row)


@log_operation("has_grant")
def has_grant(session: Session, subject_id: int, template_id: int, pending_only: bool = False) -> bool:
    """Whether a grant was ever issued for (subject, template); optionally only pending ones."""
    return GrantRepo(session).has_grant(subject_id, template_id, pending_only=pending_only)
