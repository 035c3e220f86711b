"""
Template Store and Template Editor.

Templates are versioned copy-on-write: every editor operation reads the
current version, applies the change to a draft and writes the draft out as the
next version. Versions already written are never touched again, so a grant
bound to an older version keeps resolving to exactly the content it was
issued against.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from ..domain.models import (
    DraftCategory,
    DraftQuestion,
    TemplateDraft,
    TemplateKind,
    TemplateSnapshot,
)
from ..domain.schemas import CategoryInput, TemplateCreationInput, validate_input
from ..infrastructure.exceptions import (
    CategoryNotFoundError,
    InvalidCategoryError,
    InvalidOrderError,
    InvalidQuestionError,
    TemplateNotFoundError,
    ValidationError,
)
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.models import TemplateORM
from ..infrastructure.repositories import TemplateRepo

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Template Store
# ---------------------------------------------------------------------------


@log_operation("create_template")
def create_template(
    session: Session,
    kind: TemplateKind | str,
    name: str | None = None,
    created_by: str | None = None,
) -> TemplateSnapshot:
    """
    Create a template and its empty version 1.

    The first template of a kind becomes the active one; later templates of
    the same kind start inactive until `set_active` is called.

    Example:
        >>> snap = create_template(session, TemplateKind.APPRAISAL, "OJT Appraisal")
        >>> snap.version
        1
    """
    validation_result = validate_input(
        TemplateCreationInput,
        {"kind": kind, "name": name or str(getattr(kind, "value", kind)).replace("-", " ").title()},
    )
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        logger.warning(f"Template creation validation failed: {error_msg}")
        raise ValidationError("template_data", error_msg)
    validated_data = validation_result.data or {}
    kind = TemplateKind(validated_data["kind"])

    repo = TemplateRepo(session)
    is_first = repo.active_for_kind(kind) is None
    template = repo.create(
        kind=kind.value, name=validated_data["name"], is_active=is_first, current_version=1
    )
    repo.insert_version(template, 1, TemplateDraft(), created_by=created_by)

    set_context(template_id=template.id)
    logger.info(f"Created {kind.value} template {template.id} (active={is_first})")
    return repo.load_snapshot(template, 1)


@log_operation("get_template_version")
def get_version(session: Session, template_id: int, version: int) -> TemplateSnapshot:
    repo = TemplateRepo(session)
    return repo.load_snapshot(repo.get_required(template_id), version)


@log_operation("get_latest_template")
def get_latest(session: Session, template_id: int) -> TemplateSnapshot:
    repo = TemplateRepo(session)
    template = repo.get_required(template_id)
    return repo.load_snapshot(template, template.current_version)


def get_active_template(session: Session, kind: TemplateKind | str) -> TemplateORM:
    """The active template row for ``kind``. Raises TemplateNotFoundError if there is none."""
    kind = TemplateKind(kind)
    template = TemplateRepo(session).active_for_kind(kind)
    if template is None:
        raise TemplateNotFoundError(kind=kind.value)
    return template


@log_operation("get_active_template")
def get_active(session: Session, kind: TemplateKind | str) -> TemplateSnapshot:
    """Latest version of the active template of ``kind``."""
    template = get_active_template(session, kind)
    return TemplateRepo(session).load_snapshot(template, template.current_version)


@log_operation("list_templates")
def list_templates(session: Session, kind: TemplateKind | str | None = None) -> list[TemplateORM]:
    return TemplateRepo(session).list_templates(TemplateKind(kind) if kind is not None else None)


@log_operation("list_template_versions")
def list_versions(session: Session, template_id: int) -> list[int]:
    repo = TemplateRepo(session)
    repo.get_required(template_id)
    return repo.list_versions(template_id)


@log_operation("set_template_active")
def set_active(session: Session, template_id: int, is_active: bool) -> TemplateORM:
    """Activate or deactivate a template. Does not create a version."""
    repo = TemplateRepo(session)
    template = repo.get_required(template_id, for_update=True)
    return repo.set_active(template, is_active)


# ---------------------------------------------------------------------------
# Template Editor
# ---------------------------------------------------------------------------


def _load_for_edit(session: Session, template_id: int) -> tuple[TemplateRepo, TemplateORM, TemplateSnapshot]:
    repo = TemplateRepo(session)
    template = repo.get_required(template_id, for_update=True)
    snapshot = repo.load_snapshot(template, template.current_version)
    set_context(template_id=template_id)
    return repo, template, snapshot


def _write_next_version(
    repo: TemplateRepo,
    template: TemplateORM,
    snapshot: TemplateSnapshot,
    draft: TemplateDraft,
    actor: str | None,
) -> TemplateSnapshot:
    next_version = snapshot.version + 1
    repo.insert_version(template, next_version, draft, created_by=actor)
    logger.info(f"Template {template.id} advanced to version {next_version}")
    return repo.load_snapshot(template, next_version)


def _require_rating(snapshot: TemplateSnapshot) -> None:
    if not snapshot.kind.is_rating:
        raise InvalidCategoryError(
            f"{snapshot.kind.value} templates have no categories",
            details={"kind": snapshot.kind.value},
        )


def _clean_category_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidCategoryError("Category name cannot be empty")
    return cleaned


def _require_category(snapshot: TemplateSnapshot, draft: TemplateDraft, category_id: int) -> DraftCategory:
    category = draft.find_category(category_id)
    if category is None:
        raise CategoryNotFoundError(snapshot.template_id, category_id)
    return category


@log_operation("add_category")
def add_category(
    session: Session,
    template_id: int,
    name: str,
    display_order: int,
    actor: str | None = None,
) -> TemplateSnapshot:
    """Append an empty category. ``display_order`` must be unused in the current version."""
    repo, template, snapshot = _load_for_edit(session, template_id)
    _require_rating(snapshot)
    name = _clean_category_name(name)
    validation_result = validate_input(CategoryInput, {"name": name, "display_order": display_order})
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        raise ValidationError("category_data", error_msg)
    validated_data = validation_result.data or {}
    order = validated_data["display_order"]

    draft = TemplateDraft.from_snapshot(snapshot)
    if any(c.display_order == order for c in draft.categories):
        raise InvalidCategoryError(
            f"Display order {order} is already used", details={"display_order": order}
        )
    draft.categories.append(DraftCategory(name=validated_data["name"], display_order=order))
    return _write_next_version(repo, template, snapshot, draft, actor)


@log_operation("rename_category")
def rename_category(
    session: Session,
    template_id: int,
    category_id: int,
    name: str,
    actor: str | None = None,
) -> TemplateSnapshot:
    """Rename a category. The renamed category gets a new id; its questions keep theirs."""
    repo, template, snapshot = _load_for_edit(session, template_id)
    _require_rating(snapshot)
    name = _clean_category_name(name)

    draft = TemplateDraft.from_snapshot(snapshot)
    category = _require_category(snapshot, draft, category_id)
    category.id = None
    category.name = name
    return _write_next_version(repo, template, snapshot, draft, actor)


@log_operation("reorder_categories")
def reorder_categories(
    session: Session,
    template_id: int,
    ordered_category_ids: Sequence[int],
    actor: str | None = None,
) -> TemplateSnapshot:
    """
    Put categories in the given order.

    ``ordered_category_ids`` must list every category of the current version
    exactly once. The existing display-order values are reassigned in the new
    sequence.
    """
    repo, template, snapshot = _load_for_edit(session, template_id)
    _require_rating(snapshot)

    existing = [c.id for c in snapshot.categories]
    given = list(ordered_category_ids)
    if len(given) != len(existing) or set(given) != set(existing):
        raise InvalidOrderError(existing, given)

    draft = TemplateDraft.from_snapshot(snapshot)
    slots = sorted(c.display_order for c in draft.categories)
    by_id = {c.id: c for c in draft.categories}
    draft.categories = []
    for slot, category_id in zip(slots, given, strict=True):
        category = by_id[category_id]
        category.display_order = slot
        draft.categories.append(category)
    return _write_next_version(repo, template, snapshot, draft, actor)


@log_operation("remove_category")
def remove_category(
    session: Session,
    template_id: int,
    category_id: int,
    actor: str | None = None,
) -> TemplateSnapshot:
    repo, template, snapshot = _load_for_edit(session, template_id)
    _require_rating(snapshot)

    draft = TemplateDraft.from_snapshot(snapshot)
    category = _require_category(snapshot, draft, category_id)
    draft.categories.remove(category)
    return _write_next_version(repo, template, snapshot, draft, actor)


def _merge_questions(current: list[DraftQuestion], texts: list[str]) -> list[DraftQuestion]:
    # an unchanged text keeps its question id; anything else is a new question
    unused = list(current)
    merged: list[DraftQuestion] = []
    for text in texts:
        match = next((q for q in unused if q.text == text), None)
        if match is not None:
            unused.remove(match)
            merged.append(DraftQuestion(id=match.id, text=text))
        else:
            merged.append(DraftQuestion(text=text))
    return merged


@log_operation("set_questions")
def set_questions(
    session: Session,
    template_id: int,
    category_id: int | None,
    question_texts: Sequence[str],
    actor: str | None = None,
) -> TemplateSnapshot:
    """
    Replace the questions of one category, or of the whole flat template when
    ``category_id`` is None.

    Raises:
        InvalidQuestionError: a question text is empty
        InvalidCategoryError: ``category_id`` is None on a rating template, or
            given on a flat one
        CategoryNotFoundError: the category is not in the current version
    """
    texts: list[str] = []
    for position, text in enumerate(question_texts):
        cleaned = text.strip() if isinstance(text, str) else ""
        if not cleaned:
            raise InvalidQuestionError(f"Question at position {position} is empty", position=position)
        texts.append(cleaned)

    repo, template, snapshot = _load_for_edit(session, template_id)
    draft = TemplateDraft.from_snapshot(snapshot)

    if snapshot.kind.is_rating:
        if category_id is None:
            raise InvalidCategoryError(
                "Rating templates need a category for their questions",
                details={"kind": snapshot.kind.value},
            )
        category = _require_category(snapshot, draft, category_id)
        category.questions = _merge_questions(category.questions, texts)
    else:
        if category_id is not None:
            raise InvalidCategoryError(
                f"{snapshot.kind.value} templates have no categories",
                details={"kind": snapshot.kind.value, "category_id": category_id},
            )
        draft.questions = _merge_questions(draft.questions, texts)

    return _write_next_version(repo, template, snapshot, draft, actor)
