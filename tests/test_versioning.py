from __future__ import annotations

import pytest
from conftest import make_flat_template, make_rating_template, make_subject

from feedback_engine.application import grants as grant_service
from feedback_engine.application import templates as template_service
from feedback_engine.domain.models import TemplateKind
from feedback_engine.infrastructure.exceptions import (
    CategoryNotFoundError,
    InvalidCategoryError,
    InvalidOrderError,
    InvalidQuestionError,
    TemplateNotFoundError,
    TemplateVersionNotFoundError,
    ValidationError,
)


def test_create_template_starts_at_version_one(session):
    snap = template_service.create_template(session, TemplateKind.APPRAISAL, "OJT Appraisal")
    assert snap.version == 1
    assert snap.categories == ()
    assert snap.questions == ()
    assert template_service.get_latest(session, snap.template_id) == snap


def test_create_template_rejects_unknown_kind(session):
    with pytest.raises(ValidationError):
        template_service.create_template(session, "exit-interview", "Exit")


def test_unknown_template_and_version(session):
    with pytest.raises(TemplateNotFoundError):
        template_service.get_latest(session, 999)
    snap = template_service.create_template(session, TemplateKind.APPRAISAL)
    with pytest.raises(TemplateVersionNotFoundError):
        template_service.get_version(session, snap.template_id, 2)


def test_every_edit_increments_version(session):
    snap = template_service.create_template(session, TemplateKind.APPRAISAL)
    tid = snap.template_id

    snap = template_service.add_category(session, tid, "Communication", 0)
    assert snap.version == 2
    cat_id = snap.categories[0].id

    snap = template_service.set_questions(session, tid, cat_id, ["Clarity", "Responsiveness"])
    assert snap.version == 3
    snap = template_service.rename_category(session, tid, cat_id, "Communication Skills")
    assert snap.version == 4
    snap = template_service.add_category(session, tid, "Attitude", 1)
    assert snap.version == 5
    snap = template_service.reorder_categories(session, tid, [c.id for c in reversed(snap.categories)])
    assert snap.version == 6
    assert template_service.list_versions(session, tid) == [1, 2, 3, 4, 5, 6]


def test_snapshot_of_old_version_is_unchanged_by_later_edits(session):
    snap = make_rating_template(session, {"Communication": ["Clarity", "Responsiveness"]})
    before = template_service.get_version(session, snap.template_id, snap.version)

    cat_id = snap.categories[0].id
    template_service.set_questions(session, snap.template_id, cat_id, ["Clarity", "Tone"])
    template_service.rename_category(session, snap.template_id, cat_id, "Talking")
    session.expire_all()

    after = template_service.get_version(session, snap.template_id, snap.version)
    assert after == before
    assert after.to_dict() == before.to_dict()


def test_untouched_entities_keep_ids_and_touched_ones_get_new_ids(session):
    snap = make_rating_template(
        session,
        {"Communication": ["Clarity", "Responsiveness"], "Attitude": ["Punctuality"]},
    )
    comm, attitude = snap.categories
    clarity, responsiveness = comm.questions

    edited = template_service.set_questions(
        session, snap.template_id, comm.id, ["Clarity", "Responsiveness in chat"]
    )
    new_comm, new_attitude = edited.categories
    assert new_attitude == attitude
    assert new_comm.id == comm.id
    assert new_comm.questions[0].id == clarity.id
    assert new_comm.questions[1].id != responsiveness.id
    assert new_comm.questions[1].text == "Responsiveness in chat"

    renamed = template_service.rename_category(session, snap.template_id, attitude.id, "Work Attitude")
    renamed_attitude = renamed.categories[1]
    assert renamed_attitude.id != attitude.id
    assert renamed_attitude.name == "Work Attitude"
    assert [q.id for q in renamed_attitude.questions] == [q.id for q in attitude.questions]


def test_categories_render_in_display_order(session):
    snap = template_service.create_template(session, TemplateKind.APPRAISAL)
    template_service.add_category(session, snap.template_id, "Second", 5)
    snap = template_service.add_category(session, snap.template_id, "First", 1)
    assert [c.name for c in snap.categories] == ["First", "Second"]


def test_reorder_requires_exact_category_set(session):
    snap = make_rating_template(session, {"A": ["a1"], "B": ["b1"], "C": ["c1"]})
    a, b, c = (cat.id for cat in snap.categories)

    with pytest.raises(InvalidOrderError):
        template_service.reorder_categories(session, snap.template_id, [a, b])
    with pytest.raises(InvalidOrderError):
        template_service.reorder_categories(session, snap.template_id, [a, b, b])
    with pytest.raises(InvalidOrderError):
        template_service.reorder_categories(session, snap.template_id, [a, b, c, 999])

    reordered = template_service.reorder_categories(session, snap.template_id, [c, a, b])
    assert [cat.id for cat in reordered.categories] == [c, a, b]
    assert [cat.display_order for cat in reordered.categories] == [0, 1, 2]


def test_empty_question_text_is_rejected(session):
    snap = make_rating_template(session, {"Communication": ["Clarity"]})
    with pytest.raises(InvalidQuestionError) as exc:
        template_service.set_questions(
            session, snap.template_id, snap.categories[0].id, ["Clarity", "  "]
        )
    assert exc.value.position == 1
    assert template_service.get_latest(session, snap.template_id).version == snap.version


def test_category_rules(session):
    snap = make_rating_template(session, {"Communication": ["Clarity"]})
    with pytest.raises(InvalidCategoryError):
        template_service.add_category(session, snap.template_id, "", 3)
    with pytest.raises(InvalidCategoryError):
        template_service.add_category(session, snap.template_id, "Duplicate order", 0)
    with pytest.raises(InvalidCategoryError):
        template_service.set_questions(session, snap.template_id, None, ["Loose question"])
    with pytest.raises(CategoryNotFoundError):
        template_service.rename_category(session, snap.template_id, 12345, "Nope")

    flat = make_flat_template(session, ["Was prepared"])
    with pytest.raises(InvalidCategoryError):
        template_service.add_category(session, flat.template_id, "Nope", 0)
    with pytest.raises(InvalidCategoryError):
        template_service.set_questions(session, flat.template_id, 1, ["x"])


def test_remove_category_copies_forward_the_rest(session):
    snap = make_rating_template(session, {"A": ["a1"], "B": ["b1", "b2"]})
    a, b = snap.categories
    after = template_service.remove_category(session, snap.template_id, a.id)
    assert after.version == snap.version + 1
    assert after.categories == (b,)
    assert template_service.get_version(session, snap.template_id, snap.version).categories == (a, b)


def test_flat_template_questions(session):
    snap = make_flat_template(session, ["Prepared", "Punctual"])
    assert [q.text for q in snap.questions] == ["Prepared", "Punctual"]
    assert snap.categories == ()
    again = template_service.set_questions(session, snap.template_id, None, ["Punctual", "Prepared", "New"])
    assert [q.id for q in again.questions][:2] == [snap.questions[1].id, snap.questions[0].id]


def test_grant_bound_to_v3_still_resolves_v3_after_edit(session):
    snap = template_service.create_template(session, TemplateKind.APPRAISAL)
    snap = template_service.add_category(session, snap.template_id, "Communication", 0)
    snap = template_service.set_questions(
        session, snap.template_id, snap.categories[0].id, ["Clarity", "Responsiveness"]
    )
    assert snap.version == 3
    subject_id = make_subject(session)

    grant = grant_service.issue_grant(session, subject_id, snap.template_id, "supervisor")
    assert grant.bound_version == 3

    v4 = template_service.set_questions(session, snap.template_id, snap.categories[0].id, ["Tone"])
    assert v4.version == 4

    view = grant_service.resolve_grant(session, grant.code)
    assert view.bound_version == 3
    assert view.snapshot == snap
    assert [q.text for q in view.snapshot.iter_questions()] == ["Clarity", "Responsiveness"]


def test_activation(session):
    first = template_service.create_template(session, TemplateKind.APPRAISAL, "First")
    second = template_service.create_template(session, TemplateKind.APPRAISAL, "Second")
    assert template_service.get_active(session, TemplateKind.APPRAISAL).template_id == first.template_id

    template_service.set_active(session, second.template_id, True)
    assert template_service.get_active(session, "appraisal").template_id == second.template_id
    rows = {t.id: t.is_active for t in template_service.list_templates(session, TemplateKind.APPRAISAL)}
    assert rows == {first.template_id: False, second.template_id: True}
    assert template_service.get_latest(session, second.template_id).version == 1

    template_service.set_active(session, second.template_id, False)
    with pytest.raises(TemplateNotFoundError):
        template_service.get_active(session, TemplateKind.APPRAISAL)
