from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from ..infrastructure.exceptions import (
    InvalidAnswerValueError,
    MissingAnswersError,
    MissingSignatureError,
    UnexpectedAnswersError,
    ValidationError,
)
from .models import (
    CHOICES,
    RATING_MAX,
    RATING_MIN,
    Answer,
    ResponseRecord,
    TemplateKind,
    TemplateSnapshot,
)

AnswerStyle = Literal["rating", "choice"]


def is_valid_rating(value: Any) -> bool:
    # bool is an int subclass; True must not pass as a rating of 1
    return isinstance(value, int) and not isinstance(value, bool) and RATING_MIN <= value <= RATING_MAX


def is_valid_choice(value: Any) -> bool:
    return isinstance(value, str) and value in CHOICES


@dataclass(frozen=True, slots=True)
class FormContract:
    """
    What a submission against one template version must contain.

    Derived from a snapshot every time; never cached globally, so a contract
    always matches the version it was built from.
    """

    template_id: int
    version: int
    kind: TemplateKind
    required_question_ids: tuple[int, ...]
    answer_style: AnswerStyle
    allowed_values: tuple[int | str, ...]

    def accepts(self, value: Any) -> bool:
        if self.answer_style == "rating":
            return is_valid_rating(value)
        return is_valid_choice(value)


def build_contract(snapshot: TemplateSnapshot) -> FormContract:
    """Derive the form contract for a snapshot: every question is required."""
    if snapshot.kind.is_rating:
        style: AnswerStyle = "rating"
        allowed: tuple[int | str, ...] = tuple(range(RATING_MIN, RATING_MAX + 1))
    else:
        style = "choice"
        allowed = CHOICES
    return FormContract(
        template_id=snapshot.template_id,
        version=snapshot.version,
        kind=snapshot.kind,
        required_question_ids=snapshot.question_ids,
        answer_style=style,
        allowed_values=allowed,
    )


def _normalise_keys(answers: Mapping[Any, Any]) -> dict[int, Any]:
    normalised: dict[int, Any] = {}
    for key, value in answers.items():
        if isinstance(key, bool):
            raise ValidationError("answers", f"Invalid question id {key!r}", key)
        try:
            normalised[int(key)] = value
        except (TypeError, ValueError) as exc:
            raise ValidationError("answers", f"Invalid question id {key!r}", key) from exc
    return normalised


def validate_submission(
    snapshot: TemplateSnapshot,
    answers: Mapping[Any, Any],
    signature_ref: str | None,
) -> tuple[Answer, ...]:
    """
    Check a candidate answer set against a snapshot.

    Pure: inspects only its arguments. Checks run in a fixed order so the
    respondent sees the most actionable problem first: missing answers,
    answers for questions not on the form, out-of-domain values, then the
    signature.

    Returns:
        The answers in the snapshot's render order.

    Raises:
        MissingAnswersError: a required question has no answer
        UnexpectedAnswersError: answers reference questions outside the snapshot
        InvalidAnswerValueError: a value is out of range / not an allowed choice
        MissingSignatureError: no signature reference was attached
    """
    contract = build_contract(snapshot)
    given = _normalise_keys(answers)

    missing = [qid for qid in contract.required_question_ids if given.get(qid) is None]
    if missing:
        raise MissingAnswersError(missing)

    required = set(contract.required_question_ids)
    unexpected = sorted(qid for qid in given if qid not in required)
    if unexpected:
        raise UnexpectedAnswersError(unexpected)

    invalid = [qid for qid in contract.required_question_ids if not contract.accepts(given[qid])]
    if invalid:
        first = invalid[0]
        raise InvalidAnswerValueError(first, given[first], question_ids=invalid)

    if signature_ref is None or not str(signature_ref).strip():
        raise MissingSignatureError()

    return tuple(Answer(qid, given[qid]) for qid in contract.required_question_ids)


def sum_ratings(answers: Iterable[Answer]) -> int:
    return sum(int(a.value) for a in answers)


def compute_aggregate(response: ResponseRecord) -> int | None:
    """
    Total score of a response: the plain sum of its 1–5 ratings.

    Fixed-choice responses have no aggregate and return None. Inputs are
    integers, so there is no rounding.
    """
    if not response.kind.is_rating:
        return None
    return sum_ratings(response.answers)
