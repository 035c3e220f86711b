from __future__ import annotations

import io
import json
from collections.abc import Sequence

import pandas as pd

from ..domain.models import ResponseRecord

EXPORT_COLUMNS = [
    "ResponseID",
    "SubjectID",
    "TemplateID",
    "Version",
    "SubmittedAt",
    "Position",
    "QuestionID",
    "Question",
    "Answer",
    "TotalPoints",
    "Comments",
    "OtherComments",
]


def _to_iso(val):
    if hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except Exception:
            return str(val)
    return val


def make_responses_dataframe(responses: Sequence[ResponseRecord]) -> pd.DataFrame:
    """One row per answer, responses in the order given, answers in render order."""
    rows = []
    for response in responses:
        for position, answer in enumerate(response.answers):
            rows.append(
                {
                    "ResponseID": response.id,
                    "SubjectID": response.subject_id,
                    "TemplateID": response.template_id,
                    "Version": response.bound_version,
                    "SubmittedAt": response.submitted_at,
                    "Position": position,
                    "QuestionID": answer.question_id,
                    "Question": response.question_texts.get(answer.question_id),
                    "Answer": answer.value,
                    "TotalPoints": response.total_points,
                    "Comments": response.comments,
                    "OtherComments": response.other_comments,
                }
            )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def make_json_export_payload(kind: str, responses: Sequence[ResponseRecord]) -> str:
    df = make_responses_dataframe(responses)
    df = df.astype(object).where(pd.notna(df), None)
    payload = {
        "kind": kind,
        "response_count": len(responses),
        "answers": df.map(_to_iso).to_dict(orient="records"),
    }
    return json.dumps(payload, indent=2)


def make_xlsx_export_bytes(kind: str, responses: Sequence[ResponseRecord]) -> bytes:
    """Single-sheet Excel export of a kind's responses."""
    df = make_responses_dataframe(responses)

    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        # sheet names are capped at 31 characters
        df.to_excel(writer, index=False, sheet_name=kind[:31])
    return bio.getvalue()
