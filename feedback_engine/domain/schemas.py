"""
Pydantic schemas for input validation across the feedback engine.

These schemas sanitise and bound the free-form inputs coming from editors and
respondents. Structural checks that depend on a template version (which
questions are required, which values are allowed) live in the response
validator, not here.
"""

from __future__ import annotations

import re
from html import unescape
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..infrastructure.config import get_settings
from .models import TemplateKind

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Sanitize string inputs to prevent XSS and injection attacks."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class TemplateCreationInput(BaseValidationSchema):
    kind: TemplateKind
    name: str = Field(..., min_length=1, max_length=255)


class CategoryInput(BaseValidationSchema):
    name: str = Field(..., max_length=255)
    display_order: int = Field(..., ge=0)


class GrantIssueInput(BaseValidationSchema):
    subject_id: int = Field(..., gt=0)
    template_id: int = Field(..., gt=0)
    respondent_role: str = Field(..., min_length=1, max_length=64)
    recipient: str | None = Field(None, max_length=255)

    @field_validator("recipient")
    def validate_recipient(cls, v):
        if v is None or v == "":
            return None
        if not EMAIL_RE.match(v):
            raise ValueError("Recipient must be an email address")
        return v


class SubmissionInput(BaseValidationSchema):
    """
    Free-form parts of a respondent's payload.

    Answers are not listed here; whether they fit is decided against the bound
    template version by the response validator.
    """

    comments: str | None = None
    other_comments: str | None = None
    signature_ref: str | None = Field(None, max_length=512)

    @field_validator("comments", "other_comments", "signature_ref")
    def blank_to_none(cls, v):
        if v is not None and len(v) == 0:
            return None
        return v

    @field_validator("comments", "other_comments")
    def within_comment_limit(cls, v):
        limit = get_settings().security.max_comment_length
        if v is not None and len(v) > limit:
            raise ValueError(f"must be at most {limit} characters")
        return v


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(TemplateCreationInput, {"kind": "appraisal", "name": "OJT"})
        >>> if result.success:
        ...     validated_data = result.data
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
