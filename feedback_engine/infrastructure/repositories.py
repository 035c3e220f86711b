"""
Repository classes for the feedback engine.

This module re-exports the split repositories so callers can write:
    from feedback_engine.infrastructure.repositories import TemplateRepo, GrantRepo, ...

Each repository:
- Operates on a caller-owned session and never commits
- Logs its operations through `log_database_operation`
- Converts driver errors into application exceptions
"""

from __future__ import annotations

from .repositories_grant import GrantRepo  # re-export
from .repositories_response import ResponseRepo, to_response_record  # re-export
from .repositories_subject import SubjectRepo, to_subject_context  # re-export
from .repositories_template import TemplateRepo  # re-export

# Tell linters/formatters these imports are intentional (exported API)
__all__ = [
    "TemplateRepo",
    "GrantRepo",
    "ResponseRepo",
    "SubjectRepo",
    "to_response_record",
    "to_subject_context",
]
