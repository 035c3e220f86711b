"""
Out-of-band delivery of access links.

The engine only produces codes and links; sending them is a collaborator's
job. ``LoggingNotifier`` is the default and just records the dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from .logging import get_logger, mask_code

logger = get_logger(__name__)


class Notifier(Protocol):
    def send_access_link(self, recipient: str, code: str, link: str) -> None: ...


class LoggingNotifier:
    def send_access_link(self, recipient: str, code: str, link: str) -> None:
        logger.info(
            f"Access link for grant {mask_code(code)} queued for {recipient}",
            extra={"grant_code": mask_code(code)},
        )


@dataclass
class RecordingNotifier:
    """Keeps every dispatch in memory. Useful for tests and dry runs."""

    sent: list[tuple[str, str, str]] = field(default_factory=list)

    def send_access_link(self, recipient: str, code: str, link: str) -> None:
        self.sent.append((recipient, code, link))
