"""RequestContext -- explicit caller identity threaded through every call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """
    Who is calling and on behalf of which company.

    Contract:
        ``company_id`` scopes every lookup: an entity owned by another
        company is reported as not found.  ``actor_id`` is stamped on
        every row the call writes.  ``project_id`` optionally narrows a
        company-wide caller to one project.
    """

    company_id: UUID
    actor_id: UUID
    project_id: UUID | None = None
    correlation_id: str | None = None

    def log_fields(self) -> dict[str, Any]:
        """Fields for ``LogContext.bind()``."""
        return {
            "company_id": self.company_id,
            "actor_id": self.actor_id,
            "project_id": self.project_id,
            "correlation_id": self.correlation_id,
        }
