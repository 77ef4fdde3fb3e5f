from __future__ import annotations

from fastapi import HTTPException, status


class DuplicatePosting(HTTPException):
    """A posting already exists for this source; ``existing`` is that entry."""

    def __init__(self, existing) -> None:
        self.existing = existing
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Posting already exists for {existing.source_kind.value} "
                f"source {existing.source_id}."
            ),
        )
