from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

from opsledger.apps.finance import models as finance_models

from . import rules


class PostingOutcomeEnum(str, enum.Enum):
    POSTED = "POSTED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PostingOutcome:
    """What step 2 did; a duplicate is POSTED with ``duplicate=True``."""

    status: PostingOutcomeEnum
    entry: Optional[finance_models.PostingEntry] = None
    reason: Optional[str] = None
    duplicate: bool = False

    @classmethod
    def posted(cls, entry, *, duplicate: bool = False) -> "PostingOutcome":
        return cls(PostingOutcomeEnum.POSTED, entry=entry, duplicate=duplicate)

    @classmethod
    def skipped(cls, reason: str) -> "PostingOutcome":
        return cls(PostingOutcomeEnum.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "PostingOutcome":
        return cls(PostingOutcomeEnum.FAILED, reason=reason)

    @classmethod
    def from_result(cls, result: rules.PostingResult) -> "PostingOutcome":
        if result.status == rules.PostingStatusEnum.POSTED:
            return cls.posted(result.entry)
        if result.status == rules.PostingStatusEnum.DUPLICATE:
            return cls.posted(result.entry, duplicate=True)
        return cls.skipped(result.reason or rules.NO_PRICE_AVAILABLE)


@dataclass(frozen=True)
class CoordinatedResult:
    primary: Any
    posting: PostingOutcome
