"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the remote API's wire format.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Account:
    """Remote account that owns claims."""

    id: str
    name: str
    is_default: bool


@dataclass(frozen=True)
class Claim:
    """Remote claim (publication) that carries comments."""

    id: str
    name: str
    timestamp: datetime


@dataclass(frozen=True)
class Comment:
    """Remote comment as observed during one run."""

    id: str
    claim_id: str
    text: str
    commenter_id: str
    commenter_name: str
    commenter_url: str
    is_hidden: bool
    timestamp: datetime


@dataclass(frozen=True)
class CommentRecord:
    """Persisted representation of the latest observed comment."""

    id: str
    account_id: str
    claim_id: str
    claim_name: str
    commenter_id: str
    commenter_name: str
    commenter_url: str
    text: str
    is_hidden: bool
    timestamp: datetime

    @classmethod
    def from_observation(cls, account: Account, claim: Claim, comment: Comment) -> "CommentRecord":
        """Denormalize account and claim fields onto the comment."""

        return cls(
            id=comment.id,
            account_id=account.id,
            claim_id=comment.claim_id,
            claim_name=claim.name,
            commenter_id=comment.commenter_id,
            commenter_name=comment.commenter_name,
            commenter_url=comment.commenter_url,
            text=comment.text,
            is_hidden=comment.is_hidden,
            timestamp=comment.timestamp,
        )


@dataclass(frozen=True)
class Observation:
    """A comment together with the account and claim it was reached through."""

    account: Account
    claim: Claim
    comment: Comment


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated API result."""

    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int


class Classification(enum.Enum):
    NEW = "new"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Detection:
    """Outcome of comparing one observation against the store."""

    classification: Classification
    record: CommentRecord

    @property
    def changed(self) -> bool:
        return self.classification is not Classification.UNCHANGED


@dataclass
class FetchStats:
    """Per query kind page counters, so lossy pages stay visible."""

    fetched: dict[str, int] = field(default_factory=dict)
    failed: dict[str, int] = field(default_factory=dict)

    def record_success(self, kind: str) -> None:
        self.fetched[kind] = self.fetched.get(kind, 0) + 1

    def record_failure(self, kind: str) -> None:
        self.failed[kind] = self.failed.get(kind, 0) + 1

    @property
    def total_failed(self) -> int:
        return sum(self.failed.values())


@dataclass
class RunReport:
    """Summary of one synchronization run."""

    new: int = 0
    updated: int = 0
    unchanged: int = 0
    notified: int = 0
    duration: float = 0.0
    fetch_stats: FetchStats = field(default_factory=FetchStats)

    def count(self, detection: Detection) -> None:
        if detection.classification is Classification.NEW:
            self.new += 1
        elif detection.classification is Classification.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    @property
    def observed(self) -> int:
        return self.new + self.updated + self.unchanged
