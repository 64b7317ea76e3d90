"""Change detection against the persisted comment store.

Only the comment text decides whether a known comment changed. A changed
comment is replaced, not updated in place: the delete and the insert run in
one store transaction so the id never goes missing.

Detection is split in two steps. ``detect`` only reads the store, so a run can
classify comments ahead of delivery. ``apply`` re-reads and mutates the store
and is called right before the notification for that record is sent, so a
record is never stored unless its delivery is attempted next.
"""

from __future__ import annotations

import logging
from typing import Optional

from commentwatch.core.models import Classification, CommentRecord, Detection, Observation
from commentwatch.core.ports import StoragePort

LOGGER = logging.getLogger(__name__)


def classify(existing: Optional[CommentRecord], observed_text: str) -> Classification:
    if existing is None:
        return Classification.NEW
    if existing.text != observed_text:
        return Classification.UPDATED
    return Classification.UNCHANGED


class ChangeDetector:
    """Classifies observations and applies the matching store mutation.

    Store failures surface as PersistenceError from the storage adapter and
    are not caught here.
    """

    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage

    def detect(self, observation: Observation) -> Detection:
        """Classify an observation without touching the store."""

        comment = observation.comment
        existing = self._storage.get_comment(comment.id)
        classification = classify(existing, comment.text)
        if classification is Classification.UNCHANGED:
            return Detection(classification=classification, record=existing)
        record = CommentRecord.from_observation(observation.account, observation.claim, comment)
        return Detection(classification=classification, record=record)

    def apply(self, record: CommentRecord) -> Detection:
        """Store a record if it is new or its text changed."""

        existing = self._storage.get_comment(record.id)
        classification = classify(existing, record.text)

        if classification is Classification.NEW:
            LOGGER.info("Logging new comment %s", record.id)
            self._storage.insert_comment(record)
        elif classification is Classification.UPDATED:
            LOGGER.info("Comment %s is updated", record.id)
            with self._storage.transaction():
                self._storage.delete_comment(record.id)
                self._storage.insert_comment(record)
        else:
            # Unchanged comments keep the stored record as the reference.
            record = existing

        return Detection(classification=classification, record=record)

    def process(self, observation: Observation) -> Detection:
        record = CommentRecord.from_observation(observation.account, observation.claim, observation.comment)
        return self.apply(record)
