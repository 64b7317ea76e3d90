from __future__ import annotations

import asyncio
import dataclasses

import pytest

from commentwatch.adapters.sqlite_storage import SQLiteStorage
from commentwatch.core.config import SyncConfig
from commentwatch.core.errors import NotificationError, PersistenceError, RunTimeout
from commentwatch.core.processor import SyncProcessor

from fakes import FakeApi, FakeNotifier, FakeStorage, make_account, make_claim, make_comment


class RecordingStorage(SQLiteStorage):
    """SQLite storage that records every mutation."""

    def __init__(self) -> None:
        super().__init__(":memory:")
        self.init_db()
        self.operations: list[tuple[str, str]] = []

    def insert_comment(self, record) -> None:
        self.operations.append(("insert", record.id))
        super().insert_comment(record)

    def delete_comment(self, comment_id: str) -> None:
        self.operations.append(("delete", comment_id))
        super().delete_comment(comment_id)


def _scenario_api() -> FakeApi:
    return FakeApi(
        accounts=[make_account("a1")],
        claims={"a1": [make_claim("k1")]},
        comments={"k1": [make_comment(f"c{i}", "k1") for i in range(1, 5)]},
    )


def _processor(api, storage, notifier, **overrides) -> SyncProcessor:
    config = SyncConfig(page_size=2, concurrency=2, **overrides)
    return SyncProcessor(api=api, storage=storage, notifier=notifier, config=config)


def test_end_to_end_new_then_edited_comment() -> None:
    api = _scenario_api()
    storage = RecordingStorage()
    notifier = FakeNotifier()
    processor = _processor(api, storage, notifier)

    first = asyncio.run(processor.run())

    assert first.new == 4
    assert first.notified == 4
    assert storage.count_comments() == 4
    assert sorted(record.id for record in notifier.sent) == ["c1", "c2", "c3", "c4"]

    comments = api.comments["k1"]
    comments[1] = dataclasses.replace(comments[1], text="edited text")
    storage.operations.clear()
    notifier.sent.clear()

    second = asyncio.run(processor.run())

    assert storage.operations == [("delete", "c2"), ("insert", "c2")]
    assert [record.id for record in notifier.sent] == ["c2"]
    assert notifier.sent[0].text == "edited text"
    assert second.updated == 1
    assert second.unchanged == 3
    assert storage.get_comment("c2").text == "edited text"
    assert storage.count_comments() == 4


def test_second_run_over_unchanged_upstream_is_idempotent() -> None:
    api = _scenario_api()
    storage = RecordingStorage()
    notifier = FakeNotifier()
    processor = _processor(api, storage, notifier)

    asyncio.run(processor.run())
    storage.operations.clear()
    notifier.sent.clear()

    report = asyncio.run(processor.run())

    assert storage.operations == []
    assert notifier.sent == []
    assert report.unchanged == 4
    assert report.notified == 0
    assert storage.count_comments() == 4


def test_dropped_pages_are_reported() -> None:
    api = _scenario_api()
    api.failing = {("comments", "k1", 2)}
    notifier = FakeNotifier()

    report = asyncio.run(_processor(api, FakeStorage(), notifier).run())

    assert report.new == 2
    assert report.fetch_stats.failed == {"comments": 1}
    assert sorted(record.id for record in notifier.sent) == ["c1", "c2"]


def test_persistence_failure_aborts_the_run() -> None:
    storage = FakeStorage()
    storage.fail_inserts = True
    notifier = FakeNotifier()

    with pytest.raises(PersistenceError):
        asyncio.run(_processor(_scenario_api(), storage, notifier).run())

    assert notifier.sent == []


def test_notification_failure_aborts_the_run() -> None:
    notifier = FakeNotifier(fail_on={"c1", "c2", "c3", "c4"})

    with pytest.raises(NotificationError):
        asyncio.run(_processor(_scenario_api(), FakeStorage(), notifier).run())


def test_run_timeout_cancels_a_stalled_run() -> None:
    api = _scenario_api()
    api.delay = 5.0

    with pytest.raises(RunTimeout):
        asyncio.run(_processor(api, FakeStorage(), FakeNotifier(), run_timeout=0.05).run())


class FailingThirdInsert(RecordingStorage):
    def __init__(self) -> None:
        super().__init__()
        self.failing = True

    def insert_comment(self, record) -> None:
        inserts = [op for op in self.operations if op[0] == "insert"]
        if self.failing and len(inserts) == 2:
            raise PersistenceError("disk is full")
        super().insert_comment(record)


def test_comments_stored_before_a_store_failure_are_still_notified() -> None:
    storage = FailingThirdInsert()
    notifier = FakeNotifier(delay=0.01)
    processor = _processor(_scenario_api(), storage, notifier)

    with pytest.raises(PersistenceError):
        asyncio.run(processor.run())

    assert [record.id for record in notifier.sent] == ["c1", "c2"]
    assert storage.count_comments() == 2

    storage.failing = False
    report = asyncio.run(processor.run())

    assert report.new == 2
    assert report.unchanged == 2
    assert sorted(record.id for record in notifier.sent) == ["c1", "c2", "c3", "c4"]


def test_delivery_failure_leaves_later_comments_new_for_the_next_run() -> None:
    storage = RecordingStorage()
    notifier = FakeNotifier(fail_on={"c1"})
    processor = _processor(_scenario_api(), storage, notifier)

    with pytest.raises(NotificationError):
        asyncio.run(processor.run())

    # Only the comment whose delivery failed was stored.
    assert storage.operations == [("insert", "c1")]

    notifier.fail_on = set()
    report = asyncio.run(processor.run())

    assert report.new == 3
    assert sorted(record.id for record in notifier.sent) == ["c2", "c3", "c4"]


def test_timed_out_run_only_stores_the_comment_in_delivery() -> None:
    storage = RecordingStorage()
    notifier = FakeNotifier(delay=5.0)

    with pytest.raises(RunTimeout):
        asyncio.run(_processor(_scenario_api(), storage, notifier, run_timeout=0.05).run())

    # The first comment was stored and is being delivered when the run stops.
    assert storage.operations == [("insert", "c1")]
