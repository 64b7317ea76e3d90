from __future__ import annotations

import pytest

from commentwatch.adapters.sqlite_storage import SQLiteStorage
from commentwatch.core.errors import PersistenceError
from commentwatch.core.models import CommentRecord

from fakes import make_account, make_claim, make_comment


def _storage() -> SQLiteStorage:
    storage = SQLiteStorage(":memory:")
    storage.init_db()
    return storage


def _record(comment_id: str = "c1", text: str = "hello") -> CommentRecord:
    return CommentRecord.from_observation(make_account("a1"), make_claim("k1"), make_comment(comment_id, text=text))


def test_stored_record_reads_back_identically() -> None:
    storage = _storage()
    record = _record()

    storage.insert_comment(record)

    assert storage.get_comment("c1") == record
    assert storage.get_comment("missing") is None
    assert storage.count_comments() == 1


def test_init_db_is_idempotent(tmp_path) -> None:
    path = str(tmp_path / "comments.db")
    storage = SQLiteStorage(path)
    storage.init_db()
    storage.insert_comment(_record())
    storage.close()

    reopened = SQLiteStorage(path)
    reopened.init_db()
    assert reopened.count_comments() == 1
    reopened.close()


def test_duplicate_id_is_a_persistence_error() -> None:
    storage = _storage()
    storage.insert_comment(_record())

    with pytest.raises(PersistenceError):
        storage.insert_comment(_record(text="again"))


def test_transaction_commits_replacement() -> None:
    storage = _storage()
    storage.insert_comment(_record(text="before"))

    with storage.transaction():
        storage.delete_comment("c1")
        storage.insert_comment(_record(text="after"))

    assert storage.get_comment("c1").text == "after"


def test_failed_transaction_rolls_back_the_delete() -> None:
    storage = _storage()
    storage.insert_comment(_record("c1", text="before"))
    storage.insert_comment(_record("c2"))

    with pytest.raises(PersistenceError):
        with storage.transaction():
            storage.delete_comment("c1")
            # c2 already exists, so the insert fails after the delete ran.
            storage.insert_comment(_record("c2"))

    assert storage.get_comment("c1").text == "before"
    assert storage.count_comments() == 2
