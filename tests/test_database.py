from __future__ import annotations

import pytest

from conftest import FakeTransport, make_issue
from issuedb.database import Database
from issuedb.errors import MalformedBodyError, RecordNotFound
from issuedb.github_issues import IssuesClient
from issuedb.models import Repository
from issuedb.retry import RetryConfig

WRITE_METHODS = ("create_issue", "update_issue", "close_issue")


@pytest.fixture
def make_db(clock, sleeps, logger):
    def _make(issues=(), **kwargs):
        transport = FakeTransport(issues)
        client = IssuesClient(
            transport, retry=RetryConfig(tries=2, base_sleep=0), logger=logger, sleep=sleeps
        )
        client.limiter._clock = clock
        db = Database(client, Repository("octo-org", "records"), logger=logger, **kwargs)
        db.cache._clock = clock
        return db, transport

    return _make


def _writes(transport):
    return [name for name, _ in transport.calls if name in WRITE_METHODS]


def test_create_then_read(make_db):
    db, transport = make_db()
    created = db.create("event123", {"cool": True}, body_before="# Event", body_after="bye")
    assert created.key == "event123"
    assert created.source_id == 1

    record = db.read("event123")
    assert record.data == {"cool": True}
    assert record.body_before == "# Event"
    assert record.body_after == "bye"
    # the write patched the cache instead of forcing a refetch
    assert len(transport.called("search_issues")) == 1


def test_create_adds_management_label_once(make_db):
    db, transport = make_db()
    db.create("k", 1, labels=["issue-db", "extra"], assignees=["octocat"])
    call = transport.called("create_issue")[0]
    assert call["labels"] == ["issue-db", "extra"]
    assert call["assignees"] == ["octocat"]


def test_create_without_assignees_passes_none(make_db):
    db, transport = make_db()
    db.create("k", 1)
    call = transport.called("create_issue")[0]
    assert call["labels"] == ["issue-db"]
    assert call["assignees"] is None


def test_create_is_idempotent(make_db, logger):
    db, transport = make_db([make_issue(8, "event123", {"v": 1})])
    record = db.create("event123", {"v": 2})
    assert record.data == {"v": 1}
    assert record.source_id == 8
    assert _writes(transport) == []
    assert logger.contains("an issue already exists with the key: event123")


def test_create_over_closed_key(make_db):
    db, transport = make_db([make_issue(8, "event123", {"v": 1}, state="closed")])
    assert db.create("event123", {"v": 2}).source_id == 9
    db2, transport2 = make_db([make_issue(8, "event123", {"v": 1}, state="closed")])
    assert db2.create("event123", {"v": 2}, include_closed=True).source_id == 8
    assert _writes(transport2) == []


def test_read_missing_key(make_db):
    db, _ = make_db()
    with pytest.raises(RecordNotFound) as exc_info:
        db.read("nope")
    assert "nope" in str(exc_info.value)


def test_read_closed_requires_include_closed(make_db):
    db, _ = make_db([make_issue(1, "old", 1, state="closed")])
    with pytest.raises(RecordNotFound):
        db.read("old")
    assert db.read("old", include_closed=True).closed


def test_update_preserves_surrounding_text(make_db):
    db, transport = make_db([make_issue(3, "k", {"v": 1}, body_before="top", body_after="bottom")])
    record = db.update("k", {"v": 2})
    assert record.data == {"v": 2}
    assert record.body_before == "top"
    assert record.body_after == "bottom"
    call = transport.called("update_issue")[0]
    assert set(call) == {"number", "title", "body"}
    assert db.read("k").data == {"v": 2}


def test_update_overrides_text_labels_and_assignees(make_db):
    db, transport = make_db([make_issue(3, "k", {"v": 1}, body_before="top")])
    record = db.update(
        "k", {"v": 2}, body_before="new top", labels=["issue-db", "x"], assignees=["a"]
    )
    assert record.body_before == "new top"
    call = transport.called("update_issue")[0]
    assert call["labels"] == ["x"]
    assert call["assignees"] == ["a"]


def test_update_missing_key(make_db):
    db, transport = make_db()
    with pytest.raises(RecordNotFound) as exc_info:
        db.update("nope", 1)
    assert "nope" in str(exc_info.value)
    assert _writes(transport) == []


def test_delete_missing_key(make_db):
    db, transport = make_db([make_issue(1, "other", 1)])
    with pytest.raises(RecordNotFound) as exc_info:
        db.delete("nope", labels=["archived"])
    assert "nope" in str(exc_info.value)
    assert exc_info.value.key == "nope"
    assert _writes(transport) == []


def test_delete_already_closed_requires_include_closed(make_db):
    db, transport = make_db([make_issue(1, "gone", 1, state="closed")])
    with pytest.raises(RecordNotFound):
        db.delete("gone")
    assert _writes(transport) == []
    assert db.delete("gone", include_closed=True).closed


def test_update_malformed_body_raises(make_db):
    db, transport = make_db([{"number": 1, "title": "k", "body": "hand written", "state": "open"}])
    with pytest.raises(MalformedBodyError):
        db.update("k", 1)
    assert _writes(transport) == []


def test_delete_closes_issue(make_db):
    db, transport = make_db([make_issue(4, "k", 1)])
    record = db.delete("k")
    assert record.closed
    assert transport.called("close_issue") == [{"number": 4}]
    assert transport.called("update_issue") == []
    with pytest.raises(RecordNotFound):
        db.read("k")
    assert db.read("k", include_closed=True).data == 1
    assert "k" not in db.list_keys()
    assert "k" in db.list_keys(include_closed=True)


def test_delete_with_labels_updates_first(make_db):
    db, transport = make_db([make_issue(4, "k", 1)])
    db.delete("k", labels=["archived"])
    names = [name for name, _ in transport.calls if name in WRITE_METHODS]
    assert names == ["update_issue", "close_issue"]
    assert transport.called("update_issue")[0] == {"number": 4, "labels": ["archived"]}


def test_patch_miss_forces_refresh(make_db, logger):
    db, transport = make_db([make_issue(4, "k", 1)])
    db.list_keys()
    db._patch_cache(make_issue(77, "elsewhere", 0))
    assert logger.contains("issue #77 not found in the issue cache - forcing a full refresh")
    assert len(transport.called("search_issues")) == 2


def test_list_and_keys(make_db):
    db, _ = make_db(
        [make_issue(1, "a", 1), make_issue(2, "b", 2, state="closed"), make_issue(3, "c", 3)]
    )
    assert db.list_keys() == ["c", "a"]
    assert db.list_keys(include_closed=True) == ["c", "b", "a"]
    assert [r.data for r in db.list()] == [3, 1]
    assert len(db.list(include_closed=True)) == 3


def test_list_raises_on_malformed_record(make_db):
    db, _ = make_db([make_issue(1, "a", 1), {"number": 2, "title": "b", "body": "", "state": "open"}])
    with pytest.raises(MalformedBodyError):
        db.list()


def test_refresh_forces_refetch(make_db):
    db, transport = make_db([make_issue(1, "a", 1)])
    db.list_keys()
    db.refresh()
    assert len(transport.called("search_issues")) == 2


def test_init_label(make_db, logger):
    db, transport = make_db()
    assert db.init_label() is True
    call = transport.called("add_label")[0]
    assert call["name"] == "issue-db"
    assert call["color"] == "000000"
    assert db.init_label() is False
    assert len(transport.called("add_label")) == 2
    assert logger.contains("label issue-db already exists")


def test_init_label_other_errors(make_db):
    db, transport = make_db()
    transport.fail_next("add_label", RuntimeError("403 forbidden"))
    with pytest.raises(RuntimeError, match="forbidden"):
        db.init_label()
    assert len(transport.called("add_label")) == 1
    transport.fail_next("add_label", RuntimeError("403 forbidden"))
    assert db.init_label(tolerate_errors=True) is False


def test_custom_label(make_db):
    db, transport = make_db(label="records")
    db.create("k", 1, labels=["records"])
    assert transport.called("create_issue")[0]["labels"] == ["records"]
    assert 'label:"records"' in transport.called("search_issues")[0]["query"]


def test_new_issue_shadows_closed_one_before_refresh(make_db):
    db, transport = make_db([make_issue(8, "event123", {"v": 1}, state="closed")])
    created = db.create("event123", {"v": 2})
    record = db.read("event123", include_closed=True)
    assert record.source_id == created.source_id == 9
    assert record.data == {"v": 2}
    db.refresh()
    assert db.read("event123", include_closed=True).source_id == 9
