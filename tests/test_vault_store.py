"""Unit tests for vault/store.py -- VaultStore query and write methods.

Covers:
- create/get round trip, tags and favorite conversion
- Ownership: another user's item id behaves like a missing one
- list_items() ordering (favorites first) and category filter
- search_items() across fields, case-insensitive, literal LIKE wildcards, limit
- Trash lifecycle: soft_delete -> list_trash -> restore / purge; purge of a live item
- update_item() field whitelist and trashed-item rejection
- category_counts() and all_items()
"""

from datetime import datetime, timedelta, timezone

import pytest

import vault.store
from vault.models import VaultItem
from vault.store import VaultStore

OWNER = 1
OTHER = 2


def _item(name, user_id=OWNER, category="password", **kwargs):
    return VaultItem(user_id=user_id, category=category, name=name, **kwargs)


@pytest.fixture
def store():
    s = VaultStore("sqlite:///:memory:")
    yield s
    s.close()


def _long_ago():
    return (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreateAndGet:
    def test_round_trip(self, store):
        item_id = store.create_item(
            _item(
                "GitHub",
                website="https://github.com",
                username="octo",
                password="iv:tag:ct",
                notes="2FA on",
                tags=["dev", "work"],
                favorite=True,
            )
        )
        item = store.get_item(item_id, OWNER)
        assert item.id == item_id
        assert item.name == "GitHub"
        assert item.password == "iv:tag:ct"
        assert item.tags == ["dev", "work"]
        assert item.favorite is True
        assert item.deleted is False
        assert item.created_at and item.updated_at

    def test_other_user_cannot_read(self, store):
        item_id = store.create_item(_item("GitHub"))
        assert store.get_item(item_id, OTHER) is None

    def test_missing_item(self, store):
        assert store.get_item(12345, OWNER) is None


class TestListAndSearch:
    def test_favorites_first_and_scoped(self, store):
        store.create_item(_item("plain"))
        store.create_item(_item("starred", favorite=True))
        store.create_item(_item("someone else's", user_id=OTHER))
        names = [i.name for i in store.list_items(OWNER)]
        assert names[0] == "starred"
        assert sorted(names) == ["plain", "starred"]

    def test_category_filter(self, store):
        store.create_item(_item("login"))
        store.create_item(_item("passport scan", category="document"))
        assert [i.name for i in store.list_items(OWNER, category="document")] == ["passport scan"]

    def test_list_excludes_trash(self, store):
        item_id = store.create_item(_item("gone"))
        store.soft_delete(item_id, OWNER)
        assert store.list_items(OWNER) == []

    @pytest.mark.parametrize(
        "query",
        ["github", "GITHUB", "octo", "example.org", "recovery", "work"],
    )
    def test_search_fields(self, store, query):
        store.create_item(
            _item(
                "GitHub",
                website="https://example.org",
                username="octocat",
                notes="Recovery codes in safe",
                tags=["work"],
            )
        )
        assert [i.name for i in store.search_items(OWNER, query)] == ["GitHub"]

    def test_search_does_not_match_password(self, store):
        store.create_item(_item("Bank", password="needle"))
        assert store.search_items(OWNER, "needle") == []

    def test_search_wildcards_are_literal(self, store):
        store.create_item(_item("100% secure"))
        store.create_item(_item("plain name"))
        assert [i.name for i in store.search_items(OWNER, "%")] == ["100% secure"]
        assert store.search_items(OWNER, "_") == []

    def test_search_scoped_and_limited(self, store):
        for n in range(5):
            store.create_item(_item(f"mail {n}"))
        store.create_item(_item("mail other", user_id=OTHER))
        assert len(store.search_items(OWNER, "mail", limit=3)) == 3
        assert len(store.search_items(OWNER, "mail")) == 5


# ---------------------------------------------------------------------------
# Update / trash lifecycle
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_update_fields(self, store):
        item_id = store.create_item(_item("old"))
        assert store.update_item(item_id, OWNER, name="new", tags=["a"], favorite=True)
        item = store.get_item(item_id, OWNER)
        assert (item.name, item.tags, item.favorite) == ("new", ["a"], True)

    def test_update_other_user(self, store):
        item_id = store.create_item(_item("mine"))
        assert not store.update_item(item_id, OTHER, name="stolen")
        assert store.get_item(item_id, OWNER).name == "mine"

    def test_update_trashed_item(self, store):
        item_id = store.create_item(_item("trashed"))
        store.soft_delete(item_id, OWNER)
        assert not store.update_item(item_id, OWNER, name="nope")

    def test_update_unknown_field(self, store):
        item_id = store.create_item(_item("x"))
        with pytest.raises(ValueError):
            store.update_item(item_id, OWNER, deleted=1)

    def test_update_cannot_reassign_owner(self, store):
        item_id = store.create_item(_item("x"))
        with pytest.raises(ValueError):
            store.update_item(item_id, OWNER, owner=OTHER)
        assert store.get_item(item_id, OWNER).user_id == OWNER

    def test_update_bumps_updated_at(self, store, monkeypatch):
        item_id = store.create_item(_item("x"))
        monkeypatch.setattr(vault.store, "_now_iso", lambda: "2030-01-01T00:00:00+00:00")
        store.update_item(item_id, OWNER, notes="changed")
        assert store.get_item(item_id, OWNER).updated_at == "2030-01-01T00:00:00+00:00"


class TestTrash:
    def test_soft_delete_then_restore(self, store):
        item_id = store.create_item(_item("x"))
        assert store.soft_delete(item_id, OWNER)
        assert store.get_item(item_id, OWNER) is None
        assert store.get_item(item_id, OWNER, include_trashed=True).deleted is True
        assert store.get_item(item_id, OTHER, include_trashed=True) is None
        trash = store.list_trash(OWNER, _long_ago())
        assert [i.id for i in trash] == [item_id]
        assert trash[0].deleted is True
        assert trash[0].deleted_at

        assert store.restore(item_id, OWNER)
        assert store.get_item(item_id, OWNER) is not None
        assert store.list_trash(OWNER, _long_ago()) == []

    def test_trash_window(self, store):
        item_id = store.create_item(_item("x"))
        store.soft_delete(item_id, OWNER)
        future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        assert store.list_trash(OWNER, future) == []

    def test_purge_trashed_item(self, store):
        item_id = store.create_item(_item("x"))
        store.soft_delete(item_id, OWNER)
        assert not store.purge(item_id, OTHER)
        assert store.purge(item_id, OWNER)
        assert store.list_trash(OWNER, _long_ago()) == []
        assert not store.restore(item_id, OWNER)
        assert not store.purge(item_id, OWNER)

    def test_purge_live_item(self, store):
        item_id = store.create_item(_item("x"))
        assert not store.purge(item_id, OTHER)
        assert store.get_item(item_id, OWNER) is not None
        assert store.purge(item_id, OWNER)
        assert store.get_item(item_id, OWNER, include_trashed=True) is None

    def test_restore_live_item(self, store):
        item_id = store.create_item(_item("x"))
        assert not store.restore(item_id, OWNER)

    def test_double_delete(self, store):
        item_id = store.create_item(_item("x"))
        assert store.soft_delete(item_id, OWNER)
        assert not store.soft_delete(item_id, OWNER)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class TestAggregates:
    def test_category_counts(self, store):
        store.create_item(_item("a"))
        store.create_item(_item("b"))
        store.create_item(_item("c", category="personal"))
        store.create_item(_item("d", user_id=OTHER))
        trashed = store.create_item(_item("e", category="photo"))
        store.soft_delete(trashed, OWNER)
        assert store.category_counts(OWNER) == {"password": 2, "personal": 1}

    def test_all_items_oldest_first(self, store):
        ids = [store.create_item(_item(f"item {n}")) for n in range(3)]
        assert [i.id for i in store.all_items(OWNER)] == ids

    def test_ping(self, store):
        assert store.ping()
