"""Tests for scope parsing, index tags and filters."""

import pytest

from inventory_libs.common.scope import SearchScope, require_scope
from inventory_libs.vector_index.base import (
    IndexableItem,
    item_source_text,
    scope_filter,
    scope_tags,
    top_k_for,
)

from .fakes import _matches


def test_parse_scopes():
    """Test household and owner scopes parse and render back."""
    household = SearchScope.parse("household:hh-1")
    owner = SearchScope.parse(" owner:user-1 ")

    assert household.household_id == "hh-1"
    assert household.owner_user_id is None
    assert owner.owner_user_id == "user-1"
    assert owner.household_id is None
    assert str(household) == "household:hh-1"
    assert owner.key == "owner:user-1"


@pytest.mark.parametrize("value", ["", "household", "team:1", "household:", "household:a:b", None])
def test_parse_rejects_malformed_scopes(value):
    """Test malformed scope strings raise ValueError."""
    with pytest.raises(ValueError):
        SearchScope.parse(value)


def test_legacy_owner_scope():
    """Test rows with no owner share the legacy owner scope."""
    scope = SearchScope.owner(None)

    assert scope.key == "owner:__legacy__"
    assert scope.owner_user_id is None


def test_require_scope():
    """Test searches never run without a scope."""
    scope = SearchScope.household("hh-1")

    assert require_scope(scope) is scope
    with pytest.raises(ValueError):
        require_scope(None)
    with pytest.raises(ValueError):
        require_scope("household:hh-1")


def test_tags_match_only_their_own_scope():
    """Test each item's tags satisfy exactly its own scope's filter."""
    scopes = [
        SearchScope.household("hh-1"),
        SearchScope.household("hh-2"),
        SearchScope.owner("user-1"),
        SearchScope.owner(None),
    ]
    items = [IndexableItem.in_scope(scope, id=f"item-{n}", name="Drill") for n, scope in enumerate(scopes)]

    for scope in scopes:
        matching = [item.id for item in items if _matches(scope_filter(scope), scope_tags(item))]
        assert matching == [f"item-{scopes.index(scope)}"]


def test_legacy_item_tags():
    """Test items with no owner or household are tagged with sentinels."""
    tags = scope_tags(IndexableItem(id="item-1", name="Drill"))

    assert tags == {"owner_user_id": "__legacy__", "household_id": "__none__"}


def test_household_filter_ignores_owner():
    """Test a household filter selects on the household tag alone."""
    assert scope_filter(SearchScope.household("hh-1")) == {"household_id": {"$eq": "hh-1"}}


@pytest.mark.parametrize("limit,offset,expected", [
    (20, 0, 70),
    (10, 0, 64),
    (10, 10, 70),
    (100, 0, 150),
    (100, 400, 512),
    (1, 0, 64),
])
def test_top_k_for(limit, offset, expected):
    """Test the index query size is clamped to [64, 512]."""
    assert top_k_for(limit, offset) == expected


def test_item_source_text():
    """Test source text joins non-empty parts on separate lines."""
    assert item_source_text("Drill", "  ", [" cordless ", "", "power"]) == "Drill\ncordless power"
    assert item_source_text("Drill", None, None) == "Drill"
