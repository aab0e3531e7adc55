# tests/test_index.py
"""Tests for the fragment index."""

from hydrastore import index as index_
from hydrastore import uhl
from hydrastore.index import FragmentIndex


class TestFragmentIndex:
    """Test FragmentIndex class."""

    def test_initial_state(self):
        index = index_.create()
        assert len(index) == 0
        assert index.root is None

    def test_add_and_get(self):
        index = FragmentIndex()
        value = {"_tag": "A", "n": 42}
        locator = uhl.make(uhl.make_segment("A", {"n": 42}))

        key = index_.add(index, locator, value)
        assert key == "A!n@42"
        assert index_.get(index, locator) is value
        assert index.get("A!n@42") is value

    def test_equivalent_locators_share_entry(self):
        index = FragmentIndex()
        index.add(uhl.make(uhl.make_segment("T", {"b": "2", "a": "1"})), "first")
        index.add("T!a@1!b@2", "second")
        assert len(index) == 1
        assert index.get(uhl.from_string("T!a@1!b@2")) == "second"

    def test_miss_returns_none(self):
        index = FragmentIndex()
        assert index.get("A!n@1") is None

    def test_stats(self):
        """Test hit/miss stats."""
        index = FragmentIndex()
        index.add("A!n@1", {"_tag": "A", "n": 1})

        index.get("A!n@2")
        assert index.stats.misses == 1

        index.get("A!n@1")
        assert index.stats.hits == 1
        assert index.stats.hit_rate == 0.5

    def test_has_does_not_count(self):
        index = FragmentIndex()
        index.add("A!n@1", 1)
        assert index.has("A!n@1")
        assert "A!n@1" in index
        assert index.stats.hits == 0

    def test_root_entry(self):
        index = FragmentIndex()
        index.add(uhl.root(), {"items": []})
        assert index.root == {"items": []}
        assert index.keys() == ["__root__"]

    def test_remove_and_clear(self):
        index = FragmentIndex()
        index.add("A!n@1", 1)
        index.add("A!n@2", 2)

        assert index.remove("A!n@1")
        assert not index.remove("A!n@1")
        assert len(index) == 1

        index.clear()
        assert len(index) == 0
        assert index.stats.hits == 0

    def test_adt_memory(self):
        """The adt seen for a tag is remembered for stub resolution."""
        index = FragmentIndex()
        index.add("Schema@SchemaVersioned!version@1.0.0", 1)
        index.add("Schema@SchemaVersioned!version@1.0.0___Revision@RevisionInitial!date@2024-01-15", 2)
        assert index.adt_for("SchemaVersioned") == "Schema"
        assert index.adt_for("RevisionInitial") == "Revision"
        assert index.adt_for("Unknown") is None

    def test_items_and_locators(self):
        index = FragmentIndex()
        index.add("A!n@1", 1)
        index.add("C!id@c1___D!id@d1", 2)
        assert dict(index.items()) == {"A!n@1": 1, "C!id@c1___D!id@d1": 2}
        assert [len(u) for u in index.locators()] == [1, 2]
        assert list(index) == ["A!n@1", "C!id@c1___D!id@d1"]

    def test_find_stored_value(self):
        """Identity beats equality; stats are untouched."""
        index = FragmentIndex()
        stored = {"_tag": "S", "v": 1}
        index.add("__root__", {"_tag": "S", "v": 1})
        index.add("P!id@p1___S!hash@aa", {"_tag": "S", "v": 1})
        index.add("S!hash@bb", stored)
        assert str(index.find(stored, "S")) == "S!hash@bb"
        assert str(index.find(dict(stored), "S")) == "P!id@p1___S!hash@aa"
        assert index.find(stored, "T") is None
        assert index.stats.hits == 0
        assert index.stats.misses == 0
