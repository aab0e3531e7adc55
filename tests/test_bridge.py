# tests/test_bridge.py
"""Tests for the Bridge: import, export, clear, peek and view."""

import json
import tempfile
from datetime import date
from pathlib import Path

import pytest

from hydrastore.bridge import Bridge, BridgeState, data_to_files
from hydrastore.config import BridgeConfig
from hydrastore.errors import AmbiguousSelectionError, NotFoundError
from hydrastore.schema import (
    Array,
    Date,
    Number,
    String,
    Struct,
    TaggedStruct,
    Transform,
    Union,
    hydratable,
)
from hydrastore.storage import FileSystemIO, MemoryIO
from hydrastore.value import find_stubs, hydrate


HyA = hydratable(TaggedStruct("A", {"n": Number()}), keys=["n"])
HyB = hydratable(TaggedStruct("B", {"s": String()}), keys=["s"])
Container = Struct({"hyA": HyA})
ContainerArray = Struct({"as": Array(HyA)})
MultiContainer = Struct({"hyA": HyA, "hyB": HyB})

HyD = hydratable(TaggedStruct("D", {"id": String(), "data": String()}), keys=["id"])
HyC = hydratable(TaggedStruct("C", {"id": String(), "d": HyD}), keys=["id"])
Nested = Struct({"c": HyC})

Revision = hydratable(TaggedStruct("Revision", {"date": Date, "note": String()}), keys=["date"])
History = Struct({"revisions": Array(Revision)})

StringDataSingleton = hydratable(
    Transform(
        String(),
        TaggedStruct("StringData", {"data": String()}),
        decode=lambda s: {"_tag": "StringData", "data": s},
        encode=lambda v: v["data"],
    ),
    singleton=True,
)
WithSingleton = Struct({"singleton": StringDataSingleton})

HyK = hydratable(TaggedStruct("K", {"id": String(), "v": String()}), keys=["id"])
HyS = hydratable(TaggedStruct("S", {"k": HyK}), singleton=True)
WithKeyedSingleton = Struct({"s": HyS})
KEYED_SINGLETON_DATA = {"s": {"_tag": "S", "k": {"_tag": "K", "id": "k1", "v": "v"}}}


def a(n):
    return {"_tag": "A", "n": n}


NESTED_DATA = {"c": {"_tag": "C", "id": "c1", "d": {"_tag": "D", "id": "d1", "data": "x"}}}
D_STUB = {"_tag": "D", "id": "d1", "_dehydrated": True}


class CountingIO(MemoryIO):
    """MemoryIO that counts storage access."""

    def __init__(self, initial_files=None):
        super().__init__(initial_files)
        self.reads = 0
        self.listings = 0

    def read(self, name):
        self.reads += 1
        return super().read(name)

    def list_files(self):
        self.listings += 1
        return super().list_files()


class VanishingIO(MemoryIO):
    """MemoryIO whose listed files can disappear before they are read."""

    def __init__(self, initial_files, vanished):
        super().__init__(initial_files)
        self.vanished = set(vanished)

    def read(self, name):
        if name in self.vanished:
            raise FileNotFoundError(name)
        return super().read(name)


@pytest.fixture
def fragment_dir():
    """Create temporary fragment directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def exported(schema, data):
    """Storage holding the export of `data`."""
    io = MemoryIO()
    bridge = Bridge(schema, io=io)
    bridge.import_from_memory(data)
    bridge.export()
    return io


class TestConstruction:
    """Test Bridge setup."""

    def test_defaults_to_memory(self):
        bridge = Bridge(Nested)
        assert isinstance(bridge.io, MemoryIO)
        assert bridge.state is BridgeState.EMPTY
        assert len(bridge.index) == 0

    def test_directory(self, fragment_dir):
        bridge = Bridge(Nested, directory=fragment_dir)
        assert isinstance(bridge.io, FileSystemIO)
        assert bridge.io.directory == fragment_dir

    def test_from_config(self, fragment_dir):
        config = BridgeConfig(directory=fragment_dir, indent=None)
        bridge = Bridge.from_config(Container, config)
        bridge.import_from_memory({"hyA": a(1)})
        bridge.export()
        assert (fragment_dir / "A!n@1.json").read_text() == '{"_tag": "A", "n": 1}'

    def test_path_registry(self):
        bridge = Bridge(Nested)
        assert bridge.path_registry.requires_disambiguation("D")
        assert not bridge.path_registry.requires_disambiguation("C")


class TestImportFromMemory:
    """Test seeding the index from hydrated values."""

    def test_container(self):
        bridge = Bridge(Container)
        assert bridge.import_from_memory({"hyA": a(42)}) == 2
        assert bridge.index.keys() == ["__root__", "A!n@42"]
        assert bridge.state is BridgeState.POPULATED

    def test_multi_container(self):
        bridge = Bridge(MultiContainer)
        bridge.import_from_memory({"hyA": a(1), "hyB": {"_tag": "B", "s": "x"}})
        assert set(bridge.index.keys()) == {"__root__", "A!n@1", "B!s@x"}

    def test_array(self):
        bridge = Bridge(ContainerArray)
        assert bridge.import_from_memory({"as": [a(1), a(2)]}) == 3

    def test_nested(self):
        bridge = Bridge(Nested)
        bridge.import_from_memory(NESTED_DATA)
        assert set(bridge.index.keys()) == {"__root__", "C!id@c1", "C!id@c1___D!id@d1"}

    def test_hydratable_root(self):
        bridge = Bridge(HyA)
        assert bridge.import_from_memory(a(1)) == 1
        assert bridge.index.keys() == ["A!n@1"]

    def test_stubs_not_indexed(self):
        bridge = Bridge(Container)
        bridge.import_from_memory({"hyA": {"_tag": "A", "n": 1, "_dehydrated": True}})
        assert bridge.index.keys() == ["__root__"]


class TestExport:
    """Test writing fragments."""

    def test_one_file_per_fragment(self):
        io = exported(Nested, NESTED_DATA)
        assert io.list_files() == ["C!id@c1.json", "C!id@c1___D!id@d1.json", "__root__.json"]

    def test_file_content(self):
        io = exported(Nested, NESTED_DATA)
        assert json.loads(io.read("__root__.json")) == {
            "c": {"_tag": "C", "id": "c1", "_dehydrated": True},
        }
        assert json.loads(io.read("C!id@c1.json")) == {"_tag": "C", "id": "c1", "d": D_STUB}
        assert json.loads(io.read("C!id@c1___D!id@d1.json")) == NESTED_DATA["c"]["d"]

    def test_graph(self):
        bridge = Bridge(Nested)
        bridge.import_from_memory(NESTED_DATA)
        bridge.export()
        assert bridge.graph.children("__root__") == ["C!id@c1"]
        assert bridge.graph.children("C!id@c1") == ["C!id@c1___D!id@d1"]
        assert bridge.graph.topological_order()[-1] == "__root__"

    def test_discovers_children(self):
        """Hydrated children of an index entry are indexed and exported too."""
        bridge = Bridge(Nested)
        bridge.index.add("C!id@c1", NESTED_DATA["c"])
        assert bridge.export() == 2
        assert "C!id@c1___D!id@d1" in bridge.index
        assert bridge.io.list_files() == ["C!id@c1.json", "C!id@c1___D!id@d1.json"]

    def test_subset(self):
        bridge = Bridge(Nested)
        bridge.import_from_memory(NESTED_DATA)
        assert bridge.export(["C!id@c1"]) == 1
        assert bridge.io.list_files() == ["C!id@c1.json"]

    def test_subset_unknown_locator(self):
        bridge = Bridge(Nested)
        with pytest.raises(NotFoundError):
            bridge.export(["C!id@missing"])

    def test_export_to_memory_writes_nothing(self):
        bridge = Bridge(Container)
        bridge.import_from_memory({"hyA": a(1)})
        assets = bridge.export_to_memory()
        assert sorted(asset.filename for asset in assets) == ["A!n@1.json", "__root__.json"]
        assert bridge.io.list_files() == []

    def test_singleton_file(self):
        io = exported(WithSingleton, {"singleton": {"_tag": "StringData", "data": "test data"}})
        [singleton_file] = [name for name in io.list_files() if name.startswith("StringData")]
        digest = singleton_file[len("StringData!hash@"):-len(".json")]
        assert len(digest) == 64
        assert int(digest, 16) >= 0
        assert json.loads(io.read(singleton_file)) == "test data"


class TestImport:
    """Test loading fragment files."""

    def test_import(self):
        bridge = Bridge(Nested, io=exported(Nested, NESTED_DATA))
        assert bridge.import_() == 3
        assert bridge.index.get("C!id@c1") == {"_tag": "C", "id": "c1", "d": D_STUB}
        assert bridge.state is BridgeState.POPULATED

    def test_restores_exported_index(self):
        bridge = Bridge(Nested)
        bridge.import_from_memory(NESTED_DATA)
        bridge.export()
        before = bridge.index.keys()

        bridge.index.clear()
        bridge.import_()
        assert sorted(bridge.index.keys()) == sorted(before)
        assert bridge.index.get("C!id@c1___D!id@d1") == NESTED_DATA["c"]["d"]

    def test_skips_other_files(self):
        io = exported(Container, {"hyA": a(1)})
        io.write("notes.txt", "not a fragment")
        assert Bridge(Container, io=io).import_() == 2

    def test_skips_vanished_files(self):
        files = exported(Container, {"hyA": a(1)}).files
        io = VanishingIO(files, ["A!n@1.json"])
        bridge = Bridge(Container, io=io)
        assert bridge.import_() == 1
        assert bridge.index.keys() == ["__root__"]

    def test_decodes_transformed_fields(self):
        data = {"revisions": [{"_tag": "Revision", "date": date(2024, 1, 15), "note": "first"}]}
        bridge = Bridge(History, io=exported(History, data))
        bridge.import_()
        assert bridge.index.get("Revision!date@2024-01-15")["date"] == date(2024, 1, 15)


class TestClear:
    """Test clearing storage and index."""

    def test_clear(self):
        io = exported(Nested, NESTED_DATA)
        io.write("notes.txt", "kept")
        bridge = Bridge(Nested, io=io)
        bridge.import_()

        assert bridge.clear() == 3
        assert io.list_files() == ["notes.txt"]
        assert len(bridge.index) == 0
        assert len(bridge.graph) == 0
        assert bridge.state is BridgeState.EMPTY

    def test_clear_empty(self):
        assert Bridge(Nested).clear() == 0


class TestView:
    """Test hydrating the root value."""

    def test_round_trip(self, fragment_dir):
        writer = Bridge(Nested, directory=fragment_dir)
        writer.import_from_memory(NESTED_DATA)
        writer.export()

        reader = Bridge(Nested, directory=fragment_dir)
        assert reader.view() == NESTED_DATA

    def test_round_trip_transformed(self):
        data = {
            "revisions": [
                {"_tag": "Revision", "date": date(2024, 1, 15), "note": "first"},
                {"_tag": "Revision", "date": date(2024, 2, 1), "note": "second"},
            ]
        }
        assert Bridge(History, io=exported(History, data)).view() == data

    def test_round_trip_singleton(self):
        data = {"singleton": {"_tag": "StringData", "data": "test data"}}
        assert Bridge(WithSingleton, io=exported(WithSingleton, data)).view() == data

    def test_round_trip_singleton_with_keyed_child(self):
        io = exported(WithKeyedSingleton, KEYED_SINGLETON_DATA)
        assert any(name.startswith("S!hash@") and "___K!id@k1" in name for name in io.files)
        assert Bridge(WithKeyedSingleton, io=io).view() == KEYED_SINGLETON_DATA

    def test_view_from_memory(self):
        bridge = Bridge(MultiContainer)
        data = {"hyA": a(1), "hyB": {"_tag": "B", "s": "x"}}
        bridge.import_from_memory(data)
        assert bridge.view() == data

    def test_hydratable_root(self):
        assert Bridge(HyA, io=exported(HyA, a(7))).view() == a(7)

    def test_union_root(self):
        schema = Union(HyA, HyB)
        assert Bridge(schema, io=exported(schema, {"_tag": "B", "s": "x"})).view() == {"_tag": "B", "s": "x"}

    def test_missing_fragment_stays_stub(self):
        io = exported(Nested, NESTED_DATA)
        io.remove("C!id@c1___D!id@d1.json")
        assert Bridge(Nested, io=io).view() == {"c": {"_tag": "C", "id": "c1", "d": D_STUB}}

    def test_empty_store(self):
        with pytest.raises(NotFoundError):
            Bridge(Nested).view()

    def test_empty_store_hydratable_root(self):
        with pytest.raises(NotFoundError):
            Bridge(HyA).view()


class TestPeek:
    """Test loading selected fragments."""

    @pytest.mark.parametrize("selection", [None, {}])
    def test_empty_selection(self, selection):
        io = CountingIO(exported(Nested, NESTED_DATA).files)
        bridge = Bridge(Nested, io=io)
        assert bridge.peek(selection) == {}
        assert io.reads == 0
        assert io.listings == 0
        assert bridge.state is BridgeState.EMPTY

    def test_key_set(self):
        bridge = Bridge(Nested, io=exported(Nested, NESTED_DATA))
        result = bridge.peek({"C": {"id": "c1"}})
        assert result == {"C": {"_tag": "C", "id": "c1", "d": D_STUB}}
        assert bridge.index.keys() == ["C!id@c1"]
        assert bridge.state is BridgeState.POPULATED

    def test_nested_with_parent(self):
        bridge = Bridge(Nested, io=exported(Nested, NESTED_DATA))
        result = bridge.peek({"D": {"id": "d1", "$C": {"id": "c1"}}})
        assert result == {"D": NESTED_DATA["c"]["d"]}

    def test_peeked_singleton_hydrates_children(self):
        bridge = Bridge(WithKeyedSingleton, io=exported(WithKeyedSingleton, KEYED_SINGLETON_DATA))
        bridge.import_()
        peeked = bridge.peek({"S": True})
        assert find_stubs(peeked["S"])
        assert hydrate(peeked, bridge.index, context=bridge.context) == {"S": [KEYED_SINGLETON_DATA["s"]]}

    def test_nested_without_parent(self):
        bridge = Bridge(Nested, io=exported(Nested, NESTED_DATA))
        with pytest.raises(AmbiguousSelectionError):
            bridge.peek({"D": {"id": "d1"}})

    def test_missing_is_absent(self):
        bridge = Bridge(Nested, io=exported(Nested, NESTED_DATA))
        assert bridge.peek({"C": {"id": "nope"}}) == {}

    def test_list(self):
        bridge = Bridge(ContainerArray, io=exported(ContainerArray, {"as": [a(1), a(2)]}))
        assert bridge.peek({"A": [{"n": 2}, {"n": 99}]}) == {"A": [a(2)]}

    def test_coverage(self):
        bridge = Bridge(ContainerArray, io=exported(ContainerArray, {"as": [a(3), a(1), a(2)]}))
        assert bridge.peek({"A": True}) == {"A": [a(1), a(2), a(3)]}

    def test_coverage_includes_index_entries(self):
        bridge = Bridge(ContainerArray)
        bridge.import_from_memory({"as": [a(1)]})
        assert bridge.peek({"A": {}}) == {"A": [a(1)]}

    def test_served_from_index(self):
        io = CountingIO(exported(Nested, NESTED_DATA).files)
        bridge = Bridge(Nested, io=io)
        bridge.peek({"C": {"id": "c1"}})
        bridge.peek({"C": {"id": "c1"}})
        assert io.reads == 1
        assert bridge.index.stats.hits == 1


class TestDehydrate:
    """Test Bridge.dehydrate and data_to_files."""

    def test_dehydrate_is_pure(self):
        bridge = Bridge(Nested)
        assert bridge.dehydrate(NESTED_DATA) == {"c": {"_tag": "C", "id": "c1", "_dehydrated": True}}
        assert len(bridge.index) == 0
        assert bridge.state is BridgeState.EMPTY

    def test_data_to_files(self):
        assets = data_to_files({"hyA": a(42)}, Container)
        contents = {asset.filename: json.loads(asset.content) for asset in assets}
        assert contents == {
            "__root__.json": {"hyA": {"_tag": "A", "n": 42, "_dehydrated": True}},
            "A!n@42.json": a(42),
        }

    def test_data_to_files_singleton(self):
        assets = data_to_files({"singleton": {"_tag": "StringData", "data": "test data"}}, WithSingleton)
        names = [asset.filename for asset in assets]
        assert "__root__.json" in names
        singleton = [asset for asset in assets if asset.filename.startswith("StringData!hash@")]
        assert len(singleton) == 1
        assert singleton[0].content == '"test data"'
