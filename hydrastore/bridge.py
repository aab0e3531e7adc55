# hydrastore/bridge.py
"""
Bridge: registry + index + fragment storage.

A Bridge binds one schema to one fragment store (a directory or any
FragmentIO) and moves values between three forms:

    hydrated value  --import_from_memory-->  index  --export-->  files
    files  --import_-->  index  --view-->  hydrated value

Index entries are raw fragment values. Export dehydrates each entry's
children so every file holds one fragment with stubs for the rest.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import uhl as uhl_
from .config import BridgeConfig
from .errors import NotFoundError
from .fragment import FragmentAsset, fragment_asset_to_fragment, fragment_to_asset
from .graph import DependencyGraph
from .index import FragmentIndex
from .paths import build_path_registry, build_paths_tree, locate_hydratables
from .registry import create_context
from .schema import Hydratable, SchemaNode, Union
from .selection import resolve as resolve_selection
from .storage import FileSystemIO, FragmentIO, MemoryIO
from .uhl import Uhl
from .value import dehydrate, hydrate_fragment

logger = logging.getLogger(__name__)


class BridgeState(Enum):
    """Whether the bridge's index holds anything yet."""
    EMPTY = "empty"
    POPULATED = "populated"


class Bridge:
    """
    Persistence facade for one schema.

    Usage:
        bridge = Bridge(CatalogSchema, directory="./data")
        bridge.import_from_memory(catalog)
        bridge.export()

        fresh = Bridge(CatalogSchema, directory="./data")
        catalog = fresh.view()
    """

    def __init__(
        self,
        schema: SchemaNode,
        directory: Path | str = None,
        io: FragmentIO = None,
        config: BridgeConfig = None,
    ):
        """
        Args:
            schema: Root schema
            directory: Fragment directory (overrides config.directory)
            io: Storage to use instead of a directory
            config: Indent and hash settings
        """
        self.config = config or BridgeConfig(directory=directory)
        if io is None:
            directory = directory if directory is not None else self.config.directory
            io = FileSystemIO(directory) if directory is not None else MemoryIO()
        self.io = io

        self.schema = schema
        self.context = create_context(schema, self.config.hash_algorithm)
        self.tree = build_paths_tree(schema, self.context)
        self.path_registry = build_path_registry(self.tree)
        self.index = FragmentIndex()
        self.graph = DependencyGraph()
        self.state = BridgeState.EMPTY

    @classmethod
    def from_config(cls, schema: SchemaNode, config: BridgeConfig) -> "Bridge":
        return cls(schema, config=config)

    def _populated(self) -> None:
        if self.state is BridgeState.EMPTY:
            logger.debug("Bridge populated")
        self.state = BridgeState.POPULATED

    def _fragment_files(self) -> List[str]:
        return [name for name in self.io.list_files() if name.endswith(uhl_.FILE_EXTENSION)]

    def _read(self, name: str) -> Tuple[Uhl, Any]:
        return fragment_asset_to_fragment(FragmentAsset(name, self.io.read(name)), self.context)

    # Import

    def import_(self) -> int:
        """
        Load every fragment file into the index.

        Returns:
            Number of fragments imported
        """
        count = 0
        for name in self._fragment_files():
            try:
                locator, value = self._read(name)
            except FileNotFoundError:
                logger.debug(f"Fragment vanished during import: {name}")
                continue
            self.index.add(locator, value)
            count += 1
        self._populated()
        logger.info(f"Imported {count} fragments")
        return count

    def import_from_memory(self, data: Any) -> int:
        """
        Seed the index from a hydrated value.

        Every hydratable found in the value is indexed at its locator.
        A root that is not itself hydratable is indexed at the root
        locator.

        Returns:
            Number of index entries added
        """
        located = locate_hydratables(data, self.tree, self.context, hydrated_only=True)
        count = 0
        if not self.context.is_hydratable(data):
            self.index.add(uhl_.root(), data)
            count += 1
        for item in located:
            self.index.add(item.uhl, item.value)
            count += 1
        self._populated()
        logger.debug(f"Indexed {count} entries from memory")
        return count

    # Export

    def export_to_memory(self, locators: Iterable[Any] = None) -> List[FragmentAsset]:
        """
        Render index entries as fragment assets without writing them.

        Hydrated children met while dehydrating an entry are added to
        the index; when exporting everything they are rendered too.
        The dependency graph of the pass is kept as `self.graph`.

        Args:
            locators: Only render these entries (default: all)
        """
        if locators is None:
            pending = [(uhl_.from_string(key), value) for key, value in self.index.items()]
        else:
            pending = []
            for locator in locators:
                locator = uhl_.coerce(locator)
                value = self.index.get(locator)
                if value is None:
                    raise NotFoundError(f"No index entry at {locator}")
                pending.append((locator, value))

        graph = DependencyGraph()
        assets: List[FragmentAsset] = []
        done = set()
        while pending:
            locator, value = pending.pop(0)
            key = uhl_.to_string(locator)
            if key in done:
                continue
            done.add(key)

            asset, result = fragment_to_asset(locator, value, self.context, self.config.indent)
            graph.merge(result.graph)
            assets.append(asset)

            for found in result.fragments:
                if not self.index.has(found.uhl):
                    self.index.add(found.uhl, found.value)
                    self._populated()
                    if locators is None:
                        pending.append((found.uhl, found.value))

        self.graph = graph
        return assets

    def export(self, locators: Iterable[Any] = None) -> int:
        """
        Write index entries to storage, one file per fragment.

        Files are written independently; a failure part way leaves
        the files written so far in place.

        Returns:
            Number of files written
        """
        assets = self.export_to_memory(locators)
        for asset in assets:
            self.io.write(asset.filename, asset.content)
        logger.info(f"Exported {len(assets)} fragments")
        return len(assets)

    # Clear

    def clear(self) -> int:
        """Delete every fragment file and empty the index."""
        names = self._fragment_files()
        for name in names:
            self.io.remove(name)
        self.index.clear()
        self.graph = DependencyGraph()
        self.state = BridgeState.EMPTY
        logger.info(f"Cleared {len(names)} fragments")
        return len(names)

    # Peek

    def peek(self, selection: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Load selected fragments without hydrating them.

        Each locator is served from the index when present, otherwise
        read from storage and added to the index. Missing fragments are
        left out of the result.

        Args:
            selection: Tag -> selector (see hydrastore.selection)

        Returns:
            Tag -> fragment (or list of fragments for list and
            coverage selectors). Values may still contain stubs.
        """
        if not selection:
            return {}

        result: Dict[str, Any] = {}
        for entry in resolve_selection(selection, self.context, self.path_registry):
            if entry.coverage:
                values = [self._peek_one(locator) for locator in self._stored_with_tag(entry.tag)]
            else:
                values = [self._peek_one(locator) for locator in entry.uhls]
            values = [v for v in values if v is not None]

            if entry.many:
                result[entry.tag] = values
            elif values:
                result[entry.tag] = values[0]

        self._populated()
        logger.debug(
            f"Peeked {len(result)} selections "
            f"(index hit rate {self.index.stats.hit_rate:.0%})"
        )
        return result

    def _peek_one(self, locator: Uhl) -> Optional[Any]:
        value = self.index.get(locator)
        if value is not None:
            return value
        try:
            _, value = self._read(uhl_.to_file_name(locator))
        except FileNotFoundError:
            return None
        self.index.add(locator, value)
        return value

    def _stored_with_tag(self, tag: str) -> List[Uhl]:
        found: Dict[str, Uhl] = {}
        for locator in self.index.locators():
            if locator.last is not None and locator.last.tag == tag:
                found[uhl_.to_string(locator)] = locator
        for name in self._fragment_files():
            locator = uhl_.from_file_name(name)
            if locator.last is not None and locator.last.tag == tag:
                found.setdefault(uhl_.to_string(locator), locator)
        return [found[key] for key in sorted(found)]

    # View

    def view(self) -> Any:
        """
        Import everything and return the fully hydrated root value.

        Raises:
            NotFoundError: if no index entry satisfies the root schema
        """
        self.import_()

        root_value = self.index.root
        if root_value is not None:
            return hydrate_fragment(root_value, self.index, uhl_.root(), self.context)

        found = self._find_root()
        if found is None:
            raise NotFoundError(
                "View could not find a root value. "
                "Import or export data for this schema first."
            )
        locator, value = found
        return hydrate_fragment(value, self.index, locator, self.context)

    def _find_root(self) -> Optional[Tuple[Uhl, Any]]:
        root = self.schema.resolve()
        entries = sorted(
            ((uhl_.from_string(key), value) for key, value in self.index.items()),
            key=lambda item: (len(item[0]), uhl_.to_string(item[0])),
        )

        if isinstance(root, Hydratable):
            tags = root.tags()
            adt = getattr(root.config, "name", None)
            for locator, value in entries:
                if len(locator) != 1:
                    continue
                if locator.last.tag in tags:
                    return locator, value
                if adt and uhl_.to_string(locator).startswith(f"{adt}{uhl_.ADT_SEPARATOR}"):
                    return locator, value
            return None

        if isinstance(root, Union):
            for locator, value in entries:
                if not locator.is_root and root.is_valid(value):
                    return locator, value
        return None

    def dehydrate(self, value: Any) -> Any:
        """Dehydrate a value with this bridge's registry (no index, no I/O)."""
        return dehydrate(value, self.context)


def data_to_files(data: Any, schema: SchemaNode, config: BridgeConfig = None) -> List[FragmentAsset]:
    """Render a hydrated value as the fragment files export would write."""
    bridge = Bridge(schema, io=MemoryIO(), config=config)
    bridge.import_from_memory(data)
    return bridge.export_to_memory()
