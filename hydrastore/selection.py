# hydrastore/selection.py
"""
Selection expressions for peek.

A selection maps hydratable tags to selectors:

    {"User": {"id": "u1"}}                      one fragment
    {"User": [{"id": "u1"}, {"id": "u2"}]}      several fragments
    {"User": True}                              every stored User
    {"Revision": {"date": "2024-01-15",
                  "$Schema": {"version": "1.0.0"}}}   nested under a parent
    {"Revision": {"date": "2024-01-15",
                  "$$": {"$Schema": True, "version": "1.0.0"}}}   explicit path

Inside a key-set, "$Tag" gives the parent's selector (which may have
its own "$Tag"). "$$" spells out the path from the nearest parent
outward: each level holds that parent's keys and one "$Tag" entry
whose value is the next level out, or True at the outermost level.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from . import uhl as uhl_
from .errors import AmbiguousSelectionError, SchemaValidationError, SelectionError
from .paths import PathRegistry
from .registry import HydrationContext, get_hydration_keys
from .uhl import KeyValue, Segment, Uhl

logger = logging.getLogger(__name__)

PARENT_PREFIX = "$"
PATH_KEY = "$$"


@dataclass
class SelectionEntry:
    """
    One top-level selector, resolved.

    Attributes:
        tag: Selected tag (the result key)
        uhls: Concrete locators (a single blank one for coverage)
        many: Result is a list
        coverage: Select every stored fragment with this tag
    """
    tag: str
    uhls: List[Uhl] = field(default_factory=list)
    many: bool = False
    coverage: bool = False


def _is_key_value(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


class _Resolver:
    def __init__(self, context: HydrationContext, registry: PathRegistry = None):
        self.context = context
        self.registry = registry

    def segment(self, tag: str, keys: Mapping[str, KeyValue]) -> Segment:
        return Segment(tag=tag, unique_keys=keys, adt=self.context.adt_for(tag))

    def info(self, tag: str):
        info = self.context.index.get(tag)
        if info is None:
            raise SelectionError(f"Unknown hydratable tag '{tag}'")
        return info

    def entry(self, tag: str, selector: Any) -> SelectionEntry:
        self.info(tag)
        if selector is True or selector == {}:
            return SelectionEntry(tag, [uhl_.make(self.segment(tag, {}))], many=True, coverage=True)
        if isinstance(selector, Mapping):
            self.check_context(tag, [selector])
            return SelectionEntry(tag, self.key_set(tag, selector))
        if isinstance(selector, (list, tuple)):
            if not all(isinstance(item, Mapping) for item in selector):
                raise SelectionError(f"Selectors for '{tag}' must be key-sets")
            self.check_context(tag, selector)
            uhls = [u for item in selector for u in self.key_set(tag, item)]
            return SelectionEntry(tag, uhls, many=True)
        raise SelectionError(
            f"Invalid selector for '{tag}': expected True, a key-set or a list of key-sets, "
            f"got {type(selector).__name__}"
        )

    def check_context(self, tag: str, selectors) -> None:
        if self.registry is None or not self.registry.requires_disambiguation(tag):
            return
        for selector in selectors:
            if not any(key.startswith(PARENT_PREFIX) for key in selector):
                paths = [str(p.path) for p in self.registry.paths_for(tag)]
                raise AmbiguousSelectionError(tag, paths)

    def key_set(self, tag: str, selector: Mapping[str, Any]) -> List[Uhl]:
        info = self.info(tag)
        declared = get_hydration_keys(info)
        keys: Dict[str, KeyValue] = {}
        parents: List[Uhl] = []
        path = None

        for key, value in selector.items():
            if key == PATH_KEY:
                path = self.explicit_path(value)
            elif key.startswith(PARENT_PREFIX):
                parent = self.entry(key[len(PARENT_PREFIX):], value)
                if parent.coverage:
                    raise SelectionError(
                        f"Parent context '{key}' for '{tag}' must name keys, not select every fragment"
                    )
                parents.extend(parent.uhls)
            elif key not in declared:
                raise SelectionError(f"'{key}' is not a unique key of '{tag}'")
            else:
                keys[key] = self.key_value(info, key, value)

        missing = [k for k in declared if k not in keys]
        if missing:
            raise SelectionError(f"Selector for '{tag}' is missing keys {missing}")

        segment = self.segment(tag, keys)
        if path is not None:
            return [path.child(segment)]
        if parents:
            return [parent.child(segment) for parent in parents]
        return [uhl_.make(segment)]

    def key_value(self, info, key: str, value: Any) -> KeyValue:
        if _is_key_value(value):
            return value
        # Decoded form given (a date, say): encode it like the value's own field
        field_schema = info.member.fields.get(key) if info.member else None
        if field_schema is not None:
            try:
                encoded = field_schema.encode(value, (key,))
            except SchemaValidationError as e:
                raise SelectionError(f"Invalid value for '{info.tag}.{key}': {e}") from e
            if _is_key_value(encoded):
                return encoded
        raise SelectionError(
            f"Invalid value for '{info.tag}.{key}': expected string or number, "
            f"got {type(value).__name__}"
        )

    def explicit_path(self, level: Any) -> Uhl:
        if not isinstance(level, Mapping):
            raise SelectionError(f"'{PATH_KEY}' must be a mapping")
        segments: List[Segment] = []
        while isinstance(level, Mapping) and level:
            parent_keys = [k for k in level if k.startswith(PARENT_PREFIX)]
            if len(parent_keys) != 1:
                raise SelectionError(f"Each level of '{PATH_KEY}' needs exactly one $<Tag> entry")
            tag = parent_keys[0][len(PARENT_PREFIX):]
            info = self.info(tag)
            keys = {
                k: self.key_value(info, k, v)
                for k, v in level.items() if not k.startswith(PARENT_PREFIX)
            }
            segments.insert(0, self.segment(tag, keys))
            level = level[parent_keys[0]]
        return uhl_.make(*segments)


def resolve(
    selection: Mapping[str, Any],
    context: HydrationContext,
    path_registry: PathRegistry = None,
) -> List[SelectionEntry]:
    """
    Resolve a selection into entries, one per top-level tag.

    Raises:
        SelectionError: unknown tag, unknown key or malformed selector
        AmbiguousSelectionError: a tag needs parent context that was not given
    """
    if not isinstance(selection, Mapping):
        raise SelectionError(f"A selection must be a mapping, got {type(selection).__name__}")
    resolver = _Resolver(context, path_registry)
    return [resolver.entry(tag, selector) for tag, selector in selection.items()]


def to_uhls(
    selection: Any,
    context: HydrationContext,
    path_registry: PathRegistry = None,
) -> List[Uhl]:
    """Flatten a selection (or a list of selections) into locators."""
    if isinstance(selection, (list, tuple)):
        return [u for item in selection for u in to_uhls(item, context, path_registry)]
    return [u for entry in resolve(selection, context, path_registry) for u in entry.uhls]
