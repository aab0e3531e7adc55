# hydrastore/value.py
"""
Dehydrate / hydrate engine.

Dehydration walks a value and replaces every registered hydratable it
reaches with an address-only stub, recording parent -> child edges.
Hydration walks the other way, swapping stubs for the fragments the
index holds at their locators. A stub whose fragment is missing stays
a stub: partial hydration is a valid result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Set

from . import uhl as uhl_
from .graph import DependencyGraph
from .index import FragmentIndex
from .registry import HydrationContext
from .schema import DEHYDRATED_KEY, TAG_KEY, is_dehydrated, is_tagged
from .uhl import Segment, Uhl

logger = logging.getLogger(__name__)


@dataclass
class Located:
    """A hydrated hydratable and the locator it lives at."""
    uhl: Uhl
    value: Any


@dataclass
class DehydrationResult:
    """
    Output of a dehydration pass.

    Attributes:
        value: The value with hydratables replaced by stubs
        graph: parent -> child locator edges
        fragments: Every hydratable that was stubbed, with its locator
    """
    value: Any
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    fragments: List[Located] = field(default_factory=list)


class _Dehydrator:
    def __init__(self, context: HydrationContext):
        self.context = context
        self.graph = DependencyGraph()
        self.fragments: List[Located] = []
        # Identities on the current path; re-entry means a cycle
        self._active: Set[int] = set()

    def visit(self, value: Any, parent: Uhl) -> Any:
        if isinstance(value, (list, tuple)):
            return self._enter(value, lambda: [self.visit(item, parent) for item in value])
        if not isinstance(value, dict):
            return value
        if self.context.is_hydratable(value):
            segment = self.context.segment_for(value)
            child = parent.child(segment)
            self.graph.add_edge(parent, child)
            self.fragments.append(Located(child, value))
            return self.context.make_stub(value, segment)
        return self._enter(value, lambda: self.visit_fields(value, parent))

    def visit_fields(self, value: Dict[str, Any], parent: Uhl) -> Dict[str, Any]:
        return {key: self.visit(item, parent) for key, item in value.items()}

    def _enter(self, value: Any, walk) -> Any:
        marker = id(value)
        if marker in self._active:
            return value
        self._active.add(marker)
        try:
            return walk()
        finally:
            self._active.discard(marker)


def dehydrate(value: Any, context: HydrationContext) -> Any:
    """Replace every reachable hydratable with its stub."""
    return dehydrate_with_dependencies(value, context).value


def dehydrate_with_dependencies(
    value: Any,
    context: HydrationContext,
    parent: Uhl = None,
) -> DehydrationResult:
    """
    Dehydrate a value and record the dependency edges.

    Args:
        value: The value to dehydrate
        context: Registry for the schema
        parent: Locator of whatever holds the value (root by default)

    Returns:
        DehydrationResult with the stubbed value, graph and fragments
    """
    parent = parent if parent is not None else uhl_.root()
    dehydrator = _Dehydrator(context)
    dehydrator.graph.add_node(parent)
    result = dehydrator.visit(value, parent)
    return DehydrationResult(result, dehydrator.graph, dehydrator.fragments)


def dehydrate_children(value: Any, context: HydrationContext, locator: Uhl) -> DehydrationResult:
    """
    Dehydrate the hydratables inside a fragment but keep the fragment
    itself hydrated. Used when writing a fragment to its own file.
    """
    dehydrator = _Dehydrator(context)
    dehydrator.graph.add_node(locator)
    if isinstance(value, dict):
        result = dehydrator._enter(value, lambda: dehydrator.visit_fields(value, locator))
    else:
        result = dehydrator.visit(value, locator)
    return DehydrationResult(result, dehydrator.graph, dehydrator.fragments)


def stub_segment(
    stub: Dict[str, Any],
    index: FragmentIndex = None,
    context: HydrationContext = None,
) -> Optional[Segment]:
    """
    Rebuild the one-segment address of a stub from its tag and fields.

    Only string and number fields count as unique keys. Returns None
    when the fields cannot form a valid segment.
    """
    tag = stub[TAG_KEY]
    keys = {
        k: v for k, v in stub.items()
        if k not in (TAG_KEY, DEHYDRATED_KEY)
        and isinstance(v, (str, int, float)) and not isinstance(v, bool)
    }
    if context is not None and tag in context.index:
        adt = context.adt_for(tag)
    elif index is not None:
        adt = index.adt_for(tag)
    else:
        adt = None
    try:
        return Segment(tag=tag, unique_keys=keys, adt=adt)
    except (ValueError, TypeError) as e:
        logger.debug(f"Stub {tag} has no valid address: {e}")
        return None


def hydrate(
    value: Any,
    index: FragmentIndex,
    parent_chain: Uhl = None,
    context: HydrationContext = None,
) -> Any:
    """
    Replace stubs with the fragments held in the index, recursively.

    Args:
        value: A value possibly containing stubs
        index: Where fragments are looked up
        parent_chain: Locator of the fragment holding the value; stubs
            are first resolved beneath it, then at top level
            (a singleton holding stubs is addressed by the key it is
            indexed under, or by parent_chain when that ends at it)
        context: Registry, used to address inline hydratables and to
            recover ADT names for stubs

    Returns:
        The hydrated value. Unresolvable stubs are left in place.
    """
    chain = uhl_.coerce(parent_chain) if parent_chain is not None else uhl_.root()
    return _hydrate(value, index, chain, context, frozenset())


def hydrate_fragment(
    value: Any,
    index: FragmentIndex,
    locator: Uhl,
    context: HydrationContext = None,
) -> Any:
    """
    Hydrate a fragment known to live at `locator`.

    Its stubs resolve beneath the locator first. The fragment's own
    address is taken as given rather than recomputed, which matters for
    singletons whose hash covers the fully hydrated content.
    """
    chain = uhl_.coerce(locator)
    return _hydrate_fields(value, index, chain, context, frozenset({uhl_.to_string(chain)}))


def _hydrate(
    value: Any,
    index: FragmentIndex,
    chain: Uhl,
    context: Optional[HydrationContext],
    resolving: FrozenSet[str],
) -> Any:
    if isinstance(value, (list, tuple)):
        return [_hydrate(item, index, chain, context, resolving) for item in value]
    if not isinstance(value, dict):
        return value

    if is_dehydrated(value):
        return _resolve_stub(value, index, chain, context, resolving)

    if context is not None and context.is_hydratable(value):
        chain = _own_locator(value, index, chain, context)
    return _hydrate_fields(value, index, chain, context, resolving)


def _own_locator(value, index, chain, context) -> Uhl:
    info = context.info_for(value)
    if info.is_singleton and find_stubs(value):
        # The hash covers hydrated content: keep the address the fragment is filed under
        stored = index.find(value, info.tag)
        if stored is not None:
            return stored
        if chain.last is not None and chain.last.tag == info.tag:
            return chain
    return chain.child(context.segment_for(value))


def _hydrate_fields(value, index, chain, context, resolving):
    if isinstance(value, dict):
        return {key: _hydrate(item, index, chain, context, resolving) for key, item in value.items()}
    return _hydrate(value, index, chain, context, resolving)


def _resolve_stub(stub, index, chain, context, resolving):
    segment = stub_segment(stub, index, context)
    if segment is None:
        return stub

    candidates = [uhl_.make(segment)]
    if not chain.is_root:
        candidates.insert(0, chain.child(segment))

    for candidate in candidates:
        key = uhl_.to_string(candidate)
        if key in resolving:
            # Fragment refers back to itself
            return stub
        found = index.get(candidate)
        if found is None or is_dehydrated(found):
            continue
        return _hydrate_fields(found, index, candidate, context, resolving | {key})

    logger.debug(f"Unresolved stub: {uhl_.segment_to_string(segment)}")
    return stub


def find_stubs(value: Any) -> List[Dict[str, Any]]:
    """Collect every stub in a value (used to report partial hydration)."""
    stubs: List[Dict[str, Any]] = []

    def walk(item):
        if isinstance(item, (list, tuple)):
            for element in item:
                walk(element)
        elif isinstance(item, dict):
            if is_dehydrated(item):
                stubs.append(item)
                return
            for element in item.values():
                walk(element)

    walk(value)
    return stubs


def is_fully_hydrated(value: Any) -> bool:
    return not find_stubs(value)


__all__ = [
    "Located",
    "DehydrationResult",
    "dehydrate",
    "dehydrate_with_dependencies",
    "dehydrate_children",
    "hydrate",
    "hydrate_fragment",
    "stub_segment",
    "find_stubs",
    "is_fully_hydrated",
    "is_dehydrated",
    "is_tagged",
]
