# hydrastore/paths.py
"""
Addressable positions derived from a schema.

The paths tree mirrors the schema's shape but only keeps what matters
for addressing: where hydratables can sit, which segment template
they carry, and how to reach them through struct fields, array
elements and union variants. Walking a hydrated value against the tree
yields every hydratable together with its locator.

The path registry is a second view of the same tree: for each tag,
the chain of hydratable ancestors under which it can appear. Selection
resolution uses it to decide when a tag needs explicit parent context.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import uhl as uhl_
from .registry import HydrationContext, create_context
from .schema import (
    Array,
    Hydratable,
    Lazy,
    Optional as OptionalNode,
    SchemaNode,
    Struct,
    TAG_KEY,
    TaggedStruct,
    Transform,
    Union,
    is_dehydrated,
    is_tagged,
)
from .uhl import SegmentTemplate, Uhl
from .value import Located, stub_segment

logger = logging.getLogger(__name__)


@dataclass
class PathsTree:
    """
    One addressable position.

    Attributes:
        template: Segment template when a hydratable sits here
        children: Struct field name -> subtree
        element: Subtree for array elements
        variants: Union member tag -> subtree
    """
    template: Optional[SegmentTemplate] = None
    children: Dict[str, "PathsTree"] = field(default_factory=dict)
    element: Optional["PathsTree"] = None
    variants: Dict[str, "PathsTree"] = field(default_factory=dict)

    def absorb(self, other: "PathsTree") -> None:
        """Copy another subtree's branches into this one (first wins)."""
        if self.template is None:
            self.template = other.template
        for name, child in other.children.items():
            self.children.setdefault(name, child)
        if self.element is None:
            self.element = other.element
        for tag, variant in other.variants.items():
            self.variants.setdefault(tag, variant)


def build_paths_tree(schema: SchemaNode, context: HydrationContext = None) -> PathsTree:
    """
    Build the addressable-positions tree for a schema.

    Recursive schemas produce a cyclic tree: a node is built once and
    reused wherever the same schema node appears again.
    """
    context = context or create_context(schema)
    built: Dict[int, PathsTree] = {}

    def build(node: SchemaNode) -> PathsTree:
        if isinstance(node, Lazy):
            node = node.resolve()
        if isinstance(node, OptionalNode):
            return build(node.inner)
        if isinstance(node, Transform):
            return build(node.to)

        key = id(node)
        if key in built:
            return built[key]
        tree = PathsTree()
        built[key] = tree

        if isinstance(node, Hydratable):
            inner = node.resolve_inner()
            if isinstance(inner, Union):
                for member in inner.members:
                    member = member.resolve()
                    if isinstance(member, TaggedStruct):
                        tree.variants[member.tag] = build_member(member)
            else:
                tree.absorb(build(inner))
                tags = node.tags()
                if len(tags) == 1:
                    info = context.index.get(next(iter(tags)))
                    if info is not None:
                        tree.template = info.template
        elif isinstance(node, Struct):
            fill_fields(tree, node)
        elif isinstance(node, Array):
            tree.element = build(node.item)
        elif isinstance(node, Union):
            for member in node.members:
                subtree = build(member)
                tags = member.tags()
                if isinstance(member.resolve(), TaggedStruct) or subtree.template is not None:
                    for tag in tags:
                        tree.variants.setdefault(tag, subtree)
                else:
                    tree.absorb(subtree)
        return tree

    def build_member(member: TaggedStruct) -> PathsTree:
        # ADT members share the union node but each carries its own template
        key = id(member)
        if key in built and built[key].template is not None:
            return built[key]
        tree = PathsTree(template=context.index[member.tag].template)
        built[key] = tree
        fill_fields(tree, member)
        return tree

    def fill_fields(tree: PathsTree, node: Struct) -> None:
        for name, field_node in node.fields.items():
            if name == TAG_KEY:
                continue
            tree.children[name] = build(field_node)

    return build(schema)


def locate_hydratables(
    value: Any,
    tree: PathsTree,
    context: HydrationContext,
    parent: Uhl = None,
    hydrated_only: bool = False,
) -> List[Located]:
    """
    Find every hydratable in a value, with its locator.

    A hydratable nested inside another is addressed by its parent's
    locator plus its own segment; plain containers and arrays add no
    segments. Stubs are reported at their address but not descended.

    Args:
        value: Hydrated (or partly dehydrated) value
        tree: Paths tree for the value's schema
        context: Registry used to compute segments
        parent: Locator of whatever holds the value
        hydrated_only: Skip stubs

    Returns:
        Located entries in traversal order
    """
    results: List[Located] = []
    _locate(value, tree, context, parent if parent is not None else uhl_.root(), results, hydrated_only)
    return results


def _locate(value, tree, context, locator, results, hydrated_only):
    if isinstance(value, (list, tuple)):
        if tree.element is not None:
            for item in value:
                _locate(item, tree.element, context, locator, results, hydrated_only)
        return
    if not isinstance(value, dict):
        return

    node = tree
    if is_tagged(value) and value[TAG_KEY] in tree.variants:
        node = tree.variants[value[TAG_KEY]]

    if node.template is not None and is_tagged(value) and value[TAG_KEY] == node.template.tag:
        if is_dehydrated(value):
            if not hydrated_only:
                segment = stub_segment(value, context=context)
                if segment is not None:
                    results.append(Located(locator.child(segment), value))
            return
        locator = locator.child(context.segment_for(value))
        results.append(Located(locator, value))

    for name, child in node.children.items():
        if value.get(name) is not None:
            _locate(value[name], child, context, locator, results, hydrated_only)


@dataclass
class HydratablePath:
    """
    One way of reaching a tag from the root.

    Attributes:
        path: Blank segments of the hydratable ancestors, outermost first
        has_arrays: An array sits somewhere on the way
        under_hydratable: At least one hydratable ancestor
    """
    path: Uhl
    has_arrays: bool = False
    under_hydratable: bool = False


@dataclass
class PathRegistry:
    """Tag -> every distinct parent path where it can appear."""
    paths: Dict[str, List[HydratablePath]] = field(default_factory=dict)

    def record(self, tag: str, entry: HydratablePath) -> None:
        existing = self.paths.setdefault(tag, [])
        if any(uhl_.equivalent(e.path, entry.path) for e in existing):
            return
        existing.append(entry)

    def paths_for(self, tag: str) -> List[HydratablePath]:
        return list(self.paths.get(tag, ()))

    def requires_disambiguation(self, tag: str) -> bool:
        """
        True when a selection for this tag must name its parent: the
        tag lives under a hydratable or is reachable by several paths.
        """
        paths = self.paths.get(tag)
        if not paths:
            return False
        if len(paths) > 1:
            return True
        return paths[0].under_hydratable

    def __contains__(self, tag: str) -> bool:
        return tag in self.paths


def build_path_registry(tree: PathsTree) -> PathRegistry:
    registry = PathRegistry()

    def walk(node: PathsTree, path: Uhl, has_arrays: bool, active: frozenset) -> None:
        if id(node) in active:
            return
        active = active | {id(node)}

        below = path
        if node.template is not None:
            registry.record(node.template.tag, HydratablePath(
                path=path,
                has_arrays=has_arrays,
                under_hydratable=not path.is_root,
            ))
            below = path.child(node.template.blank())

        for variant in node.variants.values():
            walk(variant, path, has_arrays, active)
        for child in node.children.values():
            walk(child, below, has_arrays, active)
        if node.element is not None:
            walk(node.element, below, True, active)

    walk(tree, uhl_.root(), False, frozenset())
    logger.debug(f"Path registry covers {len(registry.paths)} tags")
    return registry


def requires_disambiguation(registry: PathRegistry, tag: str) -> bool:
    return registry.requires_disambiguation(tag)
