# hydrastore/registry.py
"""
Hydratable registry.

Walks a schema once and records, per hydratable tag, the addressing
metadata the engine needs: unique key fields (or singleton status),
the enclosing ADT name, and the encoder/decoder for the tag.

Singleton hydratables are addressed by a content hash:
    hash = SHA3-256(canonical JSON of the encoded value)
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set, Tuple

from .errors import SchemaError
from .schema import (
    DEHYDRATED_KEY,
    TAG_KEY,
    AdtConfig,
    Hydratable,
    SchemaNode,
    SingletonConfig,
    StructConfig,
    TaggedStruct,
    Union,
    is_dehydrated,
    is_tagged,
)
from .uhl import KeyValue, Segment, SegmentTemplate

logger = logging.getLogger(__name__)

HASH_KEY = "hash"


def _stable_hash(data: Any, algorithm: str = "sha3_256") -> str:
    """
    Create stable hash from arbitrary data.

    Uses SHA-3 (Keccak) by default. Returns the full hex digest.
    """
    json_str = json.dumps(data, sort_keys=True, separators=(",", ":"))
    hasher = hashlib.new(algorithm)
    hasher.update(json_str.encode())
    return hasher.hexdigest()


@dataclass
class HydratableInfo:
    """
    Addressing metadata for one hydratable tag.

    Attributes:
        tag: The variant tag
        schema: The Hydratable node that declared it
        unique_keys: Declared unique key field names (empty for singletons)
        is_singleton: Addressed by content hash
        adt: Enclosing union name for ADT members
        member: The tagged struct describing this variant, when there is one
    """
    tag: str
    schema: Hydratable
    unique_keys: Tuple[str, ...] = ()
    is_singleton: bool = False
    adt: Optional[str] = None
    member: Optional[TaggedStruct] = None

    @property
    def template(self) -> SegmentTemplate:
        return SegmentTemplate(tag=self.tag, keys=get_hydration_keys(self), adt=self.adt)

    def encode(self, value: Any) -> Any:
        return self.schema.encode(value)

    def decode(self, value: Any) -> Any:
        return self.schema.decode(value)


@dataclass
class HydrationContext:
    """
    Registry built once from a schema.

    Attributes:
        schema: The root schema
        index: tag -> addressing metadata
        encoders: tag -> encode function
        decoders: tag -> decode function
        hash_algorithm: Algorithm for singleton hashes
    """
    schema: SchemaNode
    index: Dict[str, HydratableInfo] = field(default_factory=dict)
    encoders: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    decoders: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    hash_algorithm: str = "sha3_256"

    def info_for(self, value: Any) -> Optional[HydratableInfo]:
        """Registry entry for a tagged value, if its tag is hydratable."""
        if not is_tagged(value):
            return None
        return self.index.get(value[TAG_KEY])

    def is_hydratable(self, value: Any) -> bool:
        """A registered, non-stub hydratable value."""
        return self.info_for(value) is not None and not is_dehydrated(value)

    def adt_for(self, tag: str) -> Optional[str]:
        info = self.index.get(tag)
        return info.adt if info else None

    def segment_for(self, value: Dict[str, Any]) -> Segment:
        """Compute the segment addressing a hydrated value."""
        info = self.index[value[TAG_KEY]]
        if info.is_singleton:
            digest = generate_singleton_hash(value, info.schema, self.hash_algorithm)
            return Segment(tag=info.tag, unique_keys={HASH_KEY: digest}, adt=info.adt)

        keys: Dict[str, KeyValue] = {}
        for key in info.unique_keys:
            if key not in value:
                logger.warning(f"Hydratable {info.tag} is missing unique key '{key}'")
                continue
            field_schema = info.member.fields.get(key) if info.member else None
            keys[key] = field_schema.encode(value[key], (key,)) if field_schema else value[key]
        return Segment(tag=info.tag, unique_keys=keys, adt=info.adt)

    def make_stub(self, value: Dict[str, Any], segment: Segment = None) -> Dict[str, Any]:
        """Replace a hydrated value with its address-only stub."""
        if segment is None:
            segment = self.segment_for(value)
        stub = {TAG_KEY: value[TAG_KEY]}
        stub.update(segment.unique_keys)
        stub[DEHYDRATED_KEY] = True
        return stub


def get_hydration_keys(info: HydratableInfo, tag: str = None) -> Tuple[str, ...]:
    """Declared unique key fields for a tag. Singletons use a synthetic "hash"."""
    if tag is not None and tag != info.tag:
        return ()
    if info.is_singleton:
        return (HASH_KEY,)
    return tuple(info.unique_keys)


def is_singleton(info: HydratableInfo) -> bool:
    return info.is_singleton


def generate_singleton_hash(value: Any, schema: SchemaNode, algorithm: str = "sha3_256") -> str:
    """
    Hash the canonical encoded form of a value.

    Structurally identical values hash identically regardless of key
    order or object identity.
    """
    return _stable_hash(schema.encode(value), algorithm)


def _check_keys(tag: str, keys: Tuple[str, ...], member: TaggedStruct) -> None:
    if not keys:
        raise SchemaError(
            f"Hydratable '{tag}' declares neither unique keys nor singleton status"
        )
    for key in keys:
        if key == TAG_KEY or key not in member.fields:
            raise SchemaError(f"Unique key '{key}' is not a field of '{tag}'")


def _register(node: Hydratable, context: HydrationContext) -> None:
    config = node.config
    inner = node.resolve_inner()
    infos = []

    if isinstance(config, StructConfig):
        if not isinstance(inner, TaggedStruct):
            raise SchemaError(f"A keyed hydratable must wrap a tagged struct, got {inner!r}")
        _check_keys(inner.tag, config.unique_keys, inner)
        infos.append(HydratableInfo(
            tag=inner.tag,
            schema=node,
            unique_keys=tuple(config.unique_keys),
            member=inner,
        ))

    elif isinstance(config, AdtConfig):
        if not isinstance(inner, Union):
            raise SchemaError(f"ADT hydratable '{config.name}' must wrap a union, got {inner!r}")
        seen = set()
        for member in inner.members:
            member = member.resolve()
            if not isinstance(member, TaggedStruct):
                raise SchemaError(f"ADT '{config.name}' members must be tagged structs, got {member!r}")
            keys = tuple(config.member_keys.get(member.tag, ()))
            _check_keys(member.tag, keys, member)
            seen.add(member.tag)
            infos.append(HydratableInfo(
                tag=member.tag,
                schema=node,
                unique_keys=keys,
                adt=config.name,
                member=member,
            ))
        unknown = set(config.member_keys) - seen
        if unknown:
            raise SchemaError(f"ADT '{config.name}' declares keys for unknown tags: {sorted(unknown)}")

    elif isinstance(config, SingletonConfig):
        tags = node.tags()
        if len(tags) != 1:
            raise SchemaError(f"A singleton hydratable must carry exactly one tag, got {sorted(tags)}")
        tag = next(iter(tags))
        infos.append(HydratableInfo(
            tag=tag,
            schema=node,
            is_singleton=True,
            member=inner if isinstance(inner, TaggedStruct) else None,
        ))

    else:
        raise SchemaError(f"Unknown hydration config: {config!r}")

    for info in infos:
        existing = context.index.get(info.tag)
        if existing is not None and existing.schema is not node:
            raise SchemaError(f"Tag '{info.tag}' is declared by more than one hydratable")
        context.index[info.tag] = info
        context.encoders[info.tag] = node.encode
        context.decoders[info.tag] = node.decode


def create_context(schema: SchemaNode, hash_algorithm: str = "sha3_256") -> HydrationContext:
    """
    Build the registry for a schema.

    Raises:
        SchemaError: if a hydratable has no valid address
    """
    context = HydrationContext(schema=schema, hash_algorithm=hash_algorithm)
    visited: Set[int] = set()

    def walk(node: SchemaNode) -> None:
        if id(node) in visited:
            return
        visited.add(id(node))
        if isinstance(node, Hydratable):
            _register(node, context)
        for child in node.children():
            walk(child)

    walk(schema)
    logger.debug(f"Registry built with {len(context.index)} hydratable tags")
    return context
