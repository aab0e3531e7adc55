# hydrastore/schema.py
"""
Explicit schema description.

A schema is a tree of nodes describing the shape of hydrated values and
how they encode to JSON-ready data. Hydratable nodes carry the
addressing configuration the registry reads:

    User = hydratable(TaggedStruct("User", {"id": String(), "name": String()}), keys=["id"])
    Root = Struct({"users": Array(User)})

Values are plain containers: tagged values are dicts carrying "_tag".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional as Opt, Set, Tuple

from .errors import SchemaError, SchemaValidationError

TAG_KEY = "_tag"
DEHYDRATED_KEY = "_dehydrated"

Path = Tuple[Any, ...]


def is_tagged(value: Any) -> bool:
    """Check whether a value is a dict carrying a string "_tag"."""
    return isinstance(value, dict) and isinstance(value.get(TAG_KEY), str)


def is_dehydrated(value: Any) -> bool:
    """Check whether a value is an address-only stub."""
    return is_tagged(value) and value.get(DEHYDRATED_KEY) is True


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


class SchemaNode(ABC):
    """Base class for schema nodes."""

    is_optional = False

    @abstractmethod
    def encode(self, value: Any, path: Path = ()) -> Any:
        """Convert a hydrated value to its JSON-ready form."""

    @abstractmethod
    def decode(self, value: Any, path: Path = ()) -> Any:
        """Convert a JSON-ready value to its hydrated form."""

    def is_valid(self, value: Any) -> bool:
        """Check whether a hydrated value conforms to this schema."""
        try:
            self.encode(value)
        except SchemaValidationError:
            return False
        return True

    def children(self) -> List["SchemaNode"]:
        """Nested nodes, for schema walks."""
        return []

    def resolve(self) -> "SchemaNode":
        return self

    def tags(self) -> Set[str]:
        """Tags a hydrated value of this node may carry."""
        return set()

    def encoded_tags(self) -> Set[str]:
        """Tags the encoded form of this node may carry."""
        return set()


class _Primitive(SchemaNode):
    expected = "value"

    def check(self, value: Any) -> bool:
        raise NotImplementedError

    def encode(self, value: Any, path: Path = ()) -> Any:
        if not self.check(value):
            raise SchemaValidationError(f"Expected {self.expected}, got {_describe(value)}", path)
        return value

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self.encode(value, path)

    def __repr__(self):
        return f"{type(self).__name__}()"


class String(_Primitive):
    expected = "string"

    def check(self, value):
        return isinstance(value, str)


class Number(_Primitive):
    expected = "number"

    def check(self, value):
        return isinstance(value, (int, float)) and not isinstance(value, bool)


class Boolean(_Primitive):
    expected = "boolean"

    def check(self, value):
        return isinstance(value, bool)


class Null(_Primitive):
    expected = "null"

    def check(self, value):
        return value is None


class Literal(SchemaNode):
    def __init__(self, value: Any):
        self.value = value

    def encode(self, value: Any, path: Path = ()) -> Any:
        if type(value) is not type(self.value) or value != self.value:
            raise SchemaValidationError(f"Expected {self.value!r}, got {value!r}", path)
        return value

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self.encode(value, path)

    def __repr__(self):
        return f"Literal({self.value!r})"


class Instance(SchemaNode):
    """A Python type passed through unchanged (the decoded side of a transform)."""

    def __init__(self, cls: type, name: str = None):
        self.cls = cls
        self.name = name or cls.__name__

    def encode(self, value: Any, path: Path = ()) -> Any:
        if not isinstance(value, self.cls):
            raise SchemaValidationError(f"Expected {self.name}, got {_describe(value)}", path)
        return value

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self.encode(value, path)

    def __repr__(self):
        return f"Instance({self.name})"


class Struct(SchemaNode):
    """A record with named fields. Undeclared keys are dropped."""

    def __init__(self, fields: Mapping[str, SchemaNode]):
        self.fields: Dict[str, SchemaNode] = dict(fields)

    def _convert(self, value: Any, path: Path, encoding: bool) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            raise SchemaValidationError(f"Expected object, got {_describe(value)}", path)
        result = {}
        for name, node in self.fields.items():
            if name not in value:
                if node.is_optional:
                    continue
                raise SchemaValidationError(f"Missing property '{name}'", path)
            convert = node.encode if encoding else node.decode
            result[name] = convert(value[name], path + (name,))
        return result

    def encode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=True)

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=False)

    def children(self) -> List[SchemaNode]:
        return list(self.fields.values())

    def __repr__(self):
        return f"Struct({list(self.fields)})"


class TaggedStruct(Struct):
    """A struct identified by a literal "_tag" field."""

    def __init__(self, tag: str, fields: Mapping[str, SchemaNode]):
        self.tag = tag
        super().__init__({TAG_KEY: Literal(tag), **fields})

    def make(self, **values) -> Dict[str, Any]:
        """Build a validated value of this variant."""
        value = {TAG_KEY: self.tag, **values}
        self.encode(value)
        return value

    def children(self) -> List[SchemaNode]:
        return [node for name, node in self.fields.items() if name != TAG_KEY]

    def tags(self) -> Set[str]:
        return {self.tag}

    def encoded_tags(self) -> Set[str]:
        return {self.tag}

    def __repr__(self):
        return f"TaggedStruct({self.tag!r})"


class Union(SchemaNode):
    """
    One of several members. Tagged values are matched by tag; anything
    else is tried against each member in order.
    """

    def __init__(self, *members: SchemaNode, name: str = None):
        if not members:
            raise SchemaError("A union needs at least one member")
        self.members: List[SchemaNode] = list(members)
        self.name = name

    def _by_tag(self, tag: str, encoded: bool) -> Opt[SchemaNode]:
        for member in self.members:
            tags = member.encoded_tags() if encoded else member.tags()
            if tag in tags:
                return member
        return None

    def _convert(self, value: Any, path: Path, encoding: bool) -> Any:
        if is_tagged(value):
            member = self._by_tag(value[TAG_KEY], encoded=not encoding)
            if member is not None:
                return member.encode(value, path) if encoding else member.decode(value, path)
        for member in self.members:
            try:
                return member.encode(value, path) if encoding else member.decode(value, path)
            except SchemaValidationError:
                continue
        raise SchemaValidationError(
            f"Value of type {_describe(value)} matches no member of union"
            + (f" {self.name}" if self.name else ""),
            path,
        )

    def encode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=True)

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=False)

    def children(self) -> List[SchemaNode]:
        return list(self.members)

    def tags(self) -> Set[str]:
        return set().union(*(m.tags() for m in self.members))

    def encoded_tags(self) -> Set[str]:
        return set().union(*(m.encoded_tags() for m in self.members))

    def __repr__(self):
        return f"Union({self.name or ''}{self.members!r})"


class Array(SchemaNode):
    def __init__(self, item: SchemaNode):
        self.item = item

    def _convert(self, value: Any, path: Path, encoding: bool) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            raise SchemaValidationError(f"Expected array, got {_describe(value)}", path)
        convert = self.item.encode if encoding else self.item.decode
        return [convert(item, path + (i,)) for i, item in enumerate(value)]

    def encode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=True)

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self._convert(value, path, encoding=False)

    def children(self) -> List[SchemaNode]:
        return [self.item]

    def __repr__(self):
        return f"Array({self.item!r})"


class Optional(SchemaNode):
    """A struct field that may be absent or None."""

    is_optional = True

    def __init__(self, inner: SchemaNode):
        self.inner = inner

    def encode(self, value: Any, path: Path = ()) -> Any:
        return None if value is None else self.inner.encode(value, path)

    def decode(self, value: Any, path: Path = ()) -> Any:
        return None if value is None else self.inner.decode(value, path)

    def children(self) -> List[SchemaNode]:
        return [self.inner]

    def tags(self) -> Set[str]:
        return self.inner.tags()

    def encoded_tags(self) -> Set[str]:
        return self.inner.encoded_tags()

    def __repr__(self):
        return f"Optional({self.inner!r})"


class Transform(SchemaNode):
    """
    A value stored as `from_` and used as `to`.

    Args:
        from_: Schema of the encoded side
        to: Schema of the decoded side (used for validation)
        decode: Function from encoded to decoded value
        encode: Function from decoded to encoded value
    """

    def __init__(
        self,
        from_: SchemaNode,
        to: SchemaNode,
        decode: Callable[[Any], Any],
        encode: Callable[[Any], Any],
        name: str = None,
    ):
        self.from_ = from_
        self.to = to
        self._decode = decode
        self._encode = encode
        self.name = name

    def encode(self, value: Any, path: Path = ()) -> Any:
        self.to.encode(value, path)
        try:
            encoded = self._encode(value)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise SchemaValidationError(f"Cannot encode {self.name or 'transform'}: {e}", path)
        return self.from_.encode(encoded, path)

    def decode(self, value: Any, path: Path = ()) -> Any:
        raw = self.from_.decode(value, path)
        try:
            decoded = self._decode(raw)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise SchemaValidationError(f"Cannot decode {self.name or 'transform'}: {e}", path)
        self.to.encode(decoded, path)
        return decoded

    def children(self) -> List[SchemaNode]:
        return [self.to]

    def tags(self) -> Set[str]:
        return self.to.tags()

    def encoded_tags(self) -> Set[str]:
        return self.from_.encoded_tags()

    def __repr__(self):
        return f"Transform({self.name or ''})"


class Lazy(SchemaNode):
    """A deferred node, for recursive schemas."""

    def __init__(self, thunk: Callable[[], SchemaNode]):
        self._thunk = thunk
        self._resolved: Opt[SchemaNode] = None

    def resolve(self) -> SchemaNode:
        if self._resolved is None:
            node = self._thunk()
            self._resolved = node.resolve()
        return self._resolved

    @property
    def is_optional(self):
        return self.resolve().is_optional

    def encode(self, value: Any, path: Path = ()) -> Any:
        return self.resolve().encode(value, path)

    def decode(self, value: Any, path: Path = ()) -> Any:
        return self.resolve().decode(value, path)

    def children(self) -> List[SchemaNode]:
        return [self.resolve()]

    def tags(self) -> Set[str]:
        return self.resolve().tags()

    def encoded_tags(self) -> Set[str]:
        return self.resolve().encoded_tags()

    def __repr__(self):
        return "Lazy(...)"


# Hydration configuration

@dataclass(frozen=True)
class StructConfig:
    """A tagged struct addressed by its own fields."""
    unique_keys: Tuple[str, ...]


@dataclass(frozen=True)
class AdtConfig:
    """A union of tagged structs sharing one address space."""
    name: str
    member_keys: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class SingletonConfig:
    """Addressed by a hash of the encoded content."""


class Hydratable(SchemaNode):
    """
    A node whose values persist as independent fragments.

    Dehydrated stubs pass through encode and decode unchanged, so a
    fragment may hold stubs wherever a hydratable is expected.
    """

    def __init__(self, inner: SchemaNode, config):
        self.inner = inner
        self.config = config

    def _check_stub(self, value: Any, path: Path) -> Dict[str, Any]:
        if value[TAG_KEY] not in self.tags():
            raise SchemaValidationError(
                f"Dehydrated value tagged {value[TAG_KEY]!r} is not one of {sorted(self.tags())}",
                path,
            )
        return dict(value)

    def encode(self, value: Any, path: Path = ()) -> Any:
        if is_dehydrated(value):
            return self._check_stub(value, path)
        return self.inner.encode(value, path)

    def decode(self, value: Any, path: Path = ()) -> Any:
        if is_dehydrated(value):
            return self._check_stub(value, path)
        return self.inner.decode(value, path)

    def children(self) -> List[SchemaNode]:
        return [self.inner]

    def resolve_inner(self) -> SchemaNode:
        return self.inner.resolve()

    def tags(self) -> Set[str]:
        return self.inner.tags()

    def encoded_tags(self) -> Set[str]:
        # Stubs always carry the decoded tag
        return self.inner.encoded_tags() | self.inner.tags()

    def make(self, **values) -> Dict[str, Any]:
        inner = self.resolve_inner()
        if not isinstance(inner, TaggedStruct):
            raise SchemaError("make() is only available on hydratable tagged structs")
        return inner.make(**values)

    def __repr__(self):
        return f"Hydratable({self.inner!r}, {self.config!r})"


def hydratable(
    schema: SchemaNode,
    keys: Iterable[str] | Mapping[str, Iterable[str]] = None,
    singleton: bool = False,
    name: str = None,
) -> Hydratable:
    """
    Mark a schema as hydratable.

    Args:
        schema: A TaggedStruct, a named Union of TaggedStructs, or (for
            singletons) any schema whose decoded side is tagged
        keys: Unique key field names, or per-tag names for a union
        singleton: Address by content hash instead of keys
        name: ADT name, defaults to the union's name

    Returns:
        The Hydratable node
    """
    if singleton:
        if keys:
            raise SchemaError("A singleton hydratable cannot declare unique keys")
        return Hydratable(schema, SingletonConfig())

    if isinstance(keys, Mapping):
        target = schema.resolve()
        if not isinstance(target, Union):
            raise SchemaError("Per-tag keys require a union schema")
        adt = name or target.name
        if not adt:
            raise SchemaError("A hydratable union needs a name")
        member_keys = {tag: tuple(tag_keys) for tag, tag_keys in keys.items()}
        return Hydratable(schema, AdtConfig(adt, member_keys))

    return Hydratable(schema, StructConfig(tuple(keys or ())))


def _parse_date(text: str) -> date:
    return date.fromisoformat(text)


def _format_date(value: date) -> str:
    return value.isoformat()


Date = Transform(String(), Instance(date, "date"), _parse_date, _format_date, name="Date")
