# hydrastore/uhl.py
"""
Unique Hydratable Locator (UHL).

A UHL is an ordered path of segments addressing one fragment. Each
segment names a variant tag, optionally the sum type (adt) it belongs
to, and the unique key values that identify the instance:

    Schema@SchemaVersioned!version@1.0.0___Revision@RevisionInitial!date@2024-01-15

String grammar:

    uhl      = *(segment "___") segment / ""
    segment  = [adt "@"] tag *("!" property)
    property = key "@" value

Keys are always written in lexicographic order, so the string form is
canonical and doubles as the index key and (plus ".json") the file name.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from .errors import MalformedLocatorError, ReservedCharacterError

SEGMENT_SEPARATOR = "___"
ADT_SEPARATOR = "@"
PROPERTY_SEPARATOR = "!"
KEY_VALUE_SEPARATOR = "@"
RESERVED = (SEGMENT_SEPARATOR, ADT_SEPARATOR, PROPERTY_SEPARATOR)

ROOT_STRING = "__root__"
FILE_EXTENSION = ".json"

# Largest integer that survives a round trip through a double
MAX_SAFE_INTEGER = 2 ** 53 - 1

KeyValue = Union[str, int, float]


def _check_reserved(field_name: str, text: str) -> None:
    for reserved in RESERVED:
        if reserved in text:
            raise ReservedCharacterError(field_name, text, reserved)


def format_value(value: KeyValue) -> str:
    """Render a unique key value the way it appears in a locator string."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TypeError(
            f"Unique key values must be strings or numbers, got {type(value).__name__}"
        )
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise TypeError(f"Unique key values must be finite numbers, got {value!r}")
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def parse_value(text: str) -> KeyValue:
    """Decode a locator value: numeric-looking text becomes a number."""
    try:
        number = int(text)
    except ValueError:
        number = None
    if number is not None and str(number) == text and abs(number) <= MAX_SAFE_INTEGER:
        return number

    try:
        real = float(text)
    except ValueError:
        return text
    if math.isfinite(real) and format_value(real) == text:
        return real
    return text


@dataclass(frozen=True, eq=False)
class Segment:
    """
    One element of a UHL.

    Attributes:
        tag: Concrete variant name
        unique_keys: Key name -> value identifying the instance
        adt: Enclosing sum type when the tag shares an address space
            with sibling variants
    """
    tag: str
    unique_keys: Mapping[str, KeyValue] = field(default_factory=dict)
    adt: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.tag, str) or not self.tag:
            raise MalformedLocatorError(f"Invalid segment: {self.tag or ''}")
        _check_reserved("tag", self.tag)
        if self.tag == ROOT_STRING:
            raise ReservedCharacterError("tag", self.tag, ROOT_STRING)
        if self.adt is not None:
            if not self.adt:
                raise MalformedLocatorError(f"Invalid segment: {ADT_SEPARATOR}{self.tag}")
            _check_reserved("adt", self.adt)

        keys: Dict[str, KeyValue] = {}
        for key, value in dict(self.unique_keys or {}).items():
            rendered = format_value(value)
            if not key or not rendered:
                raise MalformedLocatorError(
                    f"Invalid property: {key}{KEY_VALUE_SEPARATOR}{rendered}"
                )
            _check_reserved("key", key)
            _check_reserved("value", rendered)
            keys[key] = value
        object.__setattr__(self, "unique_keys", MappingProxyType(keys))

    def __eq__(self, other):
        if not isinstance(other, Segment):
            return NotImplemented
        return segments_equivalent(self, other)

    def __hash__(self):
        return hash(segment_to_string(self))

    def __str__(self):
        return segment_to_string(self)

    def to_dict(self) -> Dict:
        data = {"tag": self.tag, "uniqueKeys": dict(self.unique_keys)}
        if self.adt is not None:
            data["adt"] = self.adt
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Segment":
        return cls(
            tag=data["tag"],
            unique_keys=data.get("uniqueKeys", {}),
            adt=data.get("adt"),
        )


@dataclass(frozen=True, eq=False)
class Uhl:
    """
    An ordered path of segments. The empty path is the root.
    """
    segments: Tuple[Segment, ...] = ()

    def __post_init__(self):
        segments = tuple(self.segments)
        for segment in segments:
            if not isinstance(segment, Segment):
                raise TypeError(f"UHL segments must be Segment, got {type(segment).__name__}")
        # Adjacent underscores would merge into the separator and break parsing
        rendered = [segment_to_string(s) for s in segments]
        for left, right in zip(rendered, rendered[1:]):
            if left.endswith("_") or right.startswith("_"):
                raise ReservedCharacterError(
                    "segment boundary", left + SEGMENT_SEPARATOR + right, SEGMENT_SEPARATOR
                )
        object.__setattr__(self, "segments", segments)

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def last(self) -> Optional[Segment]:
        return self.segments[-1] if self.segments else None

    @property
    def parent(self) -> "Uhl":
        return Uhl(self.segments[:-1])

    def child(self, segment: Segment) -> "Uhl":
        """Return this path extended by one segment."""
        return Uhl(self.segments + (segment,))

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __eq__(self, other):
        if not isinstance(other, Uhl):
            return NotImplemented
        return equivalent(self, other)

    def __hash__(self):
        return hash(to_string(self))

    def __str__(self):
        return to_string(self)

    def __repr__(self):
        return f"Uhl({to_string(self)!r})"


# Constructors

def make_segment(
    tag: str,
    unique_keys: Optional[Mapping[str, KeyValue]] = None,
    adt: Optional[str] = None,
) -> Segment:
    """Create a segment, validating every part before construction."""
    return Segment(tag=tag, unique_keys=unique_keys or {}, adt=adt)


def make(*segments: Segment) -> Uhl:
    """Create a UHL from segments. No segments gives the root."""
    return Uhl(tuple(segments))


def root() -> Uhl:
    return Uhl(())


# Serialization

def segment_to_string(segment: Segment) -> str:
    """
    Render one segment.

    Example:
        Segment("SchemaVersioned", {"version": "1.0.0"}, adt="Schema")
        -> "Schema@SchemaVersioned!version@1.0.0"
    """
    result = segment.tag
    if segment.adt:
        result = f"{segment.adt}{ADT_SEPARATOR}{result}"
    for key in sorted(segment.unique_keys):
        value = format_value(segment.unique_keys[key])
        result += f"{PROPERTY_SEPARATOR}{key}{KEY_VALUE_SEPARATOR}{value}"
    return result


def segment_from_string(text: str) -> Segment:
    """Parse one segment string."""
    identifier, *properties = text.split(PROPERTY_SEPARATOR)
    if not identifier:
        raise MalformedLocatorError(f"Invalid segment: {text}")

    parts = identifier.split(ADT_SEPARATOR)
    if len(parts) == 1:
        adt, tag = None, parts[0]
    elif len(parts) == 2 and all(parts):
        adt, tag = parts
    else:
        raise MalformedLocatorError(f"Invalid segment: {text}")

    unique_keys: Dict[str, KeyValue] = {}
    for chunk in properties:
        pieces = chunk.split(KEY_VALUE_SEPARATOR)
        if len(pieces) != 2 or not pieces[0] or not pieces[1]:
            raise MalformedLocatorError(f"Invalid property: {chunk}")
        key, value = pieces
        unique_keys[key] = parse_value(value)

    return Segment(tag=tag, unique_keys=unique_keys, adt=adt)


def to_string(uhl: Uhl) -> str:
    """Render a UHL. The root renders as "__root__"."""
    if uhl.is_root:
        return ROOT_STRING
    return SEGMENT_SEPARATOR.join(segment_to_string(s) for s in uhl.segments)


def from_string(text: str) -> Uhl:
    """Parse a UHL string. "" and "__root__" both give the root."""
    if not text or text == ROOT_STRING:
        return root()
    return Uhl(tuple(segment_from_string(s) for s in text.split(SEGMENT_SEPARATOR)))


def to_file_name(uhl: Uhl) -> str:
    return to_string(uhl) + FILE_EXTENSION


def from_file_name(file_name: str) -> Uhl:
    """Parse a fragment file name, stripping a trailing ".json"."""
    if file_name.endswith(FILE_EXTENSION):
        file_name = file_name[:-len(FILE_EXTENSION)]
    return from_string(file_name)


# Equivalence

def segments_equivalent(a: Segment, b: Segment) -> bool:
    """Same tag, adt and key set; values compare by their locator form."""
    if a.tag != b.tag or (a.adt or None) != (b.adt or None):
        return False
    if set(a.unique_keys) != set(b.unique_keys):
        return False
    return all(
        format_value(a.unique_keys[k]) == format_value(b.unique_keys[k])
        for k in a.unique_keys
    )


def equivalent(a: Union[Uhl, Segment], b: Union[Uhl, Segment]) -> bool:
    """Structural equivalence of two UHLs (or two segments)."""
    if isinstance(a, Segment) and isinstance(b, Segment):
        return segments_equivalent(a, b)
    if isinstance(a, Uhl) and isinstance(b, Uhl):
        if len(a.segments) != len(b.segments):
            return False
        return all(segments_equivalent(x, y) for x, y in zip(a.segments, b.segments))
    return False


def coerce(locator: Union[Uhl, str, Sequence[Segment]]) -> Uhl:
    """Accept a Uhl, its string form, or a sequence of segments."""
    if isinstance(locator, Uhl):
        return locator
    if isinstance(locator, str):
        return from_string(locator)
    return Uhl(tuple(locator))


@dataclass(frozen=True)
class SegmentTemplate:
    """
    The shape of a segment without its values: which tag, which key
    names, which adt. Derived from a schema, filled from a value.
    """
    tag: str
    keys: Tuple[str, ...] = ()
    adt: Optional[str] = None

    def fill(self, values: Mapping[str, KeyValue]) -> Segment:
        return Segment(
            tag=self.tag,
            unique_keys={k: values[k] for k in self.keys if k in values},
            adt=self.adt,
        )

    def blank(self) -> Segment:
        """A segment with tag and adt only, used for structural paths."""
        return Segment(tag=self.tag, unique_keys={}, adt=self.adt)
