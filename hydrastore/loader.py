# hydrastore/loader.py
"""
Schema descriptions in YAML.

    root: Catalog
    types:
      User:
        tagged: User
        fields:
          id: string
          joined: {optional: date}
        hydratable:
          keys: [id]
      Catalog:
        struct:
          users: {array: User}

A type expression is a builtin (string, number, boolean, null, date),
a name from `types`, or a mapping with exactly one of struct, tagged,
union, array, optional or literal. Any mapping may carry a
`hydratable` block with `keys` (a list, or per-tag lists for a union),
`singleton: true` and an optional ADT `name`.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional as Opt, Set

import yaml

from .errors import SchemaError
from .schema import (
    Array,
    Boolean,
    Date,
    Lazy,
    Literal,
    Null,
    Number,
    Optional,
    SchemaNode,
    String,
    Struct,
    TaggedStruct,
    Union,
    hydratable,
)

logger = logging.getLogger(__name__)

BUILTINS: Dict[str, Callable[[], SchemaNode]] = {
    "string": String,
    "number": Number,
    "boolean": Boolean,
    "null": Null,
    "date": lambda: Date,
}

KINDS = ("struct", "tagged", "union", "array", "optional", "literal")


class SchemaLoader:
    """
    Builds schema nodes from `types` definitions.

    Each name is built once, so every reference to it shares the same
    node. A name referenced while it is still being built (a recursive
    type) is returned as a Lazy node.
    """

    def __init__(self, definitions: Dict[str, Any]):
        self.definitions = dict(definitions or {})
        self.built: Dict[str, SchemaNode] = {}
        self._building: Set[str] = set()

    def named(self, name: str) -> SchemaNode:
        if name in self.built:
            return self.built[name]
        if name in self.definitions:
            if name in self._building:
                return Lazy(lambda: self.built[name])
            self._building.add(name)
            try:
                node = self.build(self.definitions[name], name)
            finally:
                self._building.discard(name)
            self.built[name] = node
            return node
        if name in BUILTINS:
            return BUILTINS[name]()
        raise SchemaError(f"Unknown type '{name}'")

    def build(self, expr: Any, name: Opt[str] = None) -> SchemaNode:
        if isinstance(expr, str):
            return self.named(expr)
        if not isinstance(expr, dict):
            raise SchemaError(f"Invalid type expression: {expr!r}")

        kinds = [k for k in KINDS if k in expr]
        if len(kinds) != 1:
            raise SchemaError(
                f"Type {name or expr!r} must use exactly one of {', '.join(KINDS)}"
            )
        kind = kinds[0]

        if kind == "struct":
            node = Struct(self._fields(expr["struct"], name))
        elif kind == "tagged":
            node = TaggedStruct(expr["tagged"], self._fields(expr.get("fields"), name))
        elif kind == "union":
            members = expr["union"]
            if not isinstance(members, list) or not members:
                raise SchemaError(f"Union {name or ''} needs a list of members")
            node = Union(*(self.build(m) for m in members), name=expr.get("name", name))
        elif kind == "array":
            node = Array(self.build(expr["array"]))
        elif kind == "optional":
            node = Optional(self.build(expr["optional"]))
        else:
            node = Literal(expr["literal"])

        hydration = expr.get("hydratable")
        if hydration is None:
            return node
        if hydration is True:
            hydration = {}
        if not isinstance(hydration, dict):
            raise SchemaError(f"Invalid hydratable block for {name or kind}: {hydration!r}")
        return hydratable(
            node,
            keys=hydration.get("keys"),
            singleton=bool(hydration.get("singleton", False)),
            name=hydration.get("name"),
        )

    def _fields(self, fields: Any, name: Opt[str]) -> Dict[str, SchemaNode]:
        if fields is None:
            return {}
        if not isinstance(fields, dict):
            raise SchemaError(f"Fields of {name or 'struct'} must be a mapping")
        return {str(k): self.build(v) for k, v in fields.items()}


def schema_from_yaml(yaml_content: str) -> SchemaNode:
    """
    Build the root schema described by a YAML document.

    Raises:
        SchemaError: on unknown names or malformed entries
    """
    data = yaml.safe_load(yaml_content)
    if not isinstance(data, dict) or "root" not in data:
        raise SchemaError("A schema document needs a 'root' entry")
    types = data.get("types") or {}
    if not isinstance(types, dict):
        raise SchemaError("'types' must be a mapping")

    loader = SchemaLoader(types)
    root = loader.build(data["root"])
    logger.debug(f"Loaded schema with {len(loader.built)} named types")
    return root


def load_schema(path: Path) -> SchemaNode:
    """Load a schema description from a YAML file."""
    with open(path, "r") as f:
        return schema_from_yaml(f.read())
