# hydrastore - Hydratable value persistence
#
# Splits a large typed value into independently addressable fragments,
# one JSON file each, and reassembles them on demand.
#
# Core concepts:
# - UHL: Unique Hydratable Locator, the path-like address of a fragment
# - Hydratable: a tagged value addressed by its key fields or a content hash
# - Dehydrate: replace a hydratable with an address-only stub
# - Hydrate: replace stubs with the fragments they point at
# - Bridge: schema + index + storage, with import/export/peek/view/clear

from . import uhl
from .bridge import Bridge, BridgeState, data_to_files
from .config import BridgeConfig
from .errors import (
    AmbiguousSelectionError,
    FragmentIOError,
    HydraError,
    MalformedLocatorError,
    NotFoundError,
    ReservedCharacterError,
    SchemaError,
    SchemaValidationError,
    SelectionError,
)
from .fragment import FragmentAsset
from .graph import DependencyGraph
from .index import FragmentIndex
from .loader import load_schema, schema_from_yaml
from .registry import HydrationContext, create_context, generate_singleton_hash
from .schema import (
    Array,
    Boolean,
    Date,
    Hydratable,
    Lazy,
    Literal,
    Null,
    Number,
    Optional,
    String,
    Struct,
    TaggedStruct,
    Transform,
    Union,
    hydratable,
)
from .storage import FileSystemIO, FragmentIO, MemoryIO
from .uhl import Segment, Uhl
from .value import dehydrate, dehydrate_with_dependencies, hydrate

__version__ = "0.1.0"

__all__ = [
    # Locators
    "uhl",
    "Uhl",
    "Segment",
    # Schema
    "String",
    "Number",
    "Boolean",
    "Null",
    "Literal",
    "Struct",
    "TaggedStruct",
    "Union",
    "Array",
    "Optional",
    "Transform",
    "Lazy",
    "Date",
    "Hydratable",
    "hydratable",
    "schema_from_yaml",
    "load_schema",
    # Engine
    "HydrationContext",
    "create_context",
    "generate_singleton_hash",
    "dehydrate",
    "dehydrate_with_dependencies",
    "hydrate",
    "DependencyGraph",
    "FragmentIndex",
    # Persistence
    "Bridge",
    "BridgeState",
    "BridgeConfig",
    "FragmentAsset",
    "FragmentIO",
    "FileSystemIO",
    "MemoryIO",
    "data_to_files",
    # Errors
    "HydraError",
    "ReservedCharacterError",
    "MalformedLocatorError",
    "NotFoundError",
    "FragmentIOError",
    "SchemaError",
    "SchemaValidationError",
    "SelectionError",
    "AmbiguousSelectionError",
]
