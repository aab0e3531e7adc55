# hydrastore/errors.py
"""
Exception hierarchy.

Construction-time errors (reserved characters, malformed locators,
schema problems) are raised synchronously. I/O failures propagate
unchanged in meaning, wrapped as FragmentIOError. Missing data during
hydrate/peek is represented as data, never as one of these.
"""


class HydraError(Exception):
    """Base class for all hydrastore errors."""


class ReservedCharacterError(HydraError, ValueError):
    """A tag, adt, key or value contains a grammar-reserved substring."""

    def __init__(self, field: str, value: str, reserved: str):
        self.field = field
        self.value = value
        self.reserved = reserved
        super().__init__(
            f"Reserved character {reserved!r} in {field}: {value!r}"
        )


class MalformedLocatorError(HydraError, ValueError):
    """A locator string or file name does not follow the grammar."""


class NotFoundError(HydraError, LookupError):
    """No index entry satisfies the root schema."""


class FragmentIOError(HydraError, OSError):
    """Reading, writing, listing or removing a fragment failed."""


class SchemaError(HydraError, ValueError):
    """A schema description is invalid (e.g. a hydratable with no address)."""


class SchemaValidationError(HydraError, ValueError):
    """A value does not match the schema it is encoded or decoded with."""

    def __init__(self, message: str, path: tuple = ()):
        self.path = tuple(path)
        if self.path:
            location = ".".join(str(p) for p in self.path)
            message = f"{message} (at {location})"
        super().__init__(message)


class SelectionError(HydraError, ValueError):
    """A peek selection cannot be resolved to locators."""


class AmbiguousSelectionError(SelectionError):
    """A selected tag appears under a parent and needs $Parent or $$ context."""

    def __init__(self, tag: str, paths: list):
        self.tag = tag
        self.paths = list(paths)
        super().__init__(
            f"Hydratable '{tag}' appears in {len(self.paths)} path(s) and requires "
            f"parent context. Use a $<Parent> entry or the $$ "
            f"property to specify the exact path from root."
        )
