# hydrastore/fragment.py
"""
Fragment files.

A fragment asset is one file: the locator's file name and the JSON
text of the fragment with its nested hydratables dehydrated. The
fragment itself stays hydrated and is encoded with its tag's encoder
(the root schema for the root fragment).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from . import uhl as uhl_
from .errors import FragmentIOError, SchemaValidationError
from .registry import HydrationContext
from .schema import TAG_KEY, is_dehydrated, is_tagged
from .uhl import Uhl
from .value import DehydrationResult, dehydrate_children

logger = logging.getLogger(__name__)


@dataclass
class FragmentAsset:
    """A fragment as a file: name and JSON content."""
    filename: str
    content: str

    @property
    def uhl(self) -> Uhl:
        return uhl_.from_file_name(self.filename)

    def to_dict(self) -> Dict[str, str]:
        return {"filename": self.filename, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "FragmentAsset":
        return cls(filename=data["filename"], content=data["content"])


def _codec(
    locator: Uhl,
    value: Any,
    context: HydrationContext,
    encoding: bool,
) -> Optional[Callable[[Any], Any]]:
    if locator.is_root:
        return context.schema.encode if encoding else context.schema.decode
    table = context.encoders if encoding else context.decoders
    if is_tagged(value) and value[TAG_KEY] in table:
        return table[value[TAG_KEY]]
    return table.get(locator.last.tag)


def encode_fragment(locator: Uhl, value: Any, context: HydrationContext) -> Any:
    """
    Encode a fragment whose children are already dehydrated.

    A value that does not match its schema (typically one kept raw at
    import) is written unchanged.
    """
    encoder = _codec(locator, value, context, encoding=True)
    if encoder is None:
        return value
    try:
        return encoder(value)
    except SchemaValidationError as e:
        logger.warning(f"Writing fragment {locator} unencoded: {e}")
        return value


def decode_fragment(locator: Uhl, data: Any, context: HydrationContext) -> Any:
    """Decode parsed JSON, keeping the raw value when it does not decode."""
    decoder = _codec(locator, data, context, encoding=False)
    if decoder is None:
        return data
    try:
        return decoder(data)
    except SchemaValidationError as e:
        logger.warning(f"Failed to decode fragment {locator}, keeping raw JSON: {e}")
        return data


def value_to_fragment_content(
    locator: Uhl,
    value: Any,
    context: HydrationContext,
    indent: Optional[int] = 2,
) -> Tuple[str, DehydrationResult]:
    """
    Render one fragment's file content.

    Returns:
        (JSON text, dehydration result for the fragment's children)
    """
    if is_dehydrated(value):
        raise SchemaValidationError(f"Cannot create a fragment from a dehydrated value at {locator}")
    result = dehydrate_children(value, context, locator)
    encoded = encode_fragment(locator, result.value, context)
    return json.dumps(encoded, indent=indent, ensure_ascii=False), result


def fragment_to_asset(
    locator: Uhl,
    value: Any,
    context: HydrationContext,
    indent: Optional[int] = 2,
) -> Tuple[FragmentAsset, DehydrationResult]:
    content, result = value_to_fragment_content(locator, value, context, indent)
    return FragmentAsset(uhl_.to_file_name(locator), content), result


def fragment_asset_to_fragment(asset: FragmentAsset, context: HydrationContext) -> Tuple[Uhl, Any]:
    """
    Turn a file back into (locator, decoded value).

    Raises:
        MalformedLocatorError: if the file name is not a locator
        FragmentIOError: if the content is not JSON
    """
    locator = uhl_.from_file_name(asset.filename)
    try:
        data = json.loads(asset.content)
    except json.JSONDecodeError as e:
        raise FragmentIOError(f"Fragment {asset.filename} is not valid JSON: {e}") from e
    return locator, decode_fragment(locator, data, context)
