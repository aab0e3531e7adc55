# hydrastore/index.py
"""
In-memory fragment index.

Maps locator strings to raw fragment values. Populated by import,
peek and dehydration; never evicted. Its lifetime is the owning
Bridge (or whichever caller created it).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from . import uhl as uhl_
from .uhl import Uhl

logger = logging.getLogger(__name__)

Locator = Union[Uhl, str]


def _key(locator: Locator) -> str:
    if isinstance(locator, Uhl):
        return uhl_.to_string(locator)
    return uhl_.to_string(uhl_.from_string(locator))


@dataclass
class IndexStats:
    """Lookups served from memory vs. ones that missed."""
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0

    def record_hit(self):
        self.hits += 1
        self._update_rate()

    def record_miss(self):
        self.misses += 1
        self._update_rate()

    def _update_rate(self):
        total = self.hits + self.misses
        self.hit_rate = self.hits / total if total > 0 else 0.0


class FragmentIndex:
    """
    Locator string -> fragment value.

    Keys are canonical locator strings, so equivalent UHLs built with
    different key orders land on the same entry.
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._adts: Dict[str, Optional[str]] = {}
        self.stats = IndexStats()

    def add(self, locator: Locator, value: Any) -> str:
        """Store a value under a locator, returning the index key."""
        uhl = locator if isinstance(locator, Uhl) else uhl_.from_string(locator)
        key = uhl_.to_string(uhl)
        self._entries[key] = value
        last = uhl.last
        if last is not None and (last.adt or last.tag not in self._adts):
            self._adts[last.tag] = last.adt
        logger.debug(f"Indexed: {key}")
        return key

    def get(self, locator: Locator) -> Optional[Any]:
        """Get a value by locator, or None."""
        value = self._entries.get(_key(locator))
        if value is None:
            self.stats.record_miss()
        else:
            self.stats.record_hit()
        return value

    def has(self, locator: Locator) -> bool:
        """Check for an entry (without affecting stats)."""
        return _key(locator) in self._entries

    def find(self, value: Any, tag: str) -> Optional[Uhl]:
        """
        Locator a stored value is filed under (without affecting stats).

        Entries holding the very same object win over entries that
        merely compare equal.
        """
        candidates = []
        for key, stored in self._entries.items():
            if key == uhl_.ROOT_STRING:
                continue
            locator = uhl_.from_string(key)
            if locator.last.tag != tag:
                continue
            if stored is value:
                return locator
            if stored == value:
                candidates.append(locator)
        return candidates[0] if candidates else None

    def remove(self, locator: Locator) -> bool:
        key = _key(locator)
        if key not in self._entries:
            return False
        del self._entries[key]
        return True

    def clear(self):
        self._entries.clear()
        self._adts.clear()
        self.stats = IndexStats()

    def adt_for(self, tag: str) -> Optional[str]:
        """The adt seen for a tag in indexed locators, if any."""
        return self._adts.get(tag)

    @property
    def root(self) -> Optional[Any]:
        return self._entries.get(uhl_.ROOT_STRING)

    def keys(self) -> List[str]:
        return list(self._entries)

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._entries.items())

    def locators(self) -> List[Uhl]:
        return [uhl_.from_string(k) for k in self._entries]

    def __contains__(self, locator: Locator) -> bool:
        return self.has(locator)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))


def create() -> FragmentIndex:
    return FragmentIndex()


def add(index: FragmentIndex, locator: Locator, value: Any) -> str:
    """Store a value in an index."""
    return index.add(locator, value)


def get(index: FragmentIndex, locator: Locator) -> Optional[Any]:
    """Look up a value in an index."""
    return index.get(locator)
