# hydrastore/storage.py
"""
I/O capabilities for fragment files.

A Bridge talks to storage only through FragmentIO, so the directory
can be swapped for memory (tests, previews) or anything else that can
list, read, write and remove named text blobs.

Missing files raise FileNotFoundError; every other failure is wrapped
in FragmentIOError. Nothing here retries.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Mapping

from .errors import FragmentIOError

logger = logging.getLogger(__name__)


class FragmentIO(ABC):
    """Named text blob storage, flat namespace."""

    @abstractmethod
    def list_files(self) -> List[str]:
        """Names of all stored files, sorted."""

    @abstractmethod
    def read(self, name: str) -> str:
        """
        Read a file.

        Raises:
            FileNotFoundError: if the file does not exist
            FragmentIOError: on any other failure
        """

    @abstractmethod
    def write(self, name: str, content: str) -> None:
        """Create or replace a file."""

    @abstractmethod
    def remove(self, name: str) -> None:
        """Delete a file. Missing files are ignored."""


class FileSystemIO(FragmentIO):
    """
    Fragments as files in one directory.

    Structure:
        directory/
            <locator>.json
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FragmentIOError(f"Cannot create fragment directory {self.directory}: {e}") from e

    def _path(self, name: str) -> Path:
        if "/" in name or "\\" in name or name in ("", ".", ".."):
            raise FragmentIOError(f"Invalid fragment file name: {name!r}")
        return self.directory / name

    def list_files(self) -> List[str]:
        try:
            return sorted(p.name for p in self.directory.iterdir() if p.is_file())
        except OSError as e:
            raise FragmentIOError(f"Cannot list {self.directory}: {e}") from e

    def read(self, name: str) -> str:
        path = self._path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise
        except OSError as e:
            raise FragmentIOError(f"Cannot read {path}: {e}") from e

    def write(self, name: str, content: str) -> None:
        path = self._path(name)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FragmentIOError(f"Cannot write {path}: {e}") from e
        logger.debug(f"Wrote {path} ({len(content)} chars)")

    def remove(self, name: str) -> None:
        path = self._path(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise FragmentIOError(f"Cannot remove {path}: {e}") from e


class MemoryIO(FragmentIO):
    """Fragments held in a dict."""

    def __init__(self, initial_files: Mapping[str, str] = None):
        self.files: Dict[str, str] = dict(initial_files or {})

    def list_files(self) -> List[str]:
        return sorted(self.files)

    def read(self, name: str) -> str:
        try:
            return self.files[name]
        except KeyError:
            raise FileNotFoundError(name) from None

    def write(self, name: str, content: str) -> None:
        self.files[name] = content

    def remove(self, name: str) -> None:
        self.files.pop(name, None)
