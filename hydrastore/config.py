# hydrastore/config.py
"""
Bridge configuration.

Loaded from YAML:

    directory: ./data/fragments
    indent: 2
    hash_algorithm: sha3_256
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass
class BridgeConfig:
    """
    Settings for a Bridge.

    Attributes:
        directory: Fragment directory (None keeps fragments in memory)
        indent: JSON indent for fragment files (None for compact output)
        hash_algorithm: hashlib algorithm for singleton addresses
    """
    directory: Optional[Path] = None
    indent: Optional[int] = 2
    hash_algorithm: str = "sha3_256"

    def __post_init__(self):
        if self.directory is not None:
            self.directory = Path(self.directory)
        if self.hash_algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unknown hash algorithm: {self.hash_algorithm}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "directory": str(self.directory) if self.directory is not None else None,
            "indent": self.indent,
            "hash_algorithm": self.hash_algorithm,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        return cls(
            directory=data.get("directory"),
            indent=data.get("indent", 2),
            hash_algorithm=data.get("hash_algorithm", "sha3_256"),
        )

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "BridgeConfig":
        """Parse configuration from a YAML string."""
        data = yaml.safe_load(yaml_content) or {}
        if not isinstance(data, dict):
            raise ValueError("Bridge configuration must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Path) -> "BridgeConfig":
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            return cls.from_yaml(f.read())
