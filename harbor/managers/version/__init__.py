"""Version history."""

from harbor.managers.version.hashing import adler32_file, hash_tree, sha256_file
from harbor.managers.version.store import VersionStore

__all__ = ["VersionStore", "adler32_file", "hash_tree", "sha256_file"]
