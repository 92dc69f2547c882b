"""File content hashing for version diffs.

The default is a chunked Adler-32 rolling checksum. It is fast but NOT
collision resistant: two different files can share a checksum, and a
diff would then report them as unchanged. Select ``sha256`` in
``versions.hash_algorithm`` when that matters.
"""

from __future__ import annotations

import hashlib
import os
import zlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def adler32_file(path: Path) -> str:
    value = 1
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            value = zlib.adler32(chunk, value)
    return f"{value & 0xFFFFFFFF:08x}"


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


HASHERS = {
    "adler32": adler32_file,
    "sha256": sha256_file,
}


def hash_tree(root: Path, algorithm: str = "adler32") -> dict[str, tuple[str, int]]:
    """Map every regular file under ``root`` to ``(hash, size)``.

    Keys are POSIX paths relative to ``root``.
    """
    hasher = HASHERS[algorithm]
    result: dict[str, tuple[str, int]] = {}
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            relative = path.relative_to(root).as_posix()
            result[relative] = (hasher(path), path.stat().st_size)
    return result
