"""
Deterministic hashing utilities.

compute_hash() joins the string form of its values with ``|`` and returns
the SHA-256 hex digest. It is order-dependent and type-agnostic, so callers
are responsible for putting values in a fixed order (sorting unordered
collections first).

Examples:
    >>> compute_hash("a", "b") == compute_hash("a", "b")
    True
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True
    >>> len(compute_hash("x"))
    64
"""

import hashlib
from pathlib import Path
from typing import Any

#: Full SHA-256 hex digest length.
DIGEST_LENGTH = 64

_CHUNK_SIZE = 65536


def compute_hash(*values: Any, length: int = DIGEST_LENGTH) -> str:
    """
    Compute deterministic hash from values.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 64 = full SHA-256)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def file_digest(path: Path | str) -> str | None:
    """SHA-256 of a file's bytes, or None if the file does not exist."""
    path = Path(path)
    if not path.is_file():
        return None
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def is_digest(value: str | None) -> bool:
    """True for a 64-character lowercase hex string."""
    if not value or len(value) != DIGEST_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
