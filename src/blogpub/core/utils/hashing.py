"""SHA-256 content hashing for build fingerprints"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 hash of content (64 chars, matches String(64) column)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def fingerprint(*parts: Any) -> str:
    """Hash an ordered collection of JSON-serializable parts into one digest."""
    return sha256(json.dumps(parts, sort_keys=True, default=str))
