"""Canonical hashing helpers for configuration fingerprints and artifacts."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

from codecforge.models.config import BuildConfiguration

_CHUNK_SIZE = 1 << 20


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize ``obj`` so that equal values always yield equal bytes.

    Keys are sorted, separators carry no whitespace and the output is
    ASCII-only UTF-8.
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def configuration_fingerprint(config: BuildConfiguration) -> str:
    """Fingerprint every field of a build configuration.

    Sets are serialized in sorted order so that equal configurations
    always hash identically, regardless of construction order.
    """
    payload = config.model_dump(mode="json")
    payload["excluded_units"] = sorted(payload.get("excluded_units") or [])
    return content_address(payload)


def file_sha256(path: Path) -> str:
    """Stream a file through SHA-256 and return the hex digest."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
