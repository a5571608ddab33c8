"""Version pins — parse the versions file and reject mutable references.

The versions file is a flat ``KEY=VALUE`` list (``FFMPEG_VERSION=n7.1``).
A mutable ref such as ``master`` would let the same fingerprint describe
different sources, so pins must be tags or commit hashes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from codecforge.core.errors import ConfigurationError
from codecforge.models.reports import Diagnostic, FailureCategory
from codecforge.models.units import Unit

logger = logging.getLogger(__name__)

MUTABLE_REFS: frozenset[str] = frozenset({"stable", "master", "main", "head"})


def parse_versions(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; blank lines and ``#`` comments are skipped."""
    versions: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(
                f"Malformed versions entry on line {lineno}: {raw!r}"
            )
        versions[key.strip()] = value.strip()
    return versions


def load_versions(path: Path) -> dict[str, str]:
    """Read and parse a versions file. A missing file is a configuration error."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Versions file not found: {path}",
            diagnostics=[
                Diagnostic(
                    category=FailureCategory.MISSING_CONFIGURATION,
                    expected=f"versions file at {path}",
                    actual="file does not exist",
                )
            ],
        ) from exc
    versions = parse_versions(text)
    logger.debug("Loaded %d version pins from %s", len(versions), path)
    return versions


def is_mutable_ref(value: str) -> bool:
    return value.strip().lower() in MUTABLE_REFS


def validate_versions(versions: Mapping[str, str], units: Iterable[Unit]) -> None:
    """Check that every unit's version key is pinned to an immutable ref.

    All violations are collected and raised together.
    """
    diagnostics: list[Diagnostic] = []
    for unit in units:
        if not unit.version_key:
            continue
        value = versions.get(unit.version_key, "")
        if not value:
            diagnostics.append(
                Diagnostic(
                    category=FailureCategory.MISSING_CONFIGURATION,
                    unit_id=unit.unit_id,
                    expected=f"{unit.version_key} to be pinned",
                    actual="not set",
                )
            )
        elif is_mutable_ref(value):
            diagnostics.append(
                Diagnostic(
                    category=FailureCategory.INVALID_CONFIGURATION,
                    unit_id=unit.unit_id,
                    expected=f"{unit.version_key} pinned to a tag or commit hash",
                    actual=value,
                    remediation="Pin to a commit hash or release tag for cache correctness.",
                )
            )
    if diagnostics:
        names = ", ".join(d.unit_id or "?" for d in diagnostics)
        raise ConfigurationError(
            f"Invalid version pins for: {names}", diagnostics=diagnostics
        )
