"""Stamp cache — one JSON record per unit under the stamps directory.

Storage layout: {stamps_dir}/{unit_id}.stamp

Writes go to a temporary file in the same directory, are fsynced, then
renamed over the stamp, so a crash never leaves a partial stamp behind.
Anything that cannot be read back as a valid record is "not complete".
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from codecforge.models.stamps import Stamp

logger = logging.getLogger(__name__)

STAMP_SUFFIX = ".stamp"


class StampCache:
    """Fingerprint-keyed completion markers.

    Parameters
    ----------
    stamps_dir:
        Directory holding one stamp file per unit. Created on demand.
    """

    def __init__(self, stamps_dir: Path) -> None:
        self._dir = Path(stamps_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _stamp_path(self, unit_id: str) -> Path:
        return self._dir / f"{unit_id}{STAMP_SUFFIX}"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self, unit_id: str) -> Stamp | None:
        """Return the stored stamp, or None if missing or unreadable."""
        path = self._stamp_path(unit_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Unreadable stamp %s: %s", path, exc)
            return None
        try:
            stamp = Stamp.model_validate_json(raw)
        except ValidationError:
            logger.warning("Malformed stamp %s, treating as absent", path)
            return None
        if stamp.unit_id != unit_id:
            logger.warning(
                "Stamp %s records unit '%s', treating as absent", path, stamp.unit_id
            )
            return None
        return stamp

    def is_complete(self, unit_id: str, fingerprint: str) -> bool:
        """True only if a valid stamp exists with exactly this fingerprint."""
        stamp = self.read(unit_id)
        return stamp is not None and stamp.fingerprint == fingerprint

    def stamped_ids(self) -> list[str]:
        """Unit ids that have a stamp file, valid or not."""
        if not self._dir.is_dir():
            return []
        return sorted(
            p.name[: -len(STAMP_SUFFIX)]
            for p in self._dir.iterdir()
            if p.name.endswith(STAMP_SUFFIX) and p.is_file()
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(
        self,
        unit_id: str,
        fingerprint: str,
        *,
        artifact: str = "",
        pkg_config: str = "",
    ) -> Stamp:
        """Atomically write the stamp for ``unit_id``.

        Must only be called after the unit passed post-unit verification.
        """
        stamp = Stamp(
            unit_id=unit_id,
            fingerprint=fingerprint,
            artifact=artifact,
            pkg_config=pkg_config,
        )
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{unit_id}.", suffix=".tmp", dir=self._dir
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(stamp.model_dump_json(indent=2).encode("utf-8"))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._stamp_path(unit_id))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Committed stamp for %s (%s)", unit_id, fingerprint)
        return stamp

    def invalidate(self, unit_id: str) -> bool:
        """Remove the stamp for ``unit_id``. Returns True if one existed."""
        try:
            self._stamp_path(unit_id).unlink()
        except FileNotFoundError:
            return False
        logger.info("Invalidated stamp for %s", unit_id)
        return True

    def invalidate_all(self) -> list[str]:
        """Remove every stamp. Returns the ids that were removed."""
        removed = [uid for uid in self.stamped_ids() if self.invalidate(uid)]
        if self._dir.is_dir():
            for leftover in self._dir.glob("*.tmp"):
                leftover.unlink(missing_ok=True)
        return removed
