"""Stamp model: the persisted proof that a unit was built and verified."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Stamp(BaseModel):
    """One stamp record, keyed by unit id and configuration fingerprint.

    Written only after the post-unit gate passes. A stamp whose fingerprint
    differs from the current configuration's is treated as absent.
    """

    model_config = ConfigDict(frozen=True)

    unit_id: str
    fingerprint: str  # "sha256:<hex>" of the BuildConfiguration
    artifact: str = ""  # absolute path at commit time
    pkg_config: str = ""
    committed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
