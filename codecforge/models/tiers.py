"""License tier models — named, cumulative sets of units."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from codecforge.models.units import LicenseClass


class TierDefinition(BaseModel):
    """A tier declares the tiers it extends plus its own additions.

    The effective unit set of a tier is the union of everything it extends
    and its own ``units``, which makes a richer tier a superset of every
    tier it names in ``extends``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    units: tuple[str, ...] = ()
    extends: tuple[str, ...] = ()
    allowed_licenses: frozenset[LicenseClass] = frozenset(LicenseClass)
    license_label: str = ""


class ResolvedTier(BaseModel):
    """The outcome of resolving a requested tier name for one invocation."""

    model_config = ConfigDict(frozen=True)

    requested: str
    canonical: str
    unit_ids: tuple[str, ...]
    license_label: str = ""
    deprecated_alias: str | None = None

    @property
    def library_ids(self) -> tuple[str, ...]:
        """Unit ids without the trailing aggregate."""
        return self.unit_ids[:-1]

    @property
    def aggregate_id(self) -> str:
        return self.unit_ids[-1]
