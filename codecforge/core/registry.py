"""Static unit registry, validated once at construction.

Every structural problem (duplicate ids, dangling dependencies, cycles,
tier inconsistencies, overlapping outputs) is a ``ConfigurationError``
raised before any build work starts. Queries are pure and do no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from codecforge.core.catalog import DEFAULT_TIERS, DEFAULT_UNITS
from codecforge.core.errors import ConfigurationError, UnknownTierError, UnknownUnitError
from codecforge.core.unit_graph import UnitGraph
from codecforge.models.reports import Diagnostic, FailureCategory
from codecforge.models.tiers import ResolvedTier, TierDefinition
from codecforge.models.units import Unit

logger = logging.getLogger(__name__)


class UnitRegistry:
    """All declared units and tiers.

    Parameters
    ----------
    units:
        Unit declarations. Exactly one must be the aggregate.
    tiers:
        Tier definitions, simplest first.
    """

    def __init__(
        self,
        units: Iterable[Unit] = DEFAULT_UNITS,
        tiers: Iterable[TierDefinition] = DEFAULT_TIERS,
    ) -> None:
        self._units: dict[str, Unit] = {}
        problems: list[str] = []
        for unit in units:
            if unit.unit_id in self._units:
                problems.append(f"duplicate unit id '{unit.unit_id}'")
            self._units[unit.unit_id] = unit

        self._tiers: dict[str, TierDefinition] = {}
        for tier in tiers:
            if tier.name in self._tiers:
                problems.append(f"duplicate tier '{tier.name}'")
            self._tiers[tier.name] = tier

        problems.extend(self._check_units())
        if problems:
            self._fail(problems)

        # Raises CyclicDependencyError (a ConfigurationError) on cycles.
        UnitGraph(
            {uid: u.dependencies for uid, u in self._units.items()},
            order=self._units,
        )

        problems.extend(self._check_tiers())
        if problems:
            self._fail(problems)

        logger.debug(
            "Registry loaded: %d units, %d tiers", len(self._units), len(self._tiers)
        )

    @staticmethod
    def _fail(problems: list[str]) -> None:
        raise ConfigurationError(
            "Invalid unit registry: " + "; ".join(problems),
            diagnostics=[
                Diagnostic(
                    category=FailureCategory.INVALID_CONFIGURATION,
                    expected="a consistent unit registry",
                    actual=problem,
                )
                for problem in problems
            ],
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_units(self) -> list[str]:
        problems: list[str] = []
        aggregates = [u.unit_id for u in self._units.values() if u.is_aggregate]
        if len(aggregates) != 1:
            problems.append(
                f"expected exactly one aggregate unit, found {len(aggregates)}"
            )

        artifacts: dict[str, str] = {}
        descriptors: dict[str, str] = {}
        for unit in self._units.values():
            for dep in sorted(unit.dependencies):
                if dep not in self._units:
                    problems.append(
                        f"unit '{unit.unit_id}' depends on unknown unit '{dep}'"
                    )
                elif self._units[dep].is_aggregate:
                    problems.append(
                        f"unit '{unit.unit_id}' depends on the aggregate '{dep}'"
                    )
            if unit.is_aggregate and unit.dependencies:
                problems.append(
                    f"aggregate '{unit.unit_id}' must not declare dependencies"
                )

            owner = artifacts.setdefault(unit.artifact.artifact, unit.unit_id)
            if owner != unit.unit_id:
                problems.append(
                    f"units '{owner}' and '{unit.unit_id}' claim the same "
                    f"artifact path '{unit.artifact.artifact}'"
                )
            owner = descriptors.setdefault(unit.artifact.pkg_config, unit.unit_id)
            if owner != unit.unit_id:
                problems.append(
                    f"units '{owner}' and '{unit.unit_id}' claim the same "
                    f"descriptor '{unit.artifact.pkg_config}'"
                )
        return problems

    def _check_tiers(self) -> list[str]:
        problems: list[str] = []
        for tier in self._tiers.values():
            for parent in tier.extends:
                if parent not in self._tiers:
                    problems.append(f"tier '{tier.name}' extends unknown tier '{parent}'")
            for uid in tier.units:
                unit = self._units.get(uid)
                if unit is None:
                    problems.append(f"tier '{tier.name}' lists unknown unit '{uid}'")
                elif unit.is_aggregate:
                    problems.append(
                        f"tier '{tier.name}' lists the aggregate '{uid}' explicitly"
                    )
                elif unit.license_class not in tier.allowed_licenses:
                    problems.append(
                        f"unit '{uid}' ({unit.license_class.value}) is not allowed "
                        f"in tier '{tier.name}'"
                    )
        if problems:
            return problems

        for name in self._tiers:
            try:
                members = set(self._expand(name, ()))
            except ConfigurationError as exc:
                problems.append(str(exc))
                continue
            for uid in sorted(members):
                missing = self._units[uid].dependencies - members
                if missing:
                    problems.append(
                        f"tier '{name}' includes '{uid}' without its "
                        f"dependencies: {', '.join(sorted(missing))}"
                    )
        return problems

    def _expand(self, name: str, trail: tuple[str, ...]) -> list[str]:
        """Cumulative unit ids of a tier: ancestors first, then own additions."""
        if name in trail:
            raise ConfigurationError(
                f"tier inheritance cycle: {' -> '.join((*trail, name))}"
            )
        tier = self._tiers[name]
        result: list[str] = []
        for parent in tier.extends:
            for uid in self._expand(parent, (*trail, name)):
                if uid not in result:
                    result.append(uid)
        for uid in tier.units:
            if uid not in result:
                result.append(uid)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def units(self) -> tuple[Unit, ...]:
        return tuple(self._units.values())

    @property
    def tier_names(self) -> tuple[str, ...]:
        return tuple(self._tiers)

    @property
    def aggregate(self) -> Unit:
        return next(u for u in self._units.values() if u.is_aggregate)

    @property
    def graph(self) -> UnitGraph:
        """Dependency graph over the whole registry, aggregate on top."""
        return self.graph_for(self._units)

    def get_unit(self, unit_id: str) -> Unit:
        """Return the unit declared as ``unit_id``.

        Raises
        ------
        UnknownUnitError
            If no such unit is declared.
        """
        try:
            return self._units[unit_id]
        except KeyError:
            raise UnknownUnitError(f"Unknown unit: '{unit_id}'") from None

    def get_tier(self, name: str) -> TierDefinition:
        try:
            return self._tiers[name]
        except KeyError:
            raise UnknownTierError(f"Unknown tier: '{name}'") from None

    def tier_unit_ids(self, name: str) -> tuple[str, ...]:
        """Ordered unit ids of a canonical tier, aggregate last."""
        self.get_tier(name)
        return (*self._expand(name, ()), self.aggregate.unit_id)

    def list_units(self, tier: str | ResolvedTier) -> tuple[Unit, ...]:
        """Ordered, duplicate-free units of a tier (canonical name or resolved)."""
        unit_ids = tier.unit_ids if isinstance(tier, ResolvedTier) else self.tier_unit_ids(tier)
        return tuple(self._units[uid] for uid in unit_ids)

    def graph_for(self, unit_ids: Iterable[str]) -> UnitGraph:
        """Dependency graph restricted to ``unit_ids``.

        The aggregate, when present, depends on every other unit in the set.
        """
        ids = list(dict.fromkeys(unit_ids))
        for uid in ids:
            self.get_unit(uid)
        aggregate_id = self.aggregate.unit_id
        edges: dict[str, frozenset[str]] = {}
        for uid in ids:
            if uid == aggregate_id:
                edges[uid] = frozenset(i for i in ids if i != aggregate_id)
            else:
                edges[uid] = self._units[uid].dependencies
        return UnitGraph(edges, order=ids)
