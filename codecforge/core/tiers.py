"""Tier resolution: alias lookup plus cumulative unit expansion.

Alias policy is a pure table lookup (``resolve_alias``). Emitting the
deprecation warning is a separate step on the resolver so that it happens
once per invocation and can be tested without capturing logs.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from codecforge.core.catalog import DEFAULT_ALIASES
from codecforge.core.errors import UnknownTierError
from codecforge.core.registry import UnitRegistry
from codecforge.models.reports import Diagnostic, FailureCategory
from codecforge.models.tiers import ResolvedTier

logger = logging.getLogger(__name__)


def resolve_alias(
    name: str, aliases: Mapping[str, str] = DEFAULT_ALIASES
) -> tuple[str, str | None]:
    """Map a requested name to ``(canonical_name, alias_used_or_None)``.

    Pure: does not check that the canonical name exists.
    """
    key = name.strip().lower()
    if key in aliases:
        return aliases[key], key
    return key, None


class TierResolver:
    """Resolves tier names for one invocation.

    Parameters
    ----------
    registry:
        The validated unit registry holding the tier definitions.
    aliases:
        Deprecated name -> canonical name table.
    """

    def __init__(
        self,
        registry: UnitRegistry,
        aliases: Mapping[str, str] = DEFAULT_ALIASES,
    ) -> None:
        self._registry = registry
        self._aliases = dict(aliases)
        self._warned: set[str] = set()

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def resolve(self, name: str) -> ResolvedTier:
        """Resolve ``name`` to its canonical tier and ordered unit ids.

        Raises
        ------
        UnknownTierError
            If ``name`` is neither a tier nor a known alias.
        """
        canonical, alias = resolve_alias(name, self._aliases)
        if canonical not in self._registry.tier_names:
            known = sorted({*self._registry.tier_names, *self._aliases})
            raise UnknownTierError(
                f"Unknown tier: '{name}'",
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.INVALID_CONFIGURATION,
                        expected=f"one of: {', '.join(known)}",
                        actual=name,
                    )
                ],
            )
        tier = self._registry.get_tier(canonical)
        return ResolvedTier(
            requested=name,
            canonical=canonical,
            unit_ids=self._registry.tier_unit_ids(canonical),
            license_label=tier.license_label,
            deprecated_alias=alias,
        )

    def emit_deprecation(self, resolved: ResolvedTier) -> bool:
        """Log the alias deprecation warning, at most once per alias.

        Returns True if a warning was emitted by this call.
        """
        alias = resolved.deprecated_alias
        if alias is None or alias in self._warned:
            return False
        self._warned.add(alias)
        logger.warning(
            "DEPRECATION: tier '%s' is deprecated, use '%s' instead",
            alias,
            resolved.canonical,
        )
        return True
