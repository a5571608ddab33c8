"""``codecforge platforms`` and ``codecforge tiers`` — static catalog listings."""

from __future__ import annotations

from rich.table import Table

from codecforge.cli.context import console
from codecforge.core.registry import UnitRegistry
from codecforge.core.tiers import TierResolver
from codecforge.models.platforms import DEFAULT_PLATFORMS


def platforms_cmd() -> None:
    """List the supported target platforms."""
    table = Table(title="Platforms")
    table.add_column("Platform", style="cyan")
    table.add_column("Arch")
    table.add_column("Cross prefix")
    table.add_column("Excluded units")
    for platform in DEFAULT_PLATFORMS:
        table.add_row(
            platform.name,
            platform.arch,
            platform.cross_prefix or "[dim]native[/dim]",
            ", ".join(sorted(platform.excluded_units)) or "-",
        )
    console.print(table)


def tiers_cmd() -> None:
    """List tiers, their cumulative units and deprecated aliases."""
    registry = UnitRegistry()
    resolver = TierResolver(registry)
    table = Table(title="Tiers")
    table.add_column("Tier", style="cyan")
    table.add_column("Extends")
    table.add_column("License")
    table.add_column("Units")
    for name in registry.tier_names:
        tier = registry.get_tier(name)
        resolved = resolver.resolve(name)
        table.add_row(
            name,
            ", ".join(tier.extends) or "-",
            resolved.license_label,
            ", ".join(resolved.unit_ids),
        )
    console.print(table)

    aliases = ", ".join(f"{alias} -> {target}" for alias, target in resolver.aliases.items())
    console.print(f"[dim]Deprecated aliases: {aliases}[/dim]")
