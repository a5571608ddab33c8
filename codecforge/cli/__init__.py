"""codecforge CLI — Typer-based command-line interface.

Provides the ``codecforge`` command with subcommands for building a tier,
inspecting and invalidating stamps, running the pre-aggregate check, and
listing platforms and tiers.

All output uses Rich for formatted terminal display.
"""
