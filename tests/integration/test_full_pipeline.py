"""Integration test — the full codecforge pipeline over the default catalog.

Runs the real registry, tier resolver, isolation, verification gate,
executor and stamp cache end to end. Only the unit action and the
toolchain probe are replaced with in-process doubles.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import FakeAction
from codecforge.core.catalog import DEFAULT_ALIASES
from codecforge.core.registry import UnitRegistry
from codecforge.core.version_pins import load_versions
from codecforge.models.reports import StampStatus
from codecforge.models.units import UnitState

REPO_VERSIONS = Path(__file__).resolve().parents[2] / "versions.properties"


@pytest.fixture
def catalog() -> UnitRegistry:
    return UnitRegistry()


@pytest.fixture
def pipeline(make_orchestrator, build_config, catalog):
    config = build_config.model_copy(
        update={"versions": load_versions(REPO_VERSIONS), "parallelism": 4}
    )

    def _factory(action=None, **overrides):
        return make_orchestrator(
            action or FakeAction(catalog),
            config=config.model_copy(update=overrides) if overrides else config,
            registry=catalog,
            aliases=DEFAULT_ALIASES,
        )

    return _factory


class TestFullPipeline:
    def test_free_then_non_free(self, pipeline, catalog, layout):
        free_action = FakeAction(catalog)
        free = pipeline(free_action).build("free")
        assert free.exit_code == 0
        assert len(free_action.calls) == 14
        assert free_action.calls[-1] == "ffmpeg"
        assert free_action.calls.index("ogg") < free_action.calls.index("vorbis")
        assert free_action.calls.index("freetype") < free_action.calls.index("libass")

        summary = json.loads(layout.summary_path.read_text(encoding="utf-8"))
        assert summary["tier"] == "free"
        assert summary["license"] == "LGPL-2.1-or-later"
        assert "x264" not in summary["units"]
        assert summary["versions"]["FFMPEG_VERSION"] == "n7.1"

        gpl_action = FakeAction(catalog)
        non_free = pipeline(gpl_action).build("gpl")
        assert non_free.exit_code == 0
        assert non_free.tier == "non-free"
        libraries = sorted(uid for uid in gpl_action.calls if uid != "ffmpeg")
        assert libraries == ["fdk-aac", "x264", "x265", "xvid"]
        cached = {uid for uid, o in non_free.outcomes.items() if o.state == UnitState.CACHED}
        assert "ogg" in cached and "libass" in cached

        summary = json.loads(layout.summary_path.read_text(encoding="utf-8"))
        assert summary["tier"] == "non-free"
        assert "x264" in summary["units"]

    def test_third_run_builds_nothing(self, pipeline, catalog):
        pipeline().build("non-free")
        action = FakeAction(catalog)
        report = pipeline(action).build("non-free")
        assert action.calls == []
        assert report.exit_code == 0

    def test_failure_in_one_branch(self, pipeline, catalog):
        action = FakeAction(catalog, fail={"ogg"})
        report = pipeline(action).build("free")
        states = {uid: o.state for uid, o in report.outcomes.items()}
        for dependent in ("vorbis", "theora", "flac", "ffmpeg"):
            assert states[dependent] == UnitState.BLOCKED
            assert dependent not in action.calls
        for independent in ("opus", "lame", "libvpx", "aom", "dav1d", "freetype", "libass"):
            assert states[independent] == UnitState.VERIFIED
        assert report.exit_code == 1

        # Fix the failure: only the blocked subtree is built on the next run.
        retry = FakeAction(catalog)
        assert pipeline(retry).build("free").exit_code == 0
        assert sorted(retry.calls) == ["ffmpeg", "flac", "ogg", "theora", "vorbis"]

    def test_armv6_exclusion(self, pipeline, catalog):
        action = FakeAction(catalog)
        report = pipeline(action, excluded_units=frozenset({"svt-av1"})).build("free")
        assert report.exit_code == 0
        assert "svt-av1" not in action.calls
        assert "svt-av1" not in report.outcomes

    def test_info_after_build(self, pipeline):
        orchestrator = pipeline()
        orchestrator.build("free")
        info = pipeline().info("non-free")
        statuses = {u.unit_id: u.status for u in info.units}
        assert statuses["ogg"] == StampStatus.COMPLETE
        assert statuses["x264"] == StampStatus.MISSING
