"""Adversarial tests — host leakage and hostile descriptors.

A unit must never see host libraries or units outside its scope, and a
descriptor that points outside the build prefix must be reported:
1. Host PKG_CONFIG_* variables must not reach the unit environment
2. A same-named host descriptor must not satisfy resolution
3. Descriptors with traversal, cycles or undefined variables fail cleanly
4. Leaks through Libs/Cflags surface as warnings on the unit outcome
"""

from __future__ import annotations

import pytest

from conftest import FakeAction, write_descriptor
from codecforge.core.errors import IsolationLeakWarning
from codecforge.core.isolation import EnvironmentIsolation
from codecforge.core.pkgconfig import DescriptorResolver
from codecforge.core.registry import UnitRegistry
from codecforge.models.units import UnitState


class LeakyAction(FakeAction):
    """Installs a descriptor for ``x`` that links against a host directory."""

    def run(self, unit, config, environment, output_dir):
        code = super().run(unit, config, environment, output_dir)
        if unit.unit_id == "x" and code == 0:
            write_descriptor(output_dir, "x", libdir="/usr/lib/x86_64-linux-gnu")
        return code


class TestHostEnvironment:
    def test_host_pkg_config_vars_not_propagated(self, make_orchestrator, test_registry, monkeypatch, tmp_path):
        host = tmp_path / "host" / "lib" / "pkgconfig"
        host.mkdir(parents=True)
        monkeypatch.setenv("PKG_CONFIG_PATH", str(host))
        monkeypatch.setenv("PKG_CONFIG_LIBDIR", str(host))

        action = FakeAction(test_registry)
        make_orchestrator(action).build("simple")
        for env in action.environments.values():
            assert env.variables["PKG_CONFIG_PATH"] == ""
            assert str(host) not in env.variables["PKG_CONFIG_LIBDIR"]

    def test_host_descriptor_cannot_satisfy_dependency(self, test_registry, build_config, tmp_path):
        # A host "x.pc" exists, but resolution only looks at the scope's roots.
        write_descriptor(tmp_path / "host", "x")
        write_descriptor(build_config.unit_root("y"), "y", requires=["x"])
        env = EnvironmentIsolation(test_registry).build_environment(build_config, ("x", "y"))
        resolution = DescriptorResolver(env.descriptor_roots, allowed_root=build_config.prefix).resolve("y")
        assert not resolution.resolved
        assert "requires 'x'" in resolution.error

    def test_sibling_unit_invisible(self, make_orchestrator, test_registry, build_config):
        make_orchestrator(FakeAction(test_registry)).build("rich")
        env = EnvironmentIsolation(test_registry).build_environment(build_config, ("z",))
        resolver = DescriptorResolver(env.descriptor_roots, allowed_root=build_config.prefix)
        assert resolver.available() == ["z"]
        assert not resolver.resolve("x").found


class TestHostileDescriptors:
    def test_traversal_prefix_is_a_leak(self, tmp_path):
        prefix = tmp_path / "prefix"
        path = write_descriptor(prefix / "x", "x")
        path.write_text(
            path.read_text(encoding="utf-8").replace(
                f"prefix={prefix / 'x'}", f"prefix={prefix / 'x'}/../../../.."
            ),
            encoding="utf-8",
        )
        resolution = DescriptorResolver([path.parent], allowed_root=prefix).resolve("x")
        assert resolution.resolved
        assert len(resolution.leaks) == 2

    def test_self_requirement(self, tmp_path):
        path = write_descriptor(tmp_path / "x", "x", requires=["x"])
        resolution = DescriptorResolver([path.parent]).resolve("x")
        assert not resolution.resolved
        assert "cycle" in resolution.error

    def test_deep_variable_chain_resolves(self, tmp_path):
        pc_dir = tmp_path / "lib" / "pkgconfig"
        pc_dir.mkdir(parents=True)
        chain = "\n".join(f"v{i}=${{v{i + 1}}}" for i in range(50))
        (pc_dir / "deep.pc").write_text(
            chain + "\nv50=/opt\nName: deep\nVersion: 1\nLibs: -L${v0} -ldeep\n", encoding="utf-8"
        )
        resolution = DescriptorResolver([pc_dir]).resolve("deep")
        assert resolution.resolved
        assert resolution.libs == "-L/opt -ldeep"

    def test_binary_garbage_descriptor(self, tmp_path):
        pc_dir = tmp_path / "lib" / "pkgconfig"
        pc_dir.mkdir(parents=True)
        (pc_dir / "junk.pc").write_bytes(b"\x00\xff\xfe\x7fELF")
        resolution = DescriptorResolver([pc_dir]).resolve("junk")
        assert resolution.found
        assert not resolution.resolved


class TestLeakWarnings:
    def test_leak_recorded_on_outcome(self, make_orchestrator, test_registry):
        orchestrator = make_orchestrator(LeakyAction(test_registry))
        with pytest.warns(IsolationLeakWarning):
            report = orchestrator.build("simple")
        assert report.outcomes["x"].state == UnitState.VERIFIED
        assert any("/usr/lib/x86_64-linux-gnu" in w for w in report.outcomes["x"].warnings)
        # Dependents see the leak through Requires as well.
        assert any("x: Libs" in w for w in report.outcomes["y"].warnings)
        assert report.exit_code == 0
