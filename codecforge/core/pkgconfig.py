"""Pure-Python ``.pc`` descriptor resolution.

Descriptors are looked up only in the given search roots, the same way
``pkg-config`` does when ``PKG_CONFIG_LIBDIR`` is set and
``PKG_CONFIG_PATH`` is empty. Resolution fails on missing required fields,
undefined variables, missing or cyclic requirements. Search paths that
point outside the allowed root are reported as leaks, not failures.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

REQUIRED_FIELDS = ("Name", "Version", "Libs")

_VARIABLE_RE = re.compile(r"^([A-Za-z0-9_.]+)\s*=\s*(.*)$")
_FIELD_RE = re.compile(r"^([A-Za-z0-9_.]+)\s*:\s*(.*)$")
_REFERENCE_RE = re.compile(r"\$\{([A-Za-z0-9_.]+)\}")
_REQUIRE_RE = re.compile(
    r"([A-Za-z0-9_.+-]+)(?:\s*(?:<=|>=|!=|=|<|>)\s*[^\s,]+)?"
)


class DescriptorError(ValueError):
    """A descriptor exists but cannot be parsed or expanded."""


class ParsedDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    variables: dict[str, str]
    fields: dict[str, str]

    def requires(self) -> list[str]:
        names: list[str] = []
        for key in ("Requires", "Requires.private"):
            names.extend(parse_requires(self.fields.get(key, "")))
        return names


class DescriptorResolution(BaseModel):
    """Outcome of resolving one descriptor and everything it requires."""

    model_config = ConfigDict(frozen=True)

    name: str
    found: bool
    path: Path | None = None
    version: str = ""
    libs: str = ""
    cflags: str = ""
    requires: tuple[str, ...] = ()
    error: str = ""
    leaks: tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.found and not self.error


def parse_requires(value: str) -> list[str]:
    """Package names from a Requires field, version constraints dropped."""
    return [m.group(1) for m in _REQUIRE_RE.finditer(value.replace(",", " "))]


def _strip_comment(line: str) -> str:
    index = line.find("#")
    return line if index < 0 else line[:index]


def _expand(value: str, variables: dict[str, str], trail: tuple[str, ...] = ()) -> str:
    def substitute(match: re.Match[str]) -> str:
        var = match.group(1)
        if var in trail:
            raise DescriptorError(f"recursive variable '{var}'")
        if var not in variables:
            raise DescriptorError(f"undefined variable '{var}'")
        return _expand(variables[var], variables, (*trail, var))

    return _REFERENCE_RE.sub(substitute, value.replace("$$", "\0")).replace("\0", "$")


def parse_descriptor(path: Path) -> ParsedDescriptor:
    """Parse a ``.pc`` file and expand all variable references.

    Raises
    ------
    DescriptorError
        On undefined or recursive variables, or missing required fields.
    """
    variables: dict[str, str] = {"pcfiledir": str(path.parent)}
    raw_fields: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = _strip_comment(raw).strip()
        if not line:
            continue
        var = _VARIABLE_RE.match(line)
        field = _FIELD_RE.match(line)
        # "a=b: c" is a variable; "Key: a=b" is a field.
        if var and (not field or line.index("=") < line.index(":")):
            variables[var.group(1)] = var.group(2).strip()
        elif field:
            raw_fields[field.group(1)] = field.group(2).strip()

    expanded_vars = {k: _expand(v, variables, (k,)) for k, v in variables.items()}
    fields = {k: _expand(v, expanded_vars) for k, v in raw_fields.items()}
    missing = [f for f in REQUIRED_FIELDS if f not in fields]
    if missing:
        raise DescriptorError(f"missing required field(s): {', '.join(missing)}")
    return ParsedDescriptor(
        name=path.stem, path=path, variables=expanded_vars, fields=fields
    )


def search_flags(value: str, flag: str) -> list[str]:
    """Paths passed with ``flag`` (``-L`` or ``-I``) in a flags string."""
    try:
        tokens = shlex.split(value)
    except ValueError:
        tokens = value.split()
    paths: list[str] = []
    for i, token in enumerate(tokens):
        if token == flag and i + 1 < len(tokens):
            paths.append(tokens[i + 1])
        elif token.startswith(flag) and len(token) > len(flag):
            paths.append(token[len(flag):])
    return paths


def _is_within(path: str, root: Path) -> bool:
    try:
        Path(path).resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


class DescriptorResolver:
    """Resolve descriptors against an explicit list of search roots.

    Parameters
    ----------
    search_roots:
        ``lib/pkgconfig`` directories, searched in order.
    allowed_root:
        Library and include paths outside this root are reported as leaks.
    """

    def __init__(self, search_roots: Sequence[Path], allowed_root: Path | None = None) -> None:
        self._roots = [Path(r) for r in search_roots]
        self._allowed_root = allowed_root

    def find(self, name: str) -> Path | None:
        for root in self._roots:
            candidate = root / f"{name}.pc"
            if candidate.is_file():
                return candidate
        return None

    def available(self) -> list[str]:
        """Names of every descriptor visible through the search roots."""
        names: set[str] = set()
        for root in self._roots:
            if root.is_dir():
                names.update(p.stem for p in root.glob("*.pc"))
        return sorted(names)

    def resolve(self, name: str) -> DescriptorResolution:
        """Resolve ``name`` and, recursively, everything it requires."""
        return self._resolve(name, ())

    def _resolve(self, name: str, trail: tuple[str, ...]) -> DescriptorResolution:
        path = self.find(name)
        if path is None:
            roots = ", ".join(str(r) for r in self._roots) or "(none)"
            return DescriptorResolution(
                name=name, found=False, error=f"'{name}.pc' not found in: {roots}"
            )
        try:
            parsed = parse_descriptor(path)
        except (DescriptorError, OSError) as exc:
            return DescriptorResolution(name=name, found=True, path=path, error=str(exc))

        leaks: list[str] = []
        if self._allowed_root is not None:
            for flag, key in (("-L", "Libs"), ("-I", "Cflags")):
                for entry in search_flags(parsed.fields.get(key, ""), flag):
                    if not _is_within(entry, self._allowed_root):
                        leaks.append(f"{name}: {key} {flag}{entry}")

        requires = parsed.requires()
        error = ""
        for required in requires:
            if required in trail or required == name:
                error = f"requirement cycle: {' -> '.join((*trail, name, required))}"
                break
            child = self._resolve(required, (*trail, name))
            leaks.extend(child.leaks)
            if not child.resolved:
                error = f"requires '{required}': {child.error}"
                break

        return DescriptorResolution(
            name=name,
            found=True,
            path=path,
            version=parsed.fields.get("Version", ""),
            libs=parsed.fields.get("Libs", ""),
            cflags=parsed.fields.get("Cflags", ""),
            requires=tuple(requires),
            error=error,
            leaks=tuple(dict.fromkeys(leaks)),
        )
