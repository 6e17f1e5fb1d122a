"""Circular-import detection over the project's source tree.

Runs without a subprocess: source files are read through the host
filesystem, local imports are resolved to files, and cycles are found by
depth-first search. A cycle closed by a static import or ``require`` is an
error; one closed by a dynamic ``import()`` is only a warning, since lazy
loading usually breaks the cycle at runtime.
"""

from __future__ import annotations

import logging
import posixpath
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.diagnostics.base import DiagnosticAdapter
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
)

if TYPE_CHECKING:
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)

CIRCULAR_IMPORT = "CIRCULAR_IMPORT"
SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs")

_STATIC_IMPORT = re.compile(
    r"(?:import|export)\s+(?:type\s+)?(?:[\w*{}\s,]+?\s+from\s+)?['\"]([^'\"]+)['\"]"
)
_DYNAMIC_IMPORT = re.compile(r"import\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")
_REQUIRE = re.compile(r"require\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")

# Path aliases commonly configured by project templates
DEFAULT_ALIASES = {"@/": "src/", "~/": "src/"}


@dataclass
class ImportEdge:
    target: str
    kind: str  # "static" | "dynamic" | "require"
    line: int


@dataclass
class Cycle:
    files: list[str]
    closing: ImportEdge
    severity: Severity

    def describe(self) -> str:
        return "Circular import: " + " -> ".join(self.files)


@dataclass
class ImportGraph:
    edges: dict[str, list[ImportEdge]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.edges)


def walk_sources(
    fs: FileSystemBackend,
    roots: list[str],
    skip_dirs: list[str],
    extensions: tuple[str, ...] = SOURCE_EXTENSIONS,
) -> list[str]:
    """Project-relative paths of source files under ``roots``."""
    found: list[str] = []
    pending = [r.rstrip("/") for r in roots if fs.is_dir(r)]
    while pending:
        directory = pending.pop()
        listing = fs.list_dir(directory)
        if listing.error:
            logger.debug("Cannot list %s: %s", directory, listing.error)
            continue
        for entry in listing.entries:
            path = entry.name if directory in ("", ".") else f"{directory}/{entry.name}"
            if entry.is_dir:
                if entry.name not in skip_dirs:
                    pending.append(path)
            elif entry.name.endswith(extensions) and not entry.name.endswith(".d.ts"):
                found.append(path)
    return sorted(found)


def extract_imports(source: str) -> list[tuple[str, str, int]]:
    """(specifier, kind, line) for every import-like statement."""
    results: list[tuple[str, str, int]] = []
    for line_no, line in enumerate(source.splitlines(), 1):
        stripped = line.lstrip()
        if stripped.startswith("//") or stripped.startswith("*"):
            continue
        for match in _DYNAMIC_IMPORT.finditer(line):
            results.append((match.group(1), "dynamic", line_no))
        for match in _REQUIRE.finditer(line):
            results.append((match.group(1), "require", line_no))
        for match in _STATIC_IMPORT.finditer(line):
            results.append((match.group(1), "static", line_no))
    return results


def _is_local(specifier: str, aliases: dict[str, str]) -> bool:
    return specifier.startswith(".") or specifier.startswith("src/") or any(
        specifier.startswith(a) for a in aliases
    )


def resolve_import(
    from_file: str,
    specifier: str,
    known: set[str],
    aliases: dict[str, str],
    extensions: tuple[str, ...] = SOURCE_EXTENSIONS,
) -> str | None:
    for alias, target in aliases.items():
        if specifier.startswith(alias):
            specifier = target + specifier[len(alias):]
            break

    if specifier.startswith("."):
        base = posixpath.normpath(posixpath.join(posixpath.dirname(from_file), specifier))
    else:
        base = specifier.lstrip("/")

    if base in known:
        return base
    stem = posixpath.splitext(base)[0] if base.endswith((".js", ".mjs", ".jsx")) else base
    for ext in extensions:
        if stem + ext in known:
            return stem + ext
    for ext in extensions:
        candidate = f"{base}/index{ext}"
        if candidate in known:
            return candidate
    return None


def build_import_graph(
    fs: FileSystemBackend,
    files: list[str],
    aliases: dict[str, str] | None = None,
) -> ImportGraph:
    aliases = DEFAULT_ALIASES if aliases is None else aliases
    known = set(files)
    graph = ImportGraph()
    for file in files:
        source = fs.read_text(file)
        edges: list[ImportEdge] = []
        if source is not None:
            for specifier, kind, line in extract_imports(source):
                if not _is_local(specifier, aliases):
                    continue
                target = resolve_import(file, specifier, known, aliases)
                if target and target != file:
                    edges.append(ImportEdge(target=target, kind=kind, line=line))
        graph.edges[file] = edges
    return graph


def find_cycles(graph: ImportGraph) -> list[Cycle]:
    cycles: list[Cycle] = []
    seen_keys: set[tuple[str, ...]] = set()
    visited: set[str] = set()
    on_stack: set[str] = set()
    stack: list[str] = []

    def dfs(node: str) -> None:
        visited.add(node)
        on_stack.add(node)
        stack.append(node)
        for edge in graph.edges.get(node, []):
            if edge.target in on_stack:
                members = stack[stack.index(edge.target):]
                pivot = members.index(min(members))
                key = tuple(members[pivot:] + members[:pivot])
                if key not in seen_keys:
                    seen_keys.add(key)
                    cycles.append(
                        Cycle(
                            files=[*members, edge.target],
                            closing=edge,
                            severity=Severity.WARNING if edge.kind == "dynamic" else Severity.ERROR,
                        )
                    )
            elif edge.target not in visited and edge.target in graph.edges:
                dfs(edge.target)
        stack.pop()
        on_stack.discard(node)

    for node in graph.edges:
        if node not in visited:
            dfs(node)
    return cycles


class CircularImportAdapter(DiagnosticAdapter):
    family = DiagnosticFamily.CIRCULAR
    name = "circular-imports"

    def __init__(
        self,
        fs: FileSystemBackend,
        source_dirs: list[str],
        skip_dirs: list[str],
        aliases: dict[str, str] | None = None,
    ):
        self.fs = fs
        self.source_dirs = source_dirs
        self.skip_dirs = skip_dirs
        self.aliases = aliases

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        start = time.monotonic()
        files = walk_sources(self.fs, self.source_dirs, self.skip_dirs)
        if not files:
            return CollectionResult.skip(self.family, "no source files found")

        graph = build_import_graph(self.fs, files, self.aliases)
        findings: list[DiagnosticError] = []
        for cycle in find_cycles(graph):
            closing_file = cycle.files[-2]
            findings.append(
                DiagnosticError(
                    code=CIRCULAR_IMPORT,
                    message=cycle.describe(),
                    file=closing_file,
                    line=cycle.closing.line,
                    severity=cycle.severity,
                )
            )

        if scope is not None and scope.is_targeted:
            wanted = set(scope.files)
            findings = [f for f in findings if f.file in wanted]

        errors = [f for f in findings if f.severity == Severity.ERROR]
        warnings = [f for f in findings if f.severity == Severity.WARNING]
        logger.debug("Scanned %d files, %d cycle(s)", len(files), len(findings))
        return CollectionResult(
            family=self.family,
            success=not errors,
            errors=errors,
            warnings=warnings,
            duration=time.monotonic() - start,
        )
