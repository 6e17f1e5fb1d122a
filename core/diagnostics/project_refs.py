"""TypeScript project-reference discovery.

A tsconfig that declares ``references`` must be checked in build mode
(``tsc --build``) rather than single-project mode. tsconfig files are
JSON with comments and trailing commas.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments outside of strings, then trailing commas."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return _TRAILING_COMMA.sub(r"\1", "".join(out))


def parse_jsonc(text: str) -> Any:
    return json.loads(strip_json_comments(text))


def resolve_reference(config_path: str, ref_path: str) -> str:
    """Resolve a reference relative to its tsconfig; directories get /tsconfig.json."""
    base = posixpath.dirname(config_path)
    resolved = posixpath.normpath(posixpath.join(base, ref_path)) if base else posixpath.normpath(ref_path)
    if not resolved.endswith(".json"):
        resolved = posixpath.join(resolved, "tsconfig.json")
    return resolved


@dataclass
class TsProject:
    config_path: str
    references: list[str] = field(default_factory=list)

    @property
    def has_references(self) -> bool:
        return bool(self.references)


def read_project(fs: FileSystemBackend, config_path: str) -> TsProject | None:
    text = fs.read_text(config_path)
    if text is None:
        return None
    try:
        data = parse_jsonc(text)
    except json.JSONDecodeError as e:
        logger.warning("Cannot parse %s: %s", config_path, e)
        return None
    if not isinstance(data, dict):
        return None

    refs: list[str] = []
    for ref in data.get("references") or []:
        ref_path = ref if isinstance(ref, str) else (ref or {}).get("path")
        if ref_path:
            refs.append(resolve_reference(config_path, ref_path))

    return TsProject(config_path=config_path, references=refs)


def uses_project_references(fs: FileSystemBackend, root_config: str = "tsconfig.json") -> bool:
    project = read_project(fs, root_config)
    return project is not None and project.has_references
