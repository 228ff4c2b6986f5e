"""Line-based pyproject.toml rewriting.

Manifests are edited as ordered lines rather than parsed and re-serialized:
every operation rewrites only the lines matching its key pattern and leaves
all other lines byte-identical, so human formatting, comments and line
endings survive a release. Reading (names, versions, requirements) goes
through tomlkit in toml.py; writing goes through here.

Each package has two parallel documents: "head" (the manifest as last
committed) and "index" (the manifest on disk). Both receive the same edits
and are saved as sibling preview files next to the canonical manifest.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

from packaging.utils import canonicalize_name

from .versions import Bump, bump_version

MANIFEST_NAME = "pyproject.toml"
BACKUP_NAME = "pyproject.backup.toml"
HEAD_PREVIEW_NAME = "pyproject.preview-head.toml"
INDEX_PREVIEW_NAME = "pyproject.preview-index.toml"

# Sibling files written by wheel-cascade, never part of a package's diff
ARTIFACT_NAMES = (BACKUP_NAME, HEAD_PREVIEW_NAME, INDEX_PREVIEW_NAME)

_TABLE_RE = re.compile(r"^\s*\[\[?([^\[\]]+)\]\]?\s*(#.*)?$")
_STRING_RE = re.compile(r"(\"|')(.*?)\1")
_KEY_RE = re.compile(
    r"^(?P<indent>\s*)(?P<quote>[\"']?)(?P<key>[A-Za-z0-9][A-Za-z0-9._-]*)(?P=quote)"
    r"(?P<eq>\s*=\s*)(?P<value>.*)$"
)
_REQ_RE = re.compile(
    r"^(?P<lead>\s*)(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*(?P<extras>\[[^\]]*\])?"
    r"(?P<spec>[^;]*)(?P<marker>;.*)?$"
)
_OPERATOR_RE = re.compile(r"^\s*\(?\s*(===|==|~=|!=|<=|>=|<|>)")
_INLINE_KEY_TEMPLATE = r"(\b{key}\s*=\s*)(\"|')(.*?)\2"
_OVERRIDE_RE = re.compile(r"^\s*override-dependencies\s*=\s*\[")
# Tables holding PEP 508 requirement strings
_REQUIREMENT_TABLES = ("project", "project.optional-dependencies", "dependency-groups")


def preview_path(manifest_path: Path, kind: str) -> Path:
    """Sibling preview file of a manifest ("head" or "index")."""
    name = HEAD_PREVIEW_NAME if kind == "head" else INDEX_PREVIEW_NAME
    return manifest_path.parent / name


def backup_path(manifest_path: Path) -> Path:
    """Sibling backup file of a manifest while it is under mutation."""
    return manifest_path.parent / BACKUP_NAME


def _split_ending(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body) :]


def _table_name(header: str) -> str:
    return ".".join(part.strip().strip("\"'") for part in header.split("."))


def _version_pattern(version: str) -> re.Pattern[str]:
    # "1.0" must not match inside "1.0.0" or "11.0"
    return re.compile(r"(?<![\w.])" + re.escape(version) + r"(?![\w.])")


def _parse_requirement(text: str) -> re.Match[str] | None:
    match = _REQ_RE.match(text)
    if match is None:
        return None
    spec = match.group("spec").strip()
    # A bare name is fine, anything else must start with a version operator
    if spec and not _OPERATOR_RE.match(spec) and not spec.startswith("@"):
        return None
    return match


class Manifest:
    """Ordered lines of one pyproject.toml document.

    Lines keep their original endings. Operations return True when at least
    one line changed.
    """

    def __init__(self, text: str) -> None:
        self.lines: list[str] = text.splitlines(keepends=True)

    @classmethod
    def read(cls, path: Path) -> Manifest:
        return cls(path.read_bytes().decode("utf-8"))

    def content(self) -> str:
        return "".join(self.lines)

    def save(self, dest: Path) -> None:
        """Write the document to ``dest`` exactly as held in memory."""
        dest.write_bytes(self.content().encode("utf-8"))

    def _tables(self) -> Iterator[tuple[int, str, str, str]]:
        """Yield (index, table, body, ending) for every non-header line."""
        table = ""
        for i, line in enumerate(self.lines):
            body, ending = _split_ending(line)
            header = _TABLE_RE.match(body)
            if header:
                table = _table_name(header.group(1))
                continue
            yield i, table, body, ending

    def bump_version(self, old: str, new: str) -> bool:
        """Rewrite the document's own ``version = "<old>"`` field.

        Only the first match in the top level, [project] or [tool.poetry]
        is rewritten.
        """
        pattern = re.compile(
            r"^(\s*version\s*=\s*)([\"'])" + re.escape(old) + r"\2(.*)$"
        )
        for i, table, body, ending in self._tables():
            if table not in ("", "project", "tool.poetry"):
                continue
            match = pattern.match(body)
            if match:
                quote = match.group(2)
                self.lines[i] = (
                    f"{match.group(1)}{quote}{new}{quote}{match.group(3)}{ending}"
                )
                return old != new
        return False

    def update_dependency(self, name: str, old: str, new: str) -> bool:
        """Rewrite the version of every dependency entry naming ``name``.

        Handles PEP 508 strings ("pkg>=1.0", "pkg[extra]==1.0; marker") and
        key-form entries in *dependencies tables (pkg = "^1.0" and
        pkg = { version = "1.0", ... }). Only the version token equal to
        ``old`` is replaced; operators, extras and markers are kept.
        """
        canonical = canonicalize_name(name)
        version_re = _version_pattern(old)
        changed = False
        for i, table, body, ending in self._tables():
            key_match = self._key_entry(table, body, canonical)
            if key_match is not None:
                value = key_match.group("value")
                if value.lstrip().startswith("{"):
                    new_value = self._replace_inline_key(
                        value, "version", lambda v: version_re.sub(new, v)
                    )
                else:
                    new_value = _STRING_RE.sub(
                        lambda m: m.group(1)
                        + version_re.sub(new, m.group(2))
                        + m.group(1),
                        value,
                        count=1,
                    )
                new_body = body[: key_match.start("value")] + new_value
            else:
                new_body = self._rewrite_requirements(
                    body,
                    canonical,
                    lambda req: (
                        req.group("lead")
                        + req.group("name")
                        + (req.group("extras") or "")
                        + version_re.sub(new, req.group("spec"))
                        + (req.group("marker") or "")
                    ),
                )
            if new_body != body:
                self.lines[i] = new_body + ending
                changed = True
        return changed

    def set_dependency_path(
        self, name: str, rel_path: str, version: str, force: bool = True
    ) -> bool:
        """Link a dependency entry to a local path while recording its version.

        - key-form entries become ``name = { version = "<version>", path = "<rel_path>" }``
        - entries in [tool.uv.sources] point to ``{ path = "<rel_path>" }``
        - PEP 508 strings naming the package are pinned ``name==<version>``
          and linked through a new [tool.uv.sources] entry when there is none

        Without ``force``, a version already recorded in the entry is kept.
        """
        canonical = canonicalize_name(name)
        changed = False
        sourced = referenced = False
        for i, table, body, ending in self._tables():
            key_match = self._key_entry(table, body, canonical)
            if table == "tool.uv.sources":
                key_match = self._key_match(body, canonical)
                if key_match is None:
                    continue
                sourced = True
                value = key_match.group("value").strip()
                if re.search(r"\bpath\s*=", value):
                    new_value = self._replace_inline_key(value, "path", lambda _: rel_path)
                else:
                    new_value = f'{{ path = "{rel_path}" }}'
                new_body = body[: key_match.start("value")] + new_value
            elif key_match is not None:
                new_body = body[: key_match.start("value")] + self._path_table(
                    key_match.group("value").strip(), rel_path, version, force
                )
            else:
                if table in _REQUIREMENT_TABLES and self._names_requirement(body, canonical):
                    referenced = True
                new_body = self._rewrite_requirements(
                    body,
                    canonical,
                    lambda req: self._pin_requirement(req, version, force),
                )
            if new_body != body:
                self.lines[i] = new_body + ending
                changed = True
        if referenced and not sourced:
            self._insert_source(name, rel_path)
            changed = True
        return changed

    def bump_override(self, name: str, old: str, new: str) -> bool:
        """Rewrite ``name==<old>`` entries of [tool.uv].override-dependencies in place."""
        canonical = canonicalize_name(name)
        pinned = re.compile(r"(===?\s*)" + _version_pattern(old).pattern)
        changed = False
        for i, body, ending in self._override_lines():
            new_body = self._rewrite_requirements(
                body,
                canonical,
                lambda req: (
                    req.group("lead")
                    + req.group("name")
                    + (req.group("extras") or "")
                    + pinned.sub(lambda m: m.group(1) + new, req.group("spec"))
                    + (req.group("marker") or "")
                ),
            )
            if new_body != body:
                self.lines[i] = new_body + ending
                changed = True
        return changed

    def set_or_insert_override(self, name: str, old: str, requirement: str) -> bool:
        """Point the override of ``name`` at ``old`` to ``requirement``.

        The first override entry naming the package with version ``old`` is
        replaced in place. When there is none and no entry already equals
        ``requirement``, the requirement is appended to the override list,
        creating the list (and the [tool.uv] table) if needed.
        """
        canonical = canonicalize_name(name)
        version_re = _version_pattern(old)
        existing: list[str] = []
        for i, body, ending in self._override_lines():
            for match in _STRING_RE.finditer(body):
                req = _parse_requirement(match.group(2))
                if req is None:
                    continue
                existing.append(match.group(2).strip())
                if canonicalize_name(req.group("name")) != canonical:
                    continue
                if not version_re.search(req.group("spec")):
                    continue
                if match.group(2) == requirement:
                    return False
                quote = match.group(1)
                new_body = (
                    body[: match.start()] + quote + requirement + quote + body[match.end() :]
                )
                self.lines[i] = new_body + ending
                return True
        if requirement in existing:
            return False
        self._insert_override(requirement)
        return True

    def _key_match(self, body: str, canonical: str) -> re.Match[str] | None:
        match = _KEY_RE.match(body)
        if match is None or canonicalize_name(match.group("key")) != canonical:
            return None
        value = match.group("value").lstrip()
        if not value.startswith(("{", '"', "'")):
            return None
        return match

    def _key_entry(self, table: str, body: str, canonical: str) -> re.Match[str] | None:
        if not table.endswith("dependencies"):
            return None
        return self._key_match(body, canonical)

    @staticmethod
    def _replace_inline_key(value: str, key: str, replace) -> str:
        pattern = re.compile(_INLINE_KEY_TEMPLATE.format(key=re.escape(key)))
        return pattern.sub(
            lambda m: m.group(1) + m.group(2) + replace(m.group(3)) + m.group(2),
            value,
            count=1,
        )

    @staticmethod
    def _rewrite_requirements(body: str, canonical: str, rewrite) -> str:
        def replace(match: re.Match[str]) -> str:
            req = _parse_requirement(match.group(2))
            if req is None or canonicalize_name(req.group("name")) != canonical:
                return match.group(0)
            return match.group(1) + rewrite(req) + match.group(1)

        return _STRING_RE.sub(replace, body)

    @staticmethod
    def _names_requirement(body: str, canonical: str) -> bool:
        for match in _STRING_RE.finditer(body):
            req = _parse_requirement(match.group(2))
            if req is not None and canonicalize_name(req.group("name")) == canonical:
                return True
        return False

    @staticmethod
    def _pin_requirement(req: re.Match[str], version: str, force: bool) -> str:
        spec = req.group("spec")
        if spec.strip() and not force:
            return req.group(0)
        return (
            req.group("lead")
            + req.group("name")
            + (req.group("extras") or "")
            + f"=={version}"
            + (" " if req.group("marker") and not spec.endswith(" ") else "")
            + (req.group("marker") or "")
        )

    def _path_table(self, value: str, rel_path: str, version: str, force: bool) -> str:
        if value.startswith("{"):
            recorded = re.search(_INLINE_KEY_TEMPLATE.format(key="version"), value)
            if recorded is None:
                value = re.sub(
                    r"^\{\s*", lambda _: f'{{ version = "{version}", ', value, count=1
                )
            elif force:
                value = self._replace_inline_key(value, "version", lambda _: version)
            if re.search(_INLINE_KEY_TEMPLATE.format(key="path"), value):
                return self._replace_inline_key(value, "path", lambda _: rel_path)
            return re.sub(
                r"\s*\}$", lambda _: f', path = "{rel_path}" }}', value, count=1
            )
        string = _STRING_RE.match(value)
        recorded = string.group(2) if string else ""
        keep = recorded if recorded and not force else version
        return f'{{ version = "{keep}", path = "{rel_path}" }}'

    def _override_lines(self) -> Iterator[tuple[int, str, str]]:
        """Yield (index, body, ending) of lines inside override-dependencies."""
        inside = False
        for i, table, body, ending in self._tables():
            if table != "tool.uv":
                inside = False
                continue
            if inside:
                rest = body
            else:
                opening = _OVERRIDE_RE.match(body)
                if opening is None:
                    continue
                inside = True
                rest = body[opening.end() :]
            yield i, body, ending
            if "]" in _STRING_RE.sub("", rest):
                inside = False

    def _insert_override(self, requirement: str) -> None:
        entry = f'"{requirement}"'
        block: list[int] = [i for i, _, _ in self._override_lines()]
        if block:
            last = block[-1]
            body, ending = _split_ending(self.lines[last])
            ending = ending or "\n"
            if len(block) == 1:
                # Single-line array: add before the closing bracket
                close = body.rindex("]")
                inner = body[body.index("[") + 1 : close].strip()
                separator = ", " if inner and not inner.endswith(",") else ""
                if inner.endswith(","):
                    separator = " "
                self.lines[last] = body[:close] + separator + entry + body[close:] + ending
                return
            previous = last - 1
            prev_body, prev_ending = _split_ending(self.lines[previous])
            indent = "    "
            if previous != block[0]:
                indent = prev_body[: len(prev_body) - len(prev_body.lstrip())]
                if prev_body.strip() and not prev_body.rstrip().endswith((",", "[")):
                    self.lines[previous] = prev_body.rstrip() + "," + prev_ending
            self.lines.insert(last, f"{indent}{entry},{ending}")
            return

        new_block = ["override-dependencies = [\n", f"    {entry},\n", "]\n"]
        for i, line in enumerate(self.lines):
            header = _TABLE_RE.match(_split_ending(line)[0])
            if header and _table_name(header.group(1)) == "tool.uv":
                self.lines[i + 1 : i + 1] = new_block
                return
        if self.lines and not self.lines[-1].endswith("\n"):
            self.lines[-1] += "\n"
        if self.lines and self.lines[-1].strip():
            self.lines.append("\n")
        self.lines.extend(["[tool.uv]\n", *new_block])

    def _insert_source(self, name: str, rel_path: str) -> None:
        """Add ``name = { path = "<rel_path>" }`` to [tool.uv.sources], creating the table."""
        entry = f'{name} = {{ path = "{rel_path}" }}'
        start = None
        for i, line in enumerate(self.lines):
            header = _TABLE_RE.match(_split_ending(line)[0])
            if header and _table_name(header.group(1)) == "tool.uv.sources":
                start = i
                break
        if start is not None:
            last = start
            for i in range(start + 1, len(self.lines)):
                body = _split_ending(self.lines[i])[0]
                if _TABLE_RE.match(body):
                    break
                if body.strip():
                    last = i
            ending = _split_ending(self.lines[start])[1] or "\n"
            if not self.lines[last].endswith(("\n", "\r")):
                self.lines[last] += ending
            self.lines.insert(last + 1, entry + ending)
            return
        if self.lines and not self.lines[-1].endswith("\n"):
            self.lines[-1] += "\n"
        if self.lines and self.lines[-1].strip():
            self.lines.append("\n")
        self.lines.extend(["[tool.uv.sources]\n", entry + "\n"])


class ManifestPair:
    """Head and index variants of one manifest, mutated identically.

    Attributes:
        name: Package name, or None for the workspace root manifest.
        version: Version recorded in the manifest before any mutation.
        path: Absolute path of the canonical manifest.
        rel_path: Path of the manifest relative to the repository root.
    """

    def __init__(
        self,
        name: str | None,
        version: str,
        path: Path,
        rel_path: str,
        head: Manifest,
        index: Manifest,
    ) -> None:
        self.name = name
        self.version = version
        self.path = path
        self.rel_path = rel_path
        self.head = head
        self.index = index

    @property
    def head_preview_path(self) -> Path:
        return preview_path(self.path, "head")

    @property
    def index_preview_path(self) -> Path:
        return preview_path(self.path, "index")

    @property
    def backup_path(self) -> Path:
        return backup_path(self.path)

    def preview(self, kind: str) -> Path:
        return preview_path(self.path, kind)

    def bump_version(self, bump: Bump) -> str:
        """Bump the manifest's own version in both variants and return it."""
        new = bump_version(self.version, bump)
        self.set_version(new)
        return new

    def set_version(self, new: str) -> None:
        self.head.bump_version(self.version, new)
        self.index.bump_version(self.version, new)

    def update_dependency(self, name: str, old: str, new: str) -> None:
        self.head.update_dependency(name, old, new)
        self.index.update_dependency(name, old, new)

    def set_dependency_path(
        self, name: str, rel_path: str, version: str, force: bool = True
    ) -> bool:
        head = self.head.set_dependency_path(name, rel_path, version, force)
        index = self.index.set_dependency_path(name, rel_path, version, force)
        return head or index

    def bump_override(self, name: str, old: str, new: str) -> None:
        self.head.bump_override(name, old, new)
        self.index.bump_override(name, old, new)

    def set_or_insert_override(self, name: str, old: str, requirement: str) -> bool:
        head = self.head.set_or_insert_override(name, old, requirement)
        index = self.index.set_or_insert_override(name, old, requirement)
        return head or index

    def save_preview(self) -> None:
        """Write both variants to their preview files; the canonical file is untouched."""
        self.head.save(self.head_preview_path)
        self.index.save(self.index_preview_path)
