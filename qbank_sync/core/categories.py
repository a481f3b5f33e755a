"""
Question category paths and tree traversal.

Paths look like ``top/Algebra/Linear``. A single ``/`` separates segments and
``//`` is an escaped literal slash inside a category name.
"""

from __future__ import annotations

import re
from collections import defaultdict

from qbank_sync.core.errors import CategoryNotFoundError, SchemaError
from qbank_sync.core.ports import CategoryRecord

_SEPARATOR = re.compile(r"(?<!/)/(?!/)")


def split_category_path(path: str) -> list[str]:
    """Split a category path into cleaned segment names."""
    return [segment.replace("//", "/").strip() for segment in _SEPARATOR.split(path)]


def _compile_ignore(ignorecat: str | None) -> re.Pattern[str] | None:
    """Compile an ignore regex, accepting '/pattern/flags' delimiters."""
    if not ignorecat:
        return None
    flags = 0
    match = re.fullmatch(r"/(.*)/([imsx]*)", ignorecat, re.DOTALL)
    if match:
        ignorecat = match.group(1)
        for letter in match.group(2):
            flags |= {"i": re.I, "m": re.M, "s": re.S, "x": re.X}[letter]
    try:
        return re.compile(ignorecat, flags)
    except re.error as exc:
        raise SchemaError(["ignorecat"], f"Invalid category regex: {exc}") from exc


def join_category_path(names: list[str]) -> str:
    """Inverse of split_category_path, escaping slashes inside names."""
    escaped = []
    for name in names:
        part = name.replace("/", "//")
        # Keep a leading/trailing slash from fusing with the separator
        if part.startswith("/"):
            part = " " + part
        if part.endswith("/"):
            part = part + " "
        escaped.append(part)
    return "/".join(escaped)


class CategoryTree:
    """
    Arena of the categories in one context, keyed by id.

    All walks are iterative so a deep or malformed hierarchy cannot exhaust
    the interpreter stack.
    """

    def __init__(self, categories: list[CategoryRecord]) -> None:
        self.nodes: dict[int, CategoryRecord] = {c.id: c for c in categories}
        self._children: dict[int | None, list[int]] = defaultdict(list)
        for category in sorted(categories, key=lambda c: c.id):
            self._children[category.parent].append(category.id)

    def __contains__(self, categoryid: int) -> bool:
        return categoryid in self.nodes

    def children(self, categoryid: int | None) -> list[CategoryRecord]:
        return [self.nodes[cid] for cid in self._children.get(categoryid, [])]

    def resolve(self, path: str) -> CategoryRecord:
        """Walk ``path`` from the root (parent None) one segment at a time."""
        if not path or not path.strip():
            raise SchemaError(["qcategoryname"])
        parent: int | None = None
        current: CategoryRecord | None = None
        for name in split_category_path(path):
            current = next((c for c in self.children(parent) if c.name == name), None)
            if current is None:
                raise CategoryNotFoundError(path)
            parent = current.id
        return current

    def descendants(self, categoryid: int, ignorecat: str | None = None) -> list[CategoryRecord]:
        """
        Every category below ``categoryid`` (excluding itself), depth-first.

        Children whose name matches ``ignorecat`` are dropped together with
        their whole subtree.
        """
        pattern = _compile_ignore(ignorecat)
        found: list[CategoryRecord] = []
        stack = list(reversed(self._children.get(categoryid, [])))
        seen = {categoryid}
        while stack:
            cid = stack.pop()
            if cid in seen:
                continue
            seen.add(cid)
            node = self.nodes[cid]
            if pattern and pattern.search(node.name):
                continue
            found.append(node)
            stack.extend(reversed(self._children.get(cid, [])))
        return found

    def path_of(self, categoryid: int) -> str:
        """Full escaped path from the root down to ``categoryid``."""
        names: list[str] = []
        seen: set[int] = set()
        current: int | None = categoryid
        while current is not None and current in self.nodes and current not in seen:
            seen.add(current)
            node = self.nodes[current]
            names.append(node.name)
            current = node.parent
        return join_category_path(list(reversed(names)))
