"""
Hierarchical datastore keys.

A key is a slash separated path such as ``/blocks/CIQ...``. The canonical
string form always has a leading ``/``, never a trailing one, and no empty,
``.`` or ``..`` segments. That canonical form is what gets stored in the
``key`` column, so writes and prefix reads agree on it.

Canonicalization is idempotent:

    Key(str(Key(s))) == Key(s)
"""

import posixpath
from functools import total_ordering
from typing import List, Union


ROOT = "/"
SEPARATOR = "/"


def clean(path: str) -> str:
    """Return the canonical form of ``path``."""
    if not path:
        return ROOT
    if not path.startswith(SEPARATOR):
        path = SEPARATOR + path
    cleaned = posixpath.normpath(path)
    # POSIX keeps exactly two leading slashes, keys never do
    if cleaned.startswith("//"):
        cleaned = SEPARATOR + cleaned.lstrip(SEPARATOR)
    return cleaned


@total_ordering
class Key:
    """
    A cleaned, immutable hierarchical key.

    Keys compare namespace by namespace, so ``/a/b`` sorts before ``/a-b``
    even though ``-`` sorts before ``/`` as a character.
    """

    __slots__ = ("_path",)

    def __init__(self, path: Union[str, "Key"] = ROOT):
        if isinstance(path, Key):
            self._path = path._path
        else:
            self._path = clean(path)

    @classmethod
    def with_namespaces(cls, namespaces: List[str]) -> "Key":
        return cls(SEPARATOR.join(namespaces))

    def __str__(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"Key({self._path!r})"

    def __hash__(self) -> int:
        return hash(self._path)

    def __eq__(self, other) -> bool:
        if isinstance(other, Key):
            return self._path == other._path
        if isinstance(other, str):
            # Only the canonical string, so hash(key) == hash(str(key)) holds
            return self._path == other
        return NotImplemented

    def __lt__(self, other: "Key") -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self.namespaces() < other.namespaces()

    def namespaces(self) -> List[str]:
        """Path segments, root excluded."""
        if self._path == ROOT:
            return []
        return self._path[1:].split(SEPARATOR)

    def name(self) -> str:
        """Last segment of the key ("" for the root)."""
        ns = self.namespaces()
        return ns[-1] if ns else ""

    def parent(self) -> "Key":
        ns = self.namespaces()
        if len(ns) <= 1:
            return Key(ROOT)
        return Key.with_namespaces(ns[:-1])

    def child(self, other: Union[str, "Key"]) -> "Key":
        return Key(self._path + SEPARATOR + str(other))

    def is_root(self) -> bool:
        return self._path == ROOT

    def is_top_level(self) -> bool:
        return len(self.namespaces()) == 1

    def is_ancestor_of(self, other: Union[str, "Key"]) -> bool:
        other_path = str(Key(other))
        if self._path == ROOT:
            return other_path != ROOT
        return other_path.startswith(self._path + SEPARATOR)

    def is_descendant_of(self, other: Union[str, "Key"]) -> bool:
        return Key(other).is_ancestor_of(self)
