"""
Build-tool version ordering.

Implements the ordering Maven applies to artifact versions:

- "1.10" > "1.9" (numeric segments compare as numbers)
- "1.0" == "1" == "1.0.0" (trailing zeros and release qualifiers vanish)
- 1.0-alpha1 < 1.0-beta < 1.0-milestone < 1.0-rc < 1.0-SNAPSHOT < 1.0 < 1.0-sp
- unknown qualifiers sort after "sp", lexically among themselves

A version is parsed into a nested list of items. '.' separates items in the
current list, '-' (and a switch between digits and letters) opens a
sub-list. Comparison then walks both structures item by item.
"""

from functools import total_ordering
from typing import Iterable, List, Optional, Union

QUALIFIERS = ["alpha", "beta", "milestone", "rc", "snapshot", "", "sp"]

ALIASES = {"ga": "", "final": "", "release": "", "cr": "rc"}

# Index of "" in QUALIFIERS
_RELEASE_RANK = str(QUALIFIERS.index(""))


def _qualifier_rank(qualifier: str) -> str:
    """Sort key for a qualifier; unknown ones sort after every known one."""
    if qualifier in QUALIFIERS:
        return str(QUALIFIERS.index(qualifier))
    return f"{len(QUALIFIERS)}-{qualifier}"


class _IntItem:
    __slots__ = ("value",)

    def __init__(self, digits: str):
        self.value = int(digits)

    def is_null(self) -> bool:
        return self.value == 0

    def compare(self, other: Optional["_Item"]) -> int:
        if other is None:
            return 0 if self.value == 0 else 1
        if isinstance(other, _IntItem):
            return (self.value > other.value) - (self.value < other.value)
        # 1.1 > 1-sp and 1.1 > 1-1
        return 1

    def __repr__(self) -> str:
        return str(self.value)


class _StringItem:
    __slots__ = ("value",)

    def __init__(self, value: str, followed_by_digit: bool):
        if followed_by_digit and len(value) == 1:
            # 1.0a1 is 1.0-alpha-1
            value = {"a": "alpha", "b": "beta", "m": "milestone"}.get(value, value)
        self.value = ALIASES.get(value, value)

    def is_null(self) -> bool:
        return _qualifier_rank(self.value) == _RELEASE_RANK

    def compare(self, other: Optional["_Item"]) -> int:
        mine = _qualifier_rank(self.value)
        if other is None:
            # 1-rc < 1, 1-ga == 1, 1-sp > 1
            return (mine > _RELEASE_RANK) - (mine < _RELEASE_RANK)
        if isinstance(other, _StringItem):
            theirs = _qualifier_rank(other.value)
            return (mine > theirs) - (mine < theirs)
        # Numbers and sub-lists both outrank a qualifier
        return -1

    def __repr__(self) -> str:
        return self.value


class _ListItem(list):

    def is_null(self) -> bool:
        return len(self) == 0

    def normalize(self) -> None:
        """Drop trailing null items, stopping at the first non-null non-list item."""
        for i in range(len(self) - 1, -1, -1):
            item = self[i]
            if item.is_null():
                del self[i]
            elif not isinstance(item, _ListItem):
                break

    def compare(self, other: Optional["_Item"]) -> int:
        if other is None:
            if not self:
                return 0
            return self[0].compare(None)
        if isinstance(other, _IntItem):
            return -1
        if isinstance(other, _StringItem):
            return 1

        for i in range(max(len(self), len(other))):
            left = self[i] if i < len(self) else None
            right = other[i] if i < len(other) else None
            if left is None:
                result = -right.compare(None)
            else:
                result = left.compare(right)
            if result != 0:
                return result
        return 0

    def __repr__(self) -> str:
        return "[" + ", ".join(repr(item) for item in self) + "]"


_Item = Union[_IntItem, _StringItem, _ListItem]


def _parse(version: str) -> _ListItem:
    version = version.lower()
    items = _ListItem()
    current = items
    stack = [items]

    is_digit = False
    start = 0

    def parse_item(token: str, followed_by_digit: bool = False) -> _Item:
        if is_digit:
            return _IntItem(token)
        return _StringItem(token, followed_by_digit)

    for i, c in enumerate(version):
        if c == ".":
            if i == start:
                current.append(_IntItem("0"))
            else:
                current.append(parse_item(version[start:i]))
            start = i + 1

        elif c == "-":
            if i == start:
                current.append(_IntItem("0"))
            else:
                current.append(parse_item(version[start:i]))
            start = i + 1

            sub = _ListItem()
            current.append(sub)
            current = sub
            stack.append(sub)

        elif c.isdigit():
            if not is_digit and i > start:
                # "alpha1": the qualifier ends and a new sub-list starts
                current.append(_StringItem(version[start:i], True))
                start = i

                sub = _ListItem()
                current.append(sub)
                current = sub
                stack.append(sub)
            is_digit = True

        else:
            if is_digit and i > start:
                # "1rc": the number ends and a new sub-list starts
                current.append(parse_item(version[start:i]))
                start = i

                sub = _ListItem()
                current.append(sub)
                current = sub
                stack.append(sub)
            is_digit = False

    if len(version) > start:
        current.append(parse_item(version[start:]))

    while stack:
        stack.pop().normalize()

    return items


@total_ordering
class ComparableVersion:
    """
    A version string with build-tool ordering.

    Equality follows the ordering, so "1.0" == "1" even though the raw
    strings differ. The original text is kept in `value`.
    """

    def __init__(self, version: str):
        self.value = version
        self._items = _parse(version)
        self.canonical = repr(self._items)

    def compare_to(self, other: "ComparableVersion") -> int:
        return self._items.compare(other._items)

    def __eq__(self, other):
        if isinstance(other, ComparableVersion):
            return self.compare_to(other) == 0
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, ComparableVersion):
            return self.compare_to(other) < 0
        return NotImplemented

    def __hash__(self):
        return hash(self.canonical)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"ComparableVersion({self.value!r})"


def compare_versions(v1: str, v2: str) -> int:
    """Return -1, 0 or 1 as v1 sorts before, equal to or after v2."""
    result = ComparableVersion(v1).compare_to(ComparableVersion(v2))
    return (result > 0) - (result < 0)


def sort_versions_descending(versions: Iterable[str]) -> List[str]:
    """Newest first. Versions that compare equal keep their input order."""
    return sorted(versions, key=ComparableVersion, reverse=True)


def find_latest_version(versions: Iterable[str]) -> Optional[str]:
    ordered = sort_versions_descending(versions)
    return ordered[0] if ordered else None
