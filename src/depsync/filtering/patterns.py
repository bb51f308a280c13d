"""
Glob matching for groupId:artifactId coordinates.

`*` matches any run of characters (including none), `?` exactly one. Every
other character is literal. Matching is case-sensitive and anchored at both
ends of each half.
"""

import re
from typing import Optional

from ..errors import ConfigurationError


def glob_to_regex(glob: str) -> re.Pattern:
    parts = []
    for c in glob:
        if c == "*":
            parts.append(".*")
        elif c == "?":
            parts.append(".")
        else:
            parts.append(re.escape(c))
    return re.compile("".join(parts), re.DOTALL)


class PatternMatcher:
    """
    Compiled `<groupGlob>:<artifactGlob>` pattern.

    Raises:
        ConfigurationError: If the pattern is blank, lacks a colon, or either
            half is empty.
    """

    def __init__(self, pattern: Optional[str]):
        if pattern is None or not pattern.strip():
            raise ConfigurationError("Filter pattern cannot be empty")

        self.pattern = pattern.strip()
        if ":" not in self.pattern:
            raise ConfigurationError(
                f"Invalid filter pattern '{self.pattern}': expected groupId:artifactId"
            )

        group_glob, artifact_glob = self.pattern.split(":", 1)
        if not group_glob or not artifact_glob:
            raise ConfigurationError(
                f"Invalid filter pattern '{self.pattern}': groupId and artifactId must both be set"
            )

        self._group = glob_to_regex(group_glob)
        self._artifact = glob_to_regex(artifact_glob)

    def matches(self, group_id: Optional[str], artifact_id: Optional[str]) -> bool:
        if group_id is None or artifact_id is None:
            return False
        return bool(self._group.fullmatch(group_id) and self._artifact.fullmatch(artifact_id))

    def __eq__(self, other):
        if isinstance(other, PatternMatcher):
            return self.pattern == other.pattern
        return False

    def __hash__(self):
        return hash(self.pattern)

    def __repr__(self) -> str:
        return f"PatternMatcher({self.pattern!r})"
