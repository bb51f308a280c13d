"""Unit tests for groupId:artifactId glob matching."""

import pytest

from depsync.errors import ConfigurationError
from depsync.filtering.patterns import PatternMatcher


class TestPatternMatcher:
    def test_group_wildcard(self):
        matcher = PatternMatcher("org.a:*")
        assert matcher.matches("org.a", "core")
        assert matcher.matches("org.a", "web")
        assert not matcher.matches("org.b", "core")

    def test_artifact_only(self):
        assert PatternMatcher("*:junit").matches("x", "junit")
        assert not PatternMatcher("*:junit").matches("x", "junit-jupiter")

    def test_single_character_wildcard(self):
        matcher = PatternMatcher("c:my-?-app")
        assert matcher.matches("c", "my-1-app")
        assert not matcher.matches("c", "my-10-app")

    def test_dots_are_literal(self):
        matcher = PatternMatcher("org.a:core")
        assert not matcher.matches("orgXa", "core")

    def test_case_sensitive(self):
        assert not PatternMatcher("org.a:Core").matches("org.a", "core")

    def test_whole_string_match(self):
        assert not PatternMatcher("org:core").matches("org.apache", "core")
        assert not PatternMatcher("org:core").matches("org", "core-api")

    def test_whitespace_trimmed(self):
        matcher = PatternMatcher("  org.a:*  ")
        assert matcher.pattern == "org.a:*"
        assert matcher.matches("org.a", "x")

    def test_none_never_matches(self):
        matcher = PatternMatcher("*:*")
        assert not matcher.matches(None, "core")
        assert not matcher.matches("org", None)

    def test_regex_metacharacters_escaped(self):
        matcher = PatternMatcher("a+b:(x)")
        assert matcher.matches("a+b", "(x)")
        assert not matcher.matches("aab", "x")

    @pytest.mark.parametrize("pattern", [None, "", "   ", "no-colon", ":artifact", "group:"])
    def test_invalid_patterns(self, pattern):
        with pytest.raises(ConfigurationError):
            PatternMatcher(pattern)

    def test_equality_by_pattern(self):
        assert PatternMatcher("a:b") == PatternMatcher(" a:b ")
        assert PatternMatcher("a:b") != PatternMatcher("a:c")
        assert len({PatternMatcher("a:b"), PatternMatcher("a:b")}) == 1
