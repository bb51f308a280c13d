"""Output filtering: glob patterns and scope allow-lists applied to a built graph."""

from .engine import FilterEngine, FilterResult
from .patterns import PatternMatcher

__all__ = ["FilterEngine", "FilterResult", "PatternMatcher"]
